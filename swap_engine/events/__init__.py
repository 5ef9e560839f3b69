from swap_engine.events.notifier import LifecycleNotifier, Listener

__all__ = ["LifecycleNotifier", "Listener"]
