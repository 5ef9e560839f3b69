"""Tests for LifecycleNotifier publish / subscribe."""

from swap_engine.domain.order_state import OrderStatus
from swap_engine.events.notifier import LifecycleNotifier


def test_listeners_called_in_registration_order():
    notifier = LifecycleNotifier()
    calls = []
    notifier.subscribe(lambda e: calls.append(("first", e.status)))
    notifier.subscribe(lambda e: calls.append(("second", e.status)))
    notifier.publish("o1", OrderStatus.ROUTING)
    assert calls == [("first", OrderStatus.ROUTING), ("second", OrderStatus.ROUTING)]


def test_unsubscribe_stops_delivery():
    notifier = LifecycleNotifier()
    seen = []
    listener = seen.append
    notifier.subscribe(listener)
    notifier.publish("o1", OrderStatus.ROUTING)
    notifier.unsubscribe(listener)
    notifier.unsubscribe(listener)  # second call is a no-op
    notifier.publish("o1", OrderStatus.BUILDING)
    assert [e.status for e in seen] == [OrderStatus.ROUTING]
    assert notifier.listener_count == 0


def test_no_buffering_for_late_subscribers():
    notifier = LifecycleNotifier()
    notifier.publish("o1", OrderStatus.ROUTING)
    seen = []
    notifier.subscribe(seen.append)
    assert seen == []


def test_failing_listener_does_not_block_others():
    notifier = LifecycleNotifier()
    seen = []

    def broken(_event):
        raise RuntimeError("listener bug")

    notifier.subscribe(broken)
    notifier.subscribe(seen.append)
    notifier.publish("o1", OrderStatus.FAILED, {"error": "Slippage exceeded on raydium"})
    assert len(seen) == 1


def test_event_message_is_flat():
    notifier = LifecycleNotifier()
    event = notifier.publish("o1", OrderStatus.CONFIRMED, {"tx_hash": "mock_tx", "execution_price": 100.2})
    assert event.to_message() == {
        "order_id": "o1",
        "status": "confirmed",
        "tx_hash": "mock_tx",
        "execution_price": 100.2,
    }


def test_listener_may_unsubscribe_while_publishing():
    notifier = LifecycleNotifier()
    seen = []

    def once(event):
        seen.append(event)
        notifier.unsubscribe(once)

    notifier.subscribe(once)
    notifier.publish("o1", OrderStatus.ROUTING)
    notifier.publish("o1", OrderStatus.BUILDING)
    assert len(seen) == 1
