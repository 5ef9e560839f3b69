from swap_engine.worker.queue import InProcessJobQueue, Job, JobScheduler, backoff_delay

__all__ = ["JobScheduler", "InProcessJobQueue", "Job", "backoff_delay"]
