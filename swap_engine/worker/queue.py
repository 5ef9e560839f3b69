"""Job scheduling: the JobScheduler contract and a bounded in-process worker pool.

A job is "advance order X by one step". A job that raises is redelivered with exponential
backoff until it has failed `attempts` times, after which on_exhausted(order_id, error) is called.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Set

from swap_engine.core.logging_utils import log_job_outcome

logger = logging.getLogger(__name__)

Processor = Callable[[str], Awaitable[object]]
ExhaustedCallback = Callable[[str, str], Awaitable[object]]


class JobScheduler(ABC):
    """Enqueue a unit of work for an order. Redelivery and exhaustion are the scheduler's concern."""

    @abstractmethod
    async def enqueue(self, order_id: str) -> str:
        """Schedule one step for order_id. Returns the job id."""
        ...


@dataclass
class Job:
    order_id: str
    job_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    attempts_made: int = 0


def backoff_delay(base_delay_sec: float, attempts_made: int, backoff_type: str = "exponential") -> float:
    """Delay before the next delivery after attempts_made failures: base, 2*base, 4*base..."""
    if backoff_type == "fixed":
        return base_delay_sec
    return base_delay_sec * (2 ** max(attempts_made - 1, 0))


def _error_text(error: BaseException) -> str:
    return getattr(error, "message", None) or str(error) or type(error).__name__


class InProcessJobQueue(JobScheduler):
    """asyncio.Queue with `concurrency` worker tasks. Jobs are not durable across process restarts."""

    def __init__(
        self,
        processor: Processor,
        on_exhausted: Optional[ExhaustedCallback] = None,
        concurrency: int = 10,
        attempts: int = 3,
        backoff_delay_sec: float = 1.0,
        backoff_type: str = "exponential",
        name: str = "order-execution",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.name = name
        self._processor = processor
        self._on_exhausted = on_exhausted
        self._concurrency = concurrency
        self._attempts = attempts
        self._backoff_delay_sec = backoff_delay_sec
        self._backoff_type = backoff_type
        self._sleep = sleep
        self._queue: asyncio.Queue = asyncio.Queue()
        self._workers: List[asyncio.Task] = []
        self._retry_tasks: Set[asyncio.Task] = set()
        self._outstanding = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def outstanding(self) -> int:
        """Jobs queued, running or waiting for a retry."""
        return self._outstanding

    async def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"{self.name}-worker-{i}") for i in range(self._concurrency)
        ]
        logger.info("Job queue %s started (concurrency=%d attempts=%d)", self.name, self._concurrency, self._attempts)

    async def stop(self) -> None:
        """Cancel workers and pending retries. In-flight jobs are abandoned."""
        tasks = self._workers + list(self._retry_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers = []
        self._retry_tasks.clear()
        logger.info("Job queue %s stopped (outstanding=%d)", self.name, self._outstanding)

    async def enqueue(self, order_id: str) -> str:
        job = Job(order_id=order_id)
        self._outstanding += 1
        self._idle.clear()
        self._queue.put_nowait(job)
        logger.debug("Enqueued job %s for order %s", job.job_id, order_id)
        return job.job_id

    async def wait_idle(self, timeout: Optional[float] = None) -> None:
        """Wait until every job, including ones it enqueued and pending retries, has finished."""
        await asyncio.wait_for(self._idle.wait(), timeout)

    def _finish(self) -> None:
        self._outstanding -= 1
        if self._outstanding <= 0:
            self._outstanding = 0
            self._idle.set()

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._run(job)
            finally:
                self._queue.task_done()

    async def _run(self, job: Job) -> None:
        try:
            await self._processor(job.order_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            job.attempts_made += 1
            error = _error_text(e)
            if job.attempts_made >= self._attempts:
                log_job_outcome(job.order_id, "exhausted", attempt=job.attempts_made, error=error, job_id=job.job_id)
                await self._exhausted(job, error)
                self._finish()
                return
            delay = backoff_delay(self._backoff_delay_sec, job.attempts_made, self._backoff_type)
            log_job_outcome(
                job.order_id, "retry", attempt=job.attempts_made, error=error, job_id=job.job_id, extra={"delay_sec": delay}
            )
            task = asyncio.create_task(self._redeliver(job, delay))
            self._retry_tasks.add(task)
            task.add_done_callback(self._retry_tasks.discard)
            return
        log_job_outcome(job.order_id, "completed", attempt=job.attempts_made + 1, job_id=job.job_id)
        self._finish()

    async def _redeliver(self, job: Job, delay: float) -> None:
        await self._sleep(delay)
        self._queue.put_nowait(job)

    async def _exhausted(self, job: Job, error: str) -> None:
        if self._on_exhausted is None:
            return
        try:
            await self._on_exhausted(job.order_id, error)
        except Exception as e:
            logger.exception("Exhaustion handler failed for order %s: %s", job.order_id, e)
