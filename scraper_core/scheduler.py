"""Prioritised job queues with bounded concurrency, timeouts and retries."""
from __future__ import annotations

import asyncio
from collections import deque
import logging
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional
from uuid import uuid4

from .config import QueueSettings, ScraperConfig
from .errors import ScraperError
from .models import Job, JobPriority, JobStatus, Source, queue_name, utc_now

LOGGER = logging.getLogger(__name__)

# Called with the job and its processing budget in seconds; the budget starts
# once the runner holds its shared resources, not when it is called.
JobRunner = Callable[[Job, float], Awaitable[Any]]


class LogicalQueue:
    """One ``{source}-{new|existing}`` queue and its execution history."""

    def __init__(self, source: Source, priority: JobPriority, settings: QueueSettings) -> None:
        self.source = source
        self.priority = priority
        self.settings = settings
        self.name = queue_name(source, priority)
        self.pending: "asyncio.Queue[str]" = asyncio.Queue()
        self.completed: Deque[Job] = deque()
        self.failed: Deque[Job] = deque()
        self.workers: List[asyncio.Task] = []


class QueueScheduler:
    """Run jobs from every logical queue through ``runner``.

    Each queue owns ``concurrency`` worker tasks; a worker holds its slot for
    the whole runner call. The runner receives ``job_timeout`` and raises
    :class:`asyncio.TimeoutError` when its work overruns it. Retryable failures
    are re-queued after an exponential backoff until the attempt budget is
    spent.
    """

    def __init__(self, runner: JobRunner, config: Optional[ScraperConfig] = None, pool: Any = None) -> None:
        self.runner = runner
        self.config = config or ScraperConfig()
        self.pool = pool
        self._queues: Dict[str, LogicalQueue] = {}
        for source in Source:
            for priority in JobPriority:
                queue = LogicalQueue(source, priority, self.config.queue_settings(priority))
                self._queues[queue.name] = queue
        self._jobs: Dict[str, Job] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._started = False
        self._stopping = False
        self._stopped = asyncio.Event()

    @property
    def queues(self) -> Dict[str, LogicalQueue]:
        return dict(self._queues)

    async def enqueue(self, source: Source, url: str, is_new: bool = False) -> Job:
        """Admit one job; it waits in its queue until a worker slot is free."""

        if self._stopping:
            raise RuntimeError("Scheduler is shutting down; no new jobs are accepted")
        priority = JobPriority.from_flag(is_new)
        job = Job(
            id=uuid4().hex,
            source=Source(source),
            url=url,
            priority=priority,
            enqueued_at=utc_now(),
        )
        self._jobs[job.id] = job
        self._queues[job.queue].pending.put_nowait(job.id)
        LOGGER.info("Queued job %s on %s for %s", job.id, job.queue, url)
        return job

    async def enqueue_url(self, url: str, is_new: bool = False) -> Job:
        return await self.enqueue(Source.from_url(url), url, is_new=is_new)

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def jobs(self) -> List[Job]:
        return list(self._jobs.values())

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        for queue in self._queues.values():
            for index in range(queue.settings.concurrency):
                task = asyncio.create_task(self._worker(queue), name=f"{queue.name}-worker-{index}")
                queue.workers.append(task)
        LOGGER.info(
            "Scheduler started: %s",
            ", ".join(f"{q.name}x{q.settings.concurrency}" for q in self._queues.values()),
        )

    async def run(self) -> None:
        """Start the workers and block until :meth:`stop` completes."""

        await self.start()
        await self._stopped.wait()

    async def _worker(self, queue: LogicalQueue) -> None:
        while True:
            job_id = await queue.pending.get()
            job = self._jobs.get(job_id)
            if job is None or job.status is not JobStatus.WAITING:
                continue
            await self._execute(queue, job)

    async def _execute(self, queue: LogicalQueue, job: Job) -> None:
        settings = queue.settings
        job.status = JobStatus.ACTIVE
        job.attempts_made += 1
        try:
            result = await self.runner(job, settings.job_timeout)
        except asyncio.CancelledError:
            job.status = JobStatus.CANCELLED
            job.finished_at = utc_now()
            raise
        except asyncio.TimeoutError:
            self._handle_failure(queue, job, f"Job exceeded {settings.job_timeout:.0f}s timeout", retryable=True)
        except ScraperError as exc:
            self._handle_failure(queue, job, f"{type(exc).__name__}: {exc}", retryable=exc.retryable)
        except Exception as exc:
            LOGGER.exception("Job %s raised an unexpected error", job.id)
            self._handle_failure(queue, job, f"{type(exc).__name__}: {exc}", retryable=True)
        else:
            job.status = JobStatus.COMPLETED
            job.finished_at = utc_now()
            job.last_error = None
            job.result = result.to_dict() if hasattr(result, "to_dict") else result
            self._retain(queue.completed, job, settings.keep_completed)
            LOGGER.info("Job %s on %s completed after %d attempt(s)", job.id, queue.name, job.attempts_made)

    def _handle_failure(self, queue: LogicalQueue, job: Job, message: str, retryable: bool) -> None:
        settings = queue.settings
        job.last_error = message
        if retryable and job.attempts_made < settings.attempts and not self._stopping:
            delay = settings.backoff_for(job.attempts_made)
            job.status = JobStatus.DELAYED
            loop = asyncio.get_running_loop()
            self._timers[job.id] = loop.call_later(delay, self._requeue, queue, job)
            LOGGER.warning(
                "Job %s attempt %d/%d failed (%s); retrying in %.1fs",
                job.id,
                job.attempts_made,
                settings.attempts,
                message,
                delay,
            )
            return
        job.status = JobStatus.FAILED
        job.finished_at = utc_now()
        self._retain(queue.failed, job, settings.keep_failed)
        LOGGER.error(
            "Job %s on %s failed permanently after %d attempt(s): %s",
            job.id,
            queue.name,
            job.attempts_made,
            message,
        )

    def _requeue(self, queue: LogicalQueue, job: Job) -> None:
        self._timers.pop(job.id, None)
        if self._stopping or job.status is not JobStatus.DELAYED:
            return
        job.status = JobStatus.WAITING
        queue.pending.put_nowait(job.id)

    def _retain(self, history: Deque[Job], job: Job, limit: int) -> None:
        history.append(job)
        while len(history) > limit:
            dropped = history.popleft()
            self._jobs.pop(dropped.id, None)

    async def stop(self) -> None:
        """Cancel queued jobs, retry timers and workers, then close the pool."""

        if self._stopping:
            await self._stopped.wait()
            return
        self._stopping = True

        cancelled = 0
        for job_id, handle in list(self._timers.items()):
            handle.cancel()
            job = self._jobs.get(job_id)
            if job is not None:
                job.status = JobStatus.CANCELLED
                cancelled += 1
        self._timers.clear()

        workers: List[asyncio.Task] = []
        for queue in self._queues.values():
            while not queue.pending.empty():
                job = self._jobs.get(queue.pending.get_nowait())
                if job is not None and job.status is JobStatus.WAITING:
                    job.status = JobStatus.CANCELLED
                    cancelled += 1
            workers.extend(queue.workers)
            queue.workers = []

        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        LOGGER.info("Scheduler stopped; %d queued job(s) cancelled", cancelled)

        if self.pool is not None:
            await self.pool.close()
        self._stopped.set()

    def stats(self) -> Dict[str, Any]:
        """Per-queue job counts plus the pool occupancy."""

        counts: Dict[str, Dict[str, int]] = {
            name: {status.value: 0 for status in JobStatus} for name in self._queues
        }
        for job in self._jobs.values():
            counts[job.queue][job.status.value] += 1
        payload: Dict[str, Any] = {"queues": counts}
        if self.pool is not None:
            payload["pool"] = self.pool.stats()
        return payload


__all__ = ["JobRunner", "LogicalQueue", "QueueScheduler"]
