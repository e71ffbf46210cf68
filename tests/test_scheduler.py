"""Tests for queue scheduling, retries and shutdown."""

from __future__ import annotations

import asyncio
from datetime import timezone
from typing import Dict, List

import pytest

from scraper_core.config import ScraperConfig
from scraper_core.errors import NavigationTimeout, UnsupportedSourceError
from scraper_core.models import (
    CanonicalOffer,
    Job,
    JobPriority,
    JobStatus,
    RawExtraction,
    RenderedPage,
    ResolvedAddress,
    Source,
)
from scraper_core.pool import BrowserPool, BrowserSession
from scraper_core.scheduler import QueueScheduler
from scraper_core.upsert import UpsertResult
from scraper_core.workflow import ScrapePipeline


class _Result:
    def __init__(self, job: Job) -> None:
        self.job = job

    def to_dict(self) -> Dict[str, str]:
        return {"url": self.job.url}


class _StubPool:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True

    def stats(self) -> Dict[str, int]:
        return {"capacity": 1, "in_use": 0, "idle": 0, "waiting": 0, "live": 0}


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _config(backoff: float = 0.01, timeout: float = 1.0, concurrency: int = 1) -> ScraperConfig:
    config = ScraperConfig()
    for settings in config.queues.values():
        settings.backoff_delay = backoff
        settings.job_timeout = timeout
        settings.concurrency = concurrency
    return config


async def _wait_for_status(job: Job, *statuses: JobStatus, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while job.status not in statuses:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


@pytest.mark.anyio
async def test_jobs_land_in_queue_named_after_source_and_priority() -> None:
    async def runner(job: Job, timeout: float) -> _Result:
        return _Result(job)

    scheduler = QueueScheduler(runner, _config())
    new_job = await scheduler.enqueue(Source.OLX, "https://www.olx.pl/d/oferta/a", is_new=True)
    old_job = await scheduler.enqueue_url("https://www.otodom.pl/pl/oferta/b")

    assert new_job.queue == "olx-new"
    assert new_job.priority is JobPriority.NEW
    assert old_job.queue == "otodom-existing"
    assert scheduler.stats()["queues"]["olx-new"]["waiting"] == 1

    await scheduler.start()
    await _wait_for_status(new_job, JobStatus.COMPLETED)
    await _wait_for_status(old_job, JobStatus.COMPLETED)
    assert new_job.result == {"url": "https://www.olx.pl/d/oferta/a"}
    assert new_job.enqueued_at.tzinfo is timezone.utc
    assert new_job.finished_at >= new_job.enqueued_at
    await scheduler.stop()


@pytest.mark.anyio
async def test_enqueue_url_rejects_unknown_host() -> None:
    async def runner(job: Job, timeout: float) -> None:
        return None

    scheduler = QueueScheduler(runner, _config())
    with pytest.raises(ValueError):
        await scheduler.enqueue_url("https://example.com/offer")


@pytest.mark.anyio
async def test_retryable_failure_is_retried_after_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    attempts: List[int] = []

    async def runner(job: Job, timeout: float) -> _Result:
        attempts.append(job.attempts_made)
        if job.attempts_made == 1:
            raise NavigationTimeout("slow page")
        return _Result(job)

    scheduler = QueueScheduler(runner, _config(backoff=0.02))
    delays: List[float] = []
    original_backoff = scheduler.config.queues[JobPriority.NEW].backoff_for

    def _recording_backoff(failed_attempts: int) -> float:
        delay = original_backoff(failed_attempts)
        delays.append(delay)
        return delay

    monkeypatch.setattr(scheduler.config.queues[JobPriority.NEW], "backoff_for", _recording_backoff)

    await scheduler.start()
    job = await scheduler.enqueue(Source.OLX, "https://www.olx.pl/d/oferta/a", is_new=True)
    await _wait_for_status(job, JobStatus.COMPLETED)

    assert attempts == [1, 2]
    assert delays == [0.02]
    assert job.attempts_made == 2
    await scheduler.stop()


@pytest.mark.anyio
async def test_job_fails_after_exhausting_attempts() -> None:
    calls: List[int] = []

    async def runner(job: Job, timeout: float) -> None:
        calls.append(job.attempts_made)
        raise NavigationTimeout("never loads")

    scheduler = QueueScheduler(runner, _config(backoff=0.005))
    await scheduler.start()
    job = await scheduler.enqueue(Source.OLX, "https://www.olx.pl/d/oferta/a")
    await _wait_for_status(job, JobStatus.FAILED)

    await asyncio.sleep(0.05)
    assert calls == [1, 2, 3]
    assert job.attempts_made == 3
    assert "NavigationTimeout" in job.last_error
    assert scheduler.queues["olx-existing"].failed[-1] is job
    await scheduler.stop()


@pytest.mark.anyio
async def test_non_retryable_error_fails_immediately() -> None:
    async def runner(job: Job, timeout: float) -> None:
        raise UnsupportedSourceError("no adapter")

    scheduler = QueueScheduler(runner, _config())
    await scheduler.start()
    job = await scheduler.enqueue(Source.OTODOM, "https://www.otodom.pl/pl/oferta/a")
    await _wait_for_status(job, JobStatus.FAILED)

    assert job.attempts_made == 1
    await scheduler.stop()


@pytest.mark.anyio
async def test_job_timeout_counts_as_retryable_failure() -> None:
    budgets: List[float] = []

    async def runner(job: Job, timeout: float) -> _Result:
        budgets.append(timeout)
        if job.attempts_made == 1:
            await asyncio.wait_for(asyncio.sleep(5), timeout)
        return _Result(job)

    scheduler = QueueScheduler(runner, _config(timeout=0.05, backoff=0.005))
    await scheduler.start()
    job = await scheduler.enqueue(Source.OLX, "https://www.olx.pl/d/oferta/a", is_new=True)
    await _wait_for_status(job, JobStatus.COMPLETED)

    assert job.attempts_made == 2
    assert budgets == [0.05, 0.05]
    await scheduler.stop()


@pytest.mark.anyio
async def test_concurrency_limits_active_jobs_per_queue() -> None:
    active = 0
    peak = 0
    release = asyncio.Event()

    async def runner(job: Job, timeout: float) -> _Result:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await release.wait()
        active -= 1
        return _Result(job)

    scheduler = QueueScheduler(runner, _config(concurrency=2))
    await scheduler.start()
    jobs = [await scheduler.enqueue(Source.OLX, f"https://www.olx.pl/d/oferta/{i}") for i in range(5)]
    await asyncio.sleep(0.05)

    assert peak == 2
    assert sum(job.status is JobStatus.WAITING for job in jobs) == 3

    release.set()
    for job in jobs:
        await _wait_for_status(job, JobStatus.COMPLETED)
    await scheduler.stop()


@pytest.mark.anyio
async def test_completed_history_is_bounded() -> None:
    async def runner(job: Job, timeout: float) -> _Result:
        return _Result(job)

    config = _config()
    for settings in config.queues.values():
        settings.keep_completed = 2
    scheduler = QueueScheduler(runner, config)
    await scheduler.start()
    jobs = [await scheduler.enqueue(Source.OLX, f"https://www.olx.pl/d/oferta/{i}") for i in range(4)]
    for job in jobs:
        await _wait_for_status(job, JobStatus.COMPLETED)

    assert len(scheduler.queues["olx-existing"].completed) == 2
    assert scheduler.get_job(jobs[0].id) is None
    assert scheduler.get_job(jobs[-1].id) is jobs[-1]
    await scheduler.stop()


@pytest.mark.anyio
async def test_stop_cancels_queued_and_delayed_jobs_and_closes_pool() -> None:
    started = asyncio.Event()

    async def runner(job: Job, timeout: float) -> None:
        if "retry" in job.url:
            raise NavigationTimeout("try later")
        started.set()
        await asyncio.sleep(10)

    pool = _StubPool()
    scheduler = QueueScheduler(runner, _config(backoff=10.0), pool=pool)
    await scheduler.start()
    delayed = await scheduler.enqueue(Source.OTODOM, "https://www.otodom.pl/pl/oferta/retry")
    running = await scheduler.enqueue(Source.OLX, "https://www.olx.pl/d/oferta/running")
    queued = await scheduler.enqueue(Source.OLX, "https://www.olx.pl/d/oferta/queued")
    await asyncio.wait_for(started.wait(), 1)
    await _wait_for_status(delayed, JobStatus.DELAYED)

    await scheduler.stop()

    assert running.status is JobStatus.CANCELLED
    assert queued.status is JobStatus.CANCELLED
    assert queued.attempts_made == 0
    assert delayed.status is JobStatus.CANCELLED
    assert pool.closed
    with pytest.raises(RuntimeError):
        await scheduler.enqueue(Source.OLX, "https://www.olx.pl/d/oferta/late")


class _StubBrowser:
    async def close(self) -> None:
        return None


class _StubFactory:
    async def create(self) -> BrowserSession:
        return BrowserSession(_StubBrowser())

    async def shutdown(self) -> None:
        return None


class _SlowFetcher:
    def __init__(self, delay: float) -> None:
        self.delay = delay

    async def fetch(self, session: BrowserSession, url: str) -> RenderedPage:
        await asyncio.sleep(self.delay)
        return RenderedPage(requested_url=url, url=url, html="<html></html>")


class _StubResolver:
    async def resolve(self, title, text, city, district=None, location_text=None) -> ResolvedAddress:
        return ResolvedAddress()


class _StubUpsert:
    async def upsert(self, link, normalized, address=None, summary=None, is_new=False) -> UpsertResult:
        return UpsertResult(offer=CanonicalOffer(link=link, source=normalized.source, id=1), created=True)


def _titled_extraction(page: RenderedPage) -> RawExtraction:
    return RawExtraction(source=Source.OLX, url=page.url, title="Mieszkanie")


@pytest.mark.anyio
async def test_waiting_for_a_session_does_not_consume_the_job_timeout() -> None:
    pool = BrowserPool(1, _StubFactory())
    pipeline = ScrapePipeline(
        pool=pool,
        fetcher=_SlowFetcher(0.3),
        resolver=_StubResolver(),
        upsert_engine=_StubUpsert(),
        adapters={Source.OLX: _titled_extraction},
    )
    config = _config(timeout=0.5, backoff=0.005)
    config.queues[JobPriority.NEW].concurrency = 3
    scheduler = QueueScheduler(pipeline.process, config, pool=pool)
    await scheduler.start()

    jobs = [
        await scheduler.enqueue(Source.OLX, f"https://www.olx.pl/d/oferta/{i}", is_new=True) for i in range(3)
    ]
    for job in jobs:
        await _wait_for_status(job, JobStatus.COMPLETED, JobStatus.FAILED, timeout=5.0)

    assert [job.status for job in jobs] == [JobStatus.COMPLETED] * 3
    assert [job.attempts_made for job in jobs] == [1, 1, 1]
    assert all(job.last_error is None for job in jobs)
    await scheduler.stop()


@pytest.mark.anyio
async def test_pipeline_timeout_after_acquire_is_retried() -> None:
    pool = BrowserPool(1, _StubFactory())
    pipeline = ScrapePipeline(
        pool=pool,
        fetcher=_SlowFetcher(1.0),
        resolver=_StubResolver(),
        upsert_engine=_StubUpsert(),
        adapters={Source.OLX: _titled_extraction},
    )
    config = _config(timeout=0.05, backoff=0.005)
    for settings in config.queues.values():
        settings.attempts = 2
    scheduler = QueueScheduler(pipeline.process, config, pool=pool)
    await scheduler.start()

    job = await scheduler.enqueue(Source.OLX, "https://www.olx.pl/d/oferta/slow")
    await _wait_for_status(job, JobStatus.FAILED)

    assert job.attempts_made == 2
    assert "timeout" in job.last_error
    assert pool.in_use == 0
    await scheduler.stop()
