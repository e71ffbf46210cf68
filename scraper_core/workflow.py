"""High level orchestration of one scrape job: fetch, extract, enrich, persist."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Mapping, Optional

from .address import AddressResolver
from .clients import HttpAddressExtractor, HttpMatchTrigger, NominatimGeocoder
from .config import ScraperConfig
from .errors import ExtractionIncomplete, NavigationError, NavigationTimeout
from .fetcher import PageFetcher
from .models import Job, NormalizedOffer, RawExtraction, RenderedPage, Source
from .normalizer import normalize_extraction
from .pool import BrowserPool, BrowserSession, SessionFactory
from .repository import OfferRepository
from .scheduler import QueueScheduler
from .sources import SOURCE_ADAPTERS, SourceAdapter, adapter_for
from .upsert import UpsertEngine, UpsertResult

LOGGER = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Result returned by :meth:`ScrapePipeline.process`."""

    job_id: str
    url: str
    source: Source
    upsert: UpsertResult
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"job_id": self.job_id, "url": self.url, "source": self.source.value}
        payload.update(self.upsert.to_dict())
        payload["warnings"] = list(self.warnings)
        return payload


class ScrapePipeline:
    """Run one job while holding a pooled browser session for its whole duration."""

    def __init__(
        self,
        pool: BrowserPool,
        fetcher: PageFetcher,
        resolver: AddressResolver,
        upsert_engine: UpsertEngine,
        summarizer: Any = None,
        adapters: Optional[Mapping[Source, SourceAdapter]] = None,
    ) -> None:
        self.pool = pool
        self.fetcher = fetcher
        self.resolver = resolver
        self.upsert_engine = upsert_engine
        self.summarizer = summarizer
        self.adapters = dict(SOURCE_ADAPTERS if adapters is None else adapters)

    @staticmethod
    def _page_source(page: RenderedPage, fallback: Source) -> Source:
        # Follow redirects across marketplaces, e.g. OLX listings served by Otodom.
        try:
            return Source.from_url(page.url)
        except ValueError:
            return fallback

    def _check_complete(self, raw: RawExtraction, warnings: List[str]) -> None:
        if raw.title:
            return
        error = ExtractionIncomplete(f"No title found on {raw.url}")
        LOGGER.warning("%s; continuing with partial data", error)
        warnings.append(str(error))

    async def _summarize(self, normalized: NormalizedOffer) -> Optional[str]:
        if self.summarizer is None:
            return None
        try:
            return await self.summarizer.generate_summary(normalized.title or "", normalized.description)
        except Exception as exc:  # pragma: no cover - summaries are best effort
            LOGGER.warning("Failed to generate summary: %s", exc)
            return None

    async def _resolve_address(self, normalized: NormalizedOffer):
        if normalized.source is Source.OTODOM:
            text = normalized.address_text or normalized.description
            location_text = normalized.address_text
        else:
            text = normalized.description
            location_text = None
        return await self.resolver.resolve(
            normalized.title,
            text,
            normalized.city,
            normalized.district,
            location_text=location_text,
        )

    async def _run(self, job: Job, page: RenderedPage) -> PipelineResult:
        warnings: List[str] = []
        source = self._page_source(page, job.source)
        raw = adapter_for(source, self.adapters)(page)
        self._check_complete(raw, warnings)
        if raw.metadata.get("views_method"):
            LOGGER.info("Views extraction for %s: %s using %s", page.url, raw.views, raw.metadata["views_method"])

        normalized = normalize_extraction(raw)
        address = await self._resolve_address(normalized)
        summary = await self._summarize(normalized)
        result = await self.upsert_engine.upsert(
            page.url,
            normalized,
            address=address,
            summary=summary,
            is_new=job.is_new,
        )
        return PipelineResult(job_id=job.id, url=page.url, source=source, upsert=result, warnings=warnings)

    async def _fetch_and_run(self, job: Job, session: BrowserSession) -> PipelineResult:
        page = await self.fetcher.fetch(session, job.url)
        return await self._run(job, page)

    async def process(self, job: Job, timeout: Optional[float] = None) -> PipelineResult:
        """Fetch ``job.url`` and persist the extracted offer.

        ``timeout`` bounds the work done with the session; waiting for a free
        session does not count against it. Fetch and persistence failures
        propagate so the scheduler can retry. The session is discarded after
        navigation failures, timeouts or cancellation and returned to the pool
        otherwise.
        """

        LOGGER.info("Starting %s job %s for %s", job.queue, job.id, job.url)
        session = await self.pool.acquire()
        healthy = True
        try:
            return await asyncio.wait_for(self._fetch_and_run(job, session), timeout=timeout)
        except (NavigationError, NavigationTimeout, asyncio.TimeoutError, asyncio.CancelledError):
            healthy = False
            raise
        finally:
            if healthy:
                await self.pool.release(session)
            else:
                await self.pool.discard(session)


def build_pipeline(config: ScraperConfig) -> ScrapePipeline:
    """Wire the pool, fetcher, enrichment clients and offer store from ``config``."""

    pool = BrowserPool(
        config.pool_capacity,
        SessionFactory(headless=config.headless, executable_path=config.browser_path),
    )
    extractor = HttpAddressExtractor(config.address_extractor_url)
    geocoder = NominatimGeocoder(config.geocoder_url, config.geocoder_user_agent)
    upsert_engine = UpsertEngine(
        OfferRepository(config.database_path),
        match_trigger=HttpMatchTrigger(config.match_trigger_url),
    )
    return ScrapePipeline(
        pool=pool,
        fetcher=PageFetcher(config.fetcher),
        resolver=AddressResolver(extractor, geocoder),
        upsert_engine=upsert_engine,
        summarizer=extractor,
    )


def build_scheduler(config: ScraperConfig) -> QueueScheduler:
    pipeline = build_pipeline(config)
    return QueueScheduler(pipeline.process, config=config, pool=pipeline.pool)


__all__ = ["PipelineResult", "ScrapePipeline", "build_pipeline", "build_scheduler"]
