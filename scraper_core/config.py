"""Configuration helpers for the scraping pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
import os
import re
from typing import Any, Dict, Mapping, Optional, Tuple

from .models import JobPriority

_TRUE_VALUES = {"1", "true", "yes", "on", "tak"}
_FALSE_VALUES = {"0", "false", "no", "off", "nie"}


@dataclass
class QueueSettings:
    """Concurrency, timeout and retry policy of one logical queue."""

    concurrency: int
    job_timeout: float
    attempts: int = 3
    backoff_delay: float = 5.0
    keep_completed: int = 100
    keep_failed: int = 1000

    def backoff_for(self, failed_attempts: int) -> float:
        """Delay before the next try after ``failed_attempts`` failures (>= 1)."""

        return self.backoff_delay * (2 ** max(failed_attempts - 1, 0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "concurrency": self.concurrency,
            "job_timeout": self.job_timeout,
            "attempts": self.attempts,
            "backoff_delay": self.backoff_delay,
            "keep_completed": self.keep_completed,
            "keep_failed": self.keep_failed,
        }


@dataclass
class FetcherSettings:
    """Navigation and settling budget used by the page fetcher."""

    navigation_timeout: float = 30.0
    settle_delay: float = 3.0
    warmup_delay: Tuple[float, float] = (2.0, 5.0)
    scroll_step: int = 100
    scroll_interval: float = 0.1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "navigation_timeout": self.navigation_timeout,
            "settle_delay": self.settle_delay,
            "warmup_delay": list(self.warmup_delay),
            "scroll_step": self.scroll_step,
            "scroll_interval": self.scroll_interval,
        }


def _default_queues() -> Dict[JobPriority, QueueSettings]:
    return {
        JobPriority.NEW: QueueSettings(concurrency=5, job_timeout=60.0),
        JobPriority.EXISTING: QueueSettings(concurrency=2, job_timeout=120.0),
    }


@dataclass
class ScraperConfig:
    """Canonical configuration used by the scheduler, pool and clients."""

    pool_capacity: int = 8
    queues: Dict[JobPriority, QueueSettings] = field(default_factory=_default_queues)
    fetcher: FetcherSettings = field(default_factory=FetcherSettings)
    headless: bool = True
    browser_path: Optional[str] = None
    database_path: str = "offers.db"
    geocoder_url: Optional[str] = "https://nominatim.openstreetmap.org/search"
    geocoder_user_agent: str = "rental-offer-scraper/1.0"
    address_extractor_url: Optional[str] = None
    match_trigger_url: Optional[str] = None

    def queue_settings(self, priority: JobPriority) -> QueueSettings:
        return self.queues[priority]

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serialisable version of the configuration."""

        return {
            "pool_capacity": self.pool_capacity,
            "queues": {priority.value: settings.to_dict() for priority, settings in self.queues.items()},
            "fetcher": self.fetcher.to_dict(),
            "headless": self.headless,
            "browser_path": self.browser_path,
            "database_path": self.database_path,
            "geocoder_url": self.geocoder_url,
            "address_extractor_url": self.address_extractor_url,
            "match_trigger_url": self.match_trigger_url,
        }


def _parse_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = str(value).strip().lower()
    cleaned = re.sub(r"\s*(?:ms|s|sec|seconds)$", "", cleaned)
    cleaned = cleaned.replace(",", ".")
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def _parse_int(value: Any) -> Optional[int]:
    parsed = _parse_float(value)
    if parsed is None:
        return None
    return int(parsed)


def _parse_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


def _positive(value: Optional[float], default: float) -> float:
    if value is None or value <= 0:
        return default
    return value


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def create_config_from_mapping(data: Mapping[str, Any]) -> ScraperConfig:
    """Create a configuration object from an environment-style mapping.

    Unknown keys are ignored and unparsable values keep their defaults, so a
    typo in one variable never prevents the worker from starting.
    """

    config = ScraperConfig()
    config.pool_capacity = int(_positive(_parse_int(data.get("SCRAPER_POOL_CAPACITY")), config.pool_capacity))

    attempts = _parse_int(data.get("SCRAPER_ATTEMPTS"))
    backoff = _parse_float(data.get("SCRAPER_BACKOFF_DELAY"))
    keep_completed = _parse_int(data.get("SCRAPER_KEEP_COMPLETED"))
    keep_failed = _parse_int(data.get("SCRAPER_KEEP_FAILED"))

    for priority, settings in config.queues.items():
        prefix = f"SCRAPER_{priority.value.upper()}"
        settings.concurrency = int(_positive(_parse_int(data.get(f"{prefix}_CONCURRENCY")), settings.concurrency))
        settings.job_timeout = _positive(_parse_float(data.get(f"{prefix}_TIMEOUT")), settings.job_timeout)
        settings.attempts = int(_positive(attempts, settings.attempts))
        if backoff is not None and backoff >= 0:
            settings.backoff_delay = backoff
        settings.keep_completed = int(_positive(keep_completed, settings.keep_completed))
        settings.keep_failed = int(_positive(keep_failed, settings.keep_failed))

    fetcher = config.fetcher
    fetcher.navigation_timeout = _positive(
        _parse_float(data.get("SCRAPER_NAVIGATION_TIMEOUT")), fetcher.navigation_timeout
    )
    settle = _parse_float(data.get("SCRAPER_SETTLE_DELAY"))
    if settle is not None and settle >= 0:
        fetcher.settle_delay = settle

    headless = _parse_bool(data.get("SCRAPER_HEADLESS"))
    if headless is not None:
        config.headless = headless
    config.browser_path = _clean_str(data.get("SCRAPER_BROWSER_PATH"))
    config.database_path = _clean_str(data.get("OFFER_DB_PATH")) or config.database_path
    if "GEOCODER_URL" in data:
        config.geocoder_url = _clean_str(data.get("GEOCODER_URL"))
    config.geocoder_user_agent = _clean_str(data.get("GEOCODER_USER_AGENT")) or config.geocoder_user_agent
    config.address_extractor_url = _clean_str(data.get("ADDRESS_EXTRACTOR_URL"))
    config.match_trigger_url = _clean_str(data.get("MATCH_TRIGGER_URL"))
    return config


def create_config_from_env(environ: Optional[Mapping[str, str]] = None) -> ScraperConfig:
    """Build the configuration from process environment variables."""

    return create_config_from_mapping(os.environ if environ is None else environ)


def create_config(data: Mapping[str, Any] | None = None) -> ScraperConfig:
    """Unified helper that accepts either a mapping or nothing (environment)."""

    if data is None:
        return create_config_from_env()
    if isinstance(data, Mapping):
        return create_config_from_mapping(data)
    raise TypeError("Unsupported configuration payload type: expected a mapping or None")
