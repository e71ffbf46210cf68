"""Shared data structures used across scraping, normalisation and persistence."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Source(str, Enum):
    """Marketplaces the pipeline knows how to scrape."""

    OLX = "olx"
    OTODOM = "otodom"

    @classmethod
    def from_url(cls, url: str) -> "Source":
        host = (urlparse(url).netloc or "").lower()
        if host.endswith("otodom.pl"):
            return cls.OTODOM
        if host.endswith("olx.pl"):
            return cls.OLX
        raise ValueError(f"Unsupported marketplace URL: {url}")

    @property
    def reports_views(self) -> bool:
        """Only OLX exposes a page-view counter."""

        return self is Source.OLX


class JobPriority(str, Enum):
    NEW = "new"
    EXISTING = "existing"

    @classmethod
    def from_flag(cls, is_new: bool) -> "JobPriority":
        return cls.NEW if is_new else cls.EXISTING


class JobStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class OwnerType(str, Enum):
    PRIVATE = "PRIVATE"
    COMPANY = "COMPANY"


class ParkingType(str, Enum):
    NONE = "NONE"
    STREET = "STREET"
    SECURED = "SECURED"
    GARAGE = "GARAGE"


class BuildingType(str, Enum):
    BLOCK_OF_FLATS = "BLOCK_OF_FLATS"
    TENEMENT = "TENEMENT"
    DETACHED = "DETACHED"
    TERRACED = "TERRACED"
    APARTMENT = "APARTMENT"
    LOFT = "LOFT"
    OTHER = "OTHER"


def queue_name(source: Source, priority: JobPriority) -> str:
    return f"{source.value}-{priority.value}"


@dataclass
class Job:
    """One request to fetch and process a single listing URL."""

    id: str
    source: Source
    url: str
    priority: JobPriority
    enqueued_at: datetime
    attempts_made: int = 0
    status: JobStatus = JobStatus.WAITING
    last_error: Optional[str] = None
    finished_at: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None

    @property
    def is_new(self) -> bool:
        return self.priority is JobPriority.NEW

    @property
    def queue(self) -> str:
        return queue_name(self.source, self.priority)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the job into a JSON-ready structure."""

        return {
            "id": self.id,
            "source": self.source.value,
            "url": self.url,
            "priority": self.priority.value,
            "queue": self.queue,
            "attempts_made": self.attempts_made,
            "status": self.status.value,
            "enqueued_at": self.enqueued_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "last_error": self.last_error,
            "result": self.result,
        }


@dataclass
class RenderedPage:
    """HTML snapshot of a fully loaded listing page."""

    requested_url: str
    url: str
    html: str
    fetched_at: datetime = field(default_factory=utc_now)


@dataclass
class RawExtraction:
    """Marketplace-specific field map as returned by a source adapter."""

    source: Source
    url: str
    title: Optional[str] = None
    price_text: Optional[str] = None
    description: Optional[str] = None
    images: List[str] = field(default_factory=list)
    parameters: Dict[str, str] = field(default_factory=dict)
    views: Optional[int] = None
    city: Optional[str] = None
    district: Optional[str] = None
    address_text: Optional[str] = None
    footage_text: Optional[str] = None
    created_at_text: Optional[str] = None
    negotiable: Optional[bool] = None
    contact: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NormalizedOffer:
    """Typed offer values derived from one extraction; missing values are ``None``."""

    source: Source
    title: Optional[str] = None
    price: Optional[float] = None
    footage: Optional[float] = None
    city: Optional[str] = None
    district: Optional[str] = None
    address_text: Optional[str] = None
    description: Optional[str] = None
    rooms: Optional[int] = None
    floor: Optional[int] = None
    furniture: Optional[bool] = None
    elevator: Optional[bool] = None
    pets: Optional[bool] = None
    negotiable: Optional[bool] = None
    owner_type: Optional[OwnerType] = None
    parking_type: Optional[ParkingType] = None
    building_type: Optional[BuildingType] = None
    rent_additional: Optional[float] = None
    contact: Optional[str] = None
    info_additional: Optional[str] = None
    furnishing: Optional[str] = None
    media: Optional[str] = None
    views: Optional[int] = None
    images: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None


@dataclass
class ResolvedAddress:
    """Outcome of address extraction and geocoding for one offer."""

    street: Optional[str] = None
    street_number: Optional[str] = None
    confidence: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    geocoded_query: Optional[str] = None
    used_fallback: bool = False


@dataclass
class CanonicalOffer:
    """The normalised, persisted listing record keyed by ``link``."""

    link: str
    source: Source
    title: str = ""
    price: Optional[float] = None
    footage: Optional[float] = None
    city: Optional[str] = None
    district: Optional[str] = None
    street: Optional[str] = None
    street_number: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    description: Optional[str] = None
    summary: Optional[str] = None
    rooms: Optional[int] = None
    floor: Optional[int] = None
    furniture: Optional[bool] = None
    elevator: Optional[bool] = None
    pets: Optional[bool] = None
    negotiable: Optional[bool] = None
    owner_type: Optional[OwnerType] = None
    parking_type: Optional[ParkingType] = None
    building_type: Optional[BuildingType] = None
    rent_additional: Optional[float] = None
    contact: Optional[str] = None
    info_additional: Optional[str] = None
    furnishing: Optional[str] = None
    media: Optional[str] = None
    views: int = 0
    images: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    is_new: bool = False
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, Enum):
                payload[key] = value.value
            elif isinstance(value, datetime):
                payload[key] = value.isoformat()
        return payload
