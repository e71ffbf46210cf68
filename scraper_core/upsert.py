"""Create-or-merge persistence of canonical offers."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, Optional

from .address import UNKNOWN_CITY
from .errors import DuplicateOfferError, MatchTriggerError
from .models import CanonicalOffer, NormalizedOffer, ResolvedAddress, utc_now
from .repository import OfferRepository

LOGGER = logging.getLogger(__name__)


def _prefer_present(new: Any, previous: Any) -> Any:
    """New value wins when truthy; empty strings, zero and empty lists keep the old one."""

    return new or previous


def _prefer_defined(new: Any, previous: Any) -> Any:
    """New value wins unless it is ``None``; ``False`` overwrites ``True``."""

    return previous if new is None else new


def _prefer_city(new: Any, previous: Any) -> Any:
    cleaned = new.strip() if isinstance(new, str) else None
    return cleaned or previous or UNKNOWN_CITY


MergeRule = Callable[[Any, Any], Any]

MERGE_RULES: Dict[str, MergeRule] = {
    "title": _prefer_present,
    "price": _prefer_present,
    "footage": _prefer_present,
    "city": _prefer_city,
    "district": _prefer_present,
    "street": _prefer_present,
    "street_number": _prefer_present,
    "latitude": _prefer_defined,
    "longitude": _prefer_defined,
    "description": _prefer_present,
    "summary": _prefer_present,
    "rooms": _prefer_present,
    "floor": _prefer_defined,
    "furniture": _prefer_defined,
    "elevator": _prefer_defined,
    "pets": _prefer_defined,
    "negotiable": _prefer_defined,
    "owner_type": _prefer_defined,
    "parking_type": _prefer_defined,
    "building_type": _prefer_defined,
    "rent_additional": _prefer_defined,
    "contact": _prefer_present,
    "info_additional": _prefer_defined,
    "furnishing": _prefer_defined,
    "media": _prefer_defined,
    "images": _prefer_present,
}

CREATE_DEFAULTS: Dict[str, Any] = {
    "title": "",
    "price": 0.0,
    "footage": 0.0,
    "city": UNKNOWN_CITY,
    "description": "",
    "views": 0,
    "images": [],
    "negotiable": False,
}


@dataclass
class UpsertResult:
    """Outcome of one create-or-merge call."""

    offer: CanonicalOffer
    created: bool
    previous_views: int = 0
    matches: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "offer_id": self.offer.id,
            "link": self.offer.link,
            "created": self.created,
            "views": self.offer.views,
            "previous_views": self.previous_views,
            "matches": self.matches,
        }


def candidate_values(
    normalized: NormalizedOffer, address: Optional[ResolvedAddress], summary: Optional[str]
) -> Dict[str, Any]:
    """Flatten one scrape into the field values that ``MERGE_RULES`` consume."""

    address = address or ResolvedAddress()
    values = {name: getattr(normalized, name, None) for name in MERGE_RULES}
    values.update(
        {
            "street": address.street,
            "street_number": address.street_number,
            "latitude": address.latitude,
            "longitude": address.longitude,
            "summary": summary,
        }
    )
    return values


def merge_views(normalized: NormalizedOffer, previous: int) -> int:
    """Reporting sources never lower the count; silent sources keep it."""

    if not normalized.source.reports_views or normalized.views is None:
        return previous
    return max(previous, normalized.views)


class UpsertEngine:
    """The single writer of :class:`CanonicalOffer` rows during scraping."""

    def __init__(self, repository: OfferRepository, match_trigger: Any = None) -> None:
        self.repository = repository
        self.match_trigger = match_trigger

    def build_new(self, link: str, normalized: NormalizedOffer, values: Dict[str, Any], is_new: bool) -> CanonicalOffer:
        now = utc_now()
        payload = {name: value for name, value in values.items() if value is not None}
        for name, default in CREATE_DEFAULTS.items():
            if payload.get(name) in (None, "", []):
                payload[name] = list(default) if isinstance(default, list) else default
        payload["views"] = merge_views(normalized, 0)
        return CanonicalOffer(
            link=link,
            source=normalized.source,
            created_at=normalized.created_at or now,
            updated_at=now,
            is_new=is_new,
            **payload,
        )

    def merge(self, existing: CanonicalOffer, normalized: NormalizedOffer, values: Dict[str, Any]) -> CanonicalOffer:
        for name, rule in MERGE_RULES.items():
            setattr(existing, name, rule(values.get(name), getattr(existing, name)))
        existing.views = merge_views(normalized, existing.views)
        existing.updated_at = utc_now()
        return existing

    def _write(self, link: str, normalized: NormalizedOffer, values: Dict[str, Any], is_new: bool) -> UpsertResult:
        existing = self.repository.get_by_link(link)
        if existing is None:
            offer = self.build_new(link, normalized, values, is_new)
            try:
                self.repository.insert(offer)
                return UpsertResult(offer=offer, created=True)
            except DuplicateOfferError:
                LOGGER.info("Offer %s was created concurrently; merging instead", link)
                existing = self.repository.get_by_link(link)
                if existing is None:
                    raise
        previous_views = existing.views
        offer = self.repository.update(self.merge(existing, normalized, values))
        return UpsertResult(offer=offer, created=False, previous_views=previous_views)

    async def upsert(
        self,
        link: str,
        normalized: NormalizedOffer,
        address: Optional[ResolvedAddress] = None,
        summary: Optional[str] = None,
        is_new: bool = False,
    ) -> UpsertResult:
        """Create or merge the offer for ``link`` and run alert matching after commit."""

        values = candidate_values(normalized, address, summary)
        result = await asyncio.to_thread(self._write, link, normalized, values, is_new)
        if result.created:
            LOGGER.info("Created %s offer %s with %d views", normalized.source.value, result.offer.id, result.offer.views)
        else:
            LOGGER.info(
                "Updated %s offer %s views: %d -> %d",
                normalized.source.value,
                result.offer.id,
                result.previous_views,
                result.offer.views,
            )
        result.matches = await self._trigger_matches(result.offer)
        return result

    async def _trigger_matches(self, offer: CanonicalOffer) -> Optional[int]:
        if self.match_trigger is None or offer.id is None:
            return None
        try:
            matches = await self.match_trigger.process_new_offer(offer.id)
        except MatchTriggerError as exc:
            LOGGER.error("Failed to process matches for offer %s: %s", offer.id, exc)
            return None
        except Exception:  # pragma: no cover - matching must never fail the job
            LOGGER.exception("Unexpected match trigger failure for offer %s", offer.id)
            return None
        LOGGER.info("Processed %s matches for offer %s", matches, offer.id)
        return matches


__all__ = ["CREATE_DEFAULTS", "MERGE_RULES", "UpsertEngine", "UpsertResult", "candidate_values", "merge_views"]
