"""Street extraction, validation and geocoding for scraped offers."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from .errors import AddressResolutionFailed
from .models import ResolvedAddress

LOGGER = logging.getLogger(__name__)

UNKNOWN_CITY = "Nieznane"


class StreetNameCleaner:
    """Normalise street names proposed by the extractor and reject junk."""

    PREFIX_PATTERN = re.compile(r"^(?:ul\.?|ulica)\s+", re.IGNORECASE)
    INVALID_TOKENS = {
        "brak",
        "none",
        "null",
        "nieznana",
        "nieznany",
        "centrum",
        "okolica",
        "mieszkanie",
        "ulica",
        "adres",
    }

    @classmethod
    def normalize_street_name(cls, street: Optional[str]) -> str:
        if not street:
            return ""
        cleaned = re.sub(r"\s+", " ", street).strip()
        # "Plac" and "Aleja" are part of the name and stay.
        cleaned = cls.PREFIX_PATTERN.sub("", cleaned)
        return cleaned.strip(" ,.;:-")

    @classmethod
    def is_valid_street_name(cls, street: Optional[str]) -> bool:
        if not street or len(street) < 3:
            return False
        if not re.search(r"[^\W\d_]", street):
            return False
        if street.replace(" ", "").isdigit():
            return False
        return street.lower() not in cls.INVALID_TOKENS


class AddressResolver:
    """Extract a street from the offer text and attach coordinates.

    The extractor and geocoder are duck-typed; see
    :class:`~scraper_core.clients.HttpAddressExtractor` and
    :class:`~scraper_core.clients.NominatimGeocoder`.
    """

    def __init__(self, extractor: Any, geocoder: Any, cleaner: type = StreetNameCleaner) -> None:
        self.extractor = extractor
        self.geocoder = geocoder
        self.cleaner = cleaner

    async def _geocode(self, query: str) -> Optional[Dict[str, float]]:
        LOGGER.debug("Geocoding address: %s", query)
        result = await self.geocoder.geocode_address(query)
        if result:
            LOGGER.info("Geocoded %r -> lat %s, lng %s", query, result["lat"], result["lng"])
        else:
            LOGGER.warning("Failed to geocode address: %s", query)
        return result

    @staticmethod
    def fallback_query(city: Optional[str], district: Optional[str], location_text: Optional[str] = None) -> Optional[str]:
        if location_text:
            return location_text
        if not city or city == UNKNOWN_CITY:
            return None
        return f"{district}, {city}" if district else city

    async def resolve(
        self,
        title: Optional[str],
        text: Optional[str],
        city: Optional[str],
        district: Optional[str] = None,
        location_text: Optional[str] = None,
    ) -> ResolvedAddress:
        """Never raises for enrichment failures; coordinates stay ``None`` instead."""

        resolved = ResolvedAddress()
        if not title and not text:
            return resolved

        try:
            proposal = await self.extractor.extract_address(title or "", text)
            raw_street = proposal.get("street")
            street = self.cleaner.normalize_street_name(raw_street)
            if raw_street and self.cleaner.is_valid_street_name(street):
                resolved.street = street
                resolved.street_number = proposal.get("streetNumber") or None
                resolved.confidence = proposal.get("confidence")
                LOGGER.info(
                    "Address extracted: %s %s (confidence: %s)",
                    street,
                    resolved.street_number or "",
                    resolved.confidence,
                )
                query = street if not resolved.street_number else f"{street} {resolved.street_number}"
                if city and city != UNKNOWN_CITY:
                    query = f"{query}, {city}"
                coordinates = await self._geocode(query)
            else:
                if raw_street:
                    LOGGER.warning("Rejected invalid street after cleaning: %r -> %r", raw_street, street)
                else:
                    LOGGER.debug("No street found in offer text; trying location geocoding")
                query = self.fallback_query(city, district, location_text)
                resolved.used_fallback = True
                coordinates = await self._geocode(query) if query else None
            resolved.geocoded_query = query
            if coordinates:
                resolved.latitude = float(coordinates["lat"])
                resolved.longitude = float(coordinates["lng"])
        except AddressResolutionFailed as exc:
            LOGGER.warning("Address resolution failed: %s", exc)
            return resolved
        except Exception:
            LOGGER.exception("Unexpected error while resolving the address of %r", title)
            return ResolvedAddress()
        return resolved


__all__ = ["AddressResolver", "StreetNameCleaner", "UNKNOWN_CITY"]
