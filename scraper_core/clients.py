"""HTTP clients for the enrichment and alerting services used by the pipeline."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from .errors import AddressResolutionFailed, MatchTriggerError

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class _JsonClient:
    """Small wrapper that posts or gets JSON with a bounded timeout."""

    def __init__(self, base_url: Optional[str], timeout: float = DEFAULT_TIMEOUT, headers: Optional[Dict[str, str]] = None) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.headers = dict(headers or {})

    @property
    def enabled(self) -> bool:
        return self.base_url is not None

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        async with aiohttp.ClientSession(timeout=self.timeout, headers=self.headers) as session:
            async with session.request(method, url, **kwargs) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise aiohttp.ClientResponseError(
                        response.request_info,
                        response.history,
                        status=response.status,
                        message=error_text[:200],
                    )
                return await response.json(content_type=None)


class HttpAddressExtractor(_JsonClient):
    """Client of the text service that finds street addresses and writes summaries."""

    async def extract_address(self, title: str, text: Optional[str] = None) -> Dict[str, Any]:
        """Return ``{"street", "streetNumber", "confidence"}``; an empty street means none found."""

        if not self.enabled:
            LOGGER.debug("Address extractor not configured; skipping extraction")
            return {"street": None, "streetNumber": None, "confidence": 0.0}
        try:
            data = await self._request(
                "POST", f"{self.base_url}/extract-address", json={"title": title, "text": text or ""}
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise AddressResolutionFailed(f"Address extraction failed: {exc}") from exc
        if not isinstance(data, dict):
            raise AddressResolutionFailed("Unexpected address extractor response format")
        street = data.get("street") or None
        number = data.get("streetNumber") or None
        if street is not None and not isinstance(street, str):
            raise AddressResolutionFailed(f"Address extractor returned a non-text street: {street!r}")
        if isinstance(number, (int, float)) and not isinstance(number, bool):
            number = str(number)
        elif number is not None and not isinstance(number, str):
            raise AddressResolutionFailed(f"Address extractor returned a non-text street number: {number!r}")
        try:
            confidence = float(data.get("confidence") or 0.0)
        except (TypeError, ValueError) as exc:
            raise AddressResolutionFailed(f"Address extractor returned an invalid confidence: {exc}") from exc
        return {"street": street, "streetNumber": number, "confidence": confidence}

    async def generate_summary(self, title: str, description: Optional[str]) -> Optional[str]:
        if not self.enabled:
            return None
        if not description or not description.strip():
            LOGGER.debug("No description available for summary generation")
            return None
        try:
            data = await self._request(
                "POST", f"{self.base_url}/summary", json={"title": title, "description": description}
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            LOGGER.warning("Failed to generate summary: %s", exc)
            return None
        summary = data.get("summary") if isinstance(data, dict) else None
        return summary.strip() if isinstance(summary, str) and summary.strip() else None


class NominatimGeocoder(_JsonClient):
    """Forward geocoder speaking the Nominatim ``/search`` API."""

    def __init__(self, search_url: Optional[str], user_agent: str, timeout: float = DEFAULT_TIMEOUT, countrycodes: str = "pl") -> None:
        super().__init__(search_url, timeout=timeout, headers={"User-Agent": user_agent})
        self.countrycodes = countrycodes

    async def geocode_address(self, address: str) -> Optional[Dict[str, float]]:
        """Return ``{"lat": ..., "lng": ...}`` for the best match, or ``None``."""

        if not self.enabled or not address.strip():
            return None
        params = {
            "q": address,
            "format": "jsonv2",
            "limit": 1,
            "accept-language": "pl",
        }
        if self.countrycodes:
            params["countrycodes"] = self.countrycodes
        try:
            payload = await self._request("GET", self.base_url, params=params)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise AddressResolutionFailed(f"Geocoding failed for {address!r}: {exc}") from exc

        if not isinstance(payload, list) or not payload:
            return None
        best = payload[0]
        try:
            return {"lat": float(best["lat"]), "lng": float(best["lon"])}
        except (KeyError, TypeError, ValueError):
            return None


class HttpMatchTrigger(_JsonClient):
    """Notify the alert matcher that an offer was created or updated."""

    async def process_new_offer(self, offer_id: int) -> int:
        if not self.enabled:
            LOGGER.info("Match trigger not configured; offer %s not matched", offer_id)
            return 0
        try:
            data = await self._request("POST", f"{self.base_url}/offers/{offer_id}/match")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise MatchTriggerError(f"Match processing failed for offer {offer_id}: {exc}") from exc
        if isinstance(data, dict):
            return int(data.get("matches") or 0)
        return 0


__all__ = ["HttpAddressExtractor", "HttpMatchTrigger", "NominatimGeocoder"]
