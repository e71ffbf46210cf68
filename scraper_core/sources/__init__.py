"""Marketplace-specific extraction adapters."""
from __future__ import annotations

from typing import Callable, Dict, Mapping, Optional

from scraper_core.errors import UnsupportedSourceError
from scraper_core.models import RawExtraction, RenderedPage, Source
from .olx import extract_olx
from .otodom import extract_otodom

SourceAdapter = Callable[[RenderedPage], RawExtraction]

SOURCE_ADAPTERS: Dict[Source, SourceAdapter] = {
    Source.OLX: extract_olx,
    Source.OTODOM: extract_otodom,
}


def adapter_for(source: Source, adapters: Optional[Mapping[Source, SourceAdapter]] = None) -> SourceAdapter:
    """Look ``source`` up in ``adapters`` (the built-in registry by default)."""

    registry = SOURCE_ADAPTERS if adapters is None else adapters
    adapter = registry.get(source)
    if adapter is None:
        raise UnsupportedSourceError(f"No extraction adapter registered for {Source(source).value}")
    return adapter


__all__ = ["SOURCE_ADAPTERS", "SourceAdapter", "adapter_for"]
