"""Reusable HTML helpers shared by the marketplace adapters."""
from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence

from bs4 import BeautifulSoup, Tag

from scraper_core.models import RenderedPage

VIEWS_PATTERN = re.compile(r"(\d[\d\s\u00a0]*)")
FLAG_VALUE = "Tak"


def parse_html(page: RenderedPage) -> BeautifulSoup:
    return BeautifulSoup(page.html or "", "lxml")


def clean_text(value: Optional[str]) -> Optional[str]:
    """Collapse whitespace and return ``None`` for empty strings."""

    if value is None:
        return None
    collapsed = re.sub(r"\s+", " ", value.replace("\u00a0", " ")).strip()
    return collapsed or None


def element_text(element: Optional[Tag]) -> Optional[str]:
    if element is None:
        return None
    return clean_text(element.get_text(" ", strip=True))


def select_first(root: Tag, selectors: Sequence[str]) -> Optional[Tag]:
    """Return the first element matched by the fallback selectors."""

    for selector in selectors:
        element = root.select_one(selector)
        if element is not None:
            return element
    return None


def extract_text(root: Tag, selectors: Sequence[str]) -> Optional[str]:
    """Return the first non-empty text found using the provided selectors."""

    for selector in selectors:
        for element in root.select(selector):
            text = element_text(element)
            if text:
                return text
    return None


def collect_elements(root: Tag, selectors: Sequence[str]) -> List[Tag]:
    """Return elements for the first selector that matches anything."""

    for selector in selectors:
        elements = root.select(selector)
        if elements:
            return elements
    return []


def collect_attributes(root: Tag, selectors: Sequence[str], attribute: str) -> List[str]:
    values: List[str] = []
    for element in collect_elements(root, selectors):
        value = element.get(attribute)
        if value and value not in values:
            values.append(str(value))
    return values


def split_location(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return [part.strip() for part in text.split(",") if part.strip()]


def parse_parameter_line(text: str) -> Optional[tuple]:
    """Split one loosely formatted parameter entry into ``(label, value)``.

    ``"Poziom: 3"`` and ``"Poziom 3"`` become label/value pairs; a single
    word such as ``"Winda"`` is a flag and maps to ``"Tak"``.
    """

    text = clean_text(text) or ""
    if not text:
        return None
    parts = text.split(":")
    if len(parts) == 2:
        label, value = parts[0].strip(), parts[1].strip()
        if label and value:
            return label, value
        return None
    if " " in text:
        label, value = text.split(" ", 1)
        if label and value:
            return label, value.strip()
        return None
    return text, FLAG_VALUE


def parse_views(text: Optional[str], marker: str) -> Optional[int]:
    """Read a view counter such as ``"Wyświetlenia: 1 234"``."""

    if not text or marker not in text.lower():
        return None
    match = VIEWS_PATTERN.search(text)
    if not match:
        return None
    digits = re.sub(r"\D", "", match.group(1))
    return int(digits) if digits else None


def merge_parameters(target: Dict[str, str], label: str, value: str) -> None:
    if label and value and label not in target:
        target[label] = value
