"""Source adapter for Otodom listing pages."""
from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Dict, List, Optional, Sequence, Tuple

from bs4 import Tag

from scraper_core.models import RawExtraction, RenderedPage, Source
from .page_common import (
    clean_text,
    collect_elements,
    element_text,
    extract_text,
    parse_html,
    select_first,
    split_location,
)


@dataclass(frozen=True)
class OtodomSelectors:
    """Selectors describing where Otodom renders each field."""

    price: Sequence[str] = (
        "[data-cy='adPageHeaderPrice']",
        "strong[aria-label='Cena']",
        ".css-1o51x5a.elm6lnc1",
        ".elm6lnc1",
    )
    title: Sequence[str] = ("[data-cy='adPageAdTitle']", "h1.css-4utb9r.e1dqm4hr1", "h1")
    address: Sequence[str] = ("a[href='#map'].css-1eowip8.e1aypsbg1", ".e1aypsbg1", "a[href='#map']")
    description: Sequence[str] = (
        "[data-cy='adPageAdDescription']",
        ".css-1nuh7jg.e1op7yyl1",
        ".e1op7yyl1",
    )
    detail_cell: str = ".e1mm5aqc2"
    detail_section: str = ".e1mm5aqc1"
    detail_value_span: str = "span"
    seller_name: Sequence[str] = (".e4jldvc1.css-vbzhap", ".e4jldvc1")
    offer_type: Sequence[str] = (".css-f4ltfo",)
    image_hosts: Sequence[str] = ("otodom", "cdn")
    max_images: int = 10


# (canonical label, key fragments, excluded fragments)
DETAIL_ALIASES: Tuple[Tuple[str, Tuple[str, ...], Tuple[str, ...]], ...] = (
    ("powierzchnia", ("powierzchnia", "m²"), ()),
    ("liczba pokoi", ("pokoi", "rooms"), ()),
    ("pokoi", ("pokoi", "rooms"), ()),
    ("piętro", ("piętro", "floor"), ()),
    ("winda", ("winda", "elevator"), ()),
    ("typ budynku", ("rodzaj zabudowy", "building type"), ()),
    ("umeblowane", ("umeblowani", "umeblowanie", "furnished"), ()),
    ("czynsz dodatkowy", ("czynsz",), ("kaucja",)),
    ("typ ogłoszeniodawcy", ("typ ogłoszeniodawcy", "advertiser type"), ()),
    ("informacje dodatkowe", ("informacje dodatkowe", "additional information"), ()),
    ("wyposażenie", ("wyposażenie",), ("bezpieczeństwo", "zabezpieczenia")),
    ("media", ("media",), ("social",)),
)
AVAILABLE_FROM_KEYS = ("dostępne od", "available from")
PROMOTIONAL_KEYWORDS = (
    "włącz",
    "powiadomienia",
    "okazji",
    "przegap",
    "subskryb",
    "subscribe",
    "follow",
    "obserwuj",
)
FOOTAGE_PATTERN = re.compile(r"\d+\s*m²")

SELECTORS = OtodomSelectors()


def _detail_key(text: Optional[str]) -> str:
    return (text or "").lower().replace(":", "", 1).strip()


def _store_detail(details: Dict[str, str], key: str, value: str) -> None:
    details[key] = value
    for canonical, fragments, excluded in DETAIL_ALIASES:
        if any(fragment in key for fragment in fragments) and not any(
            token in key for token in excluded
        ):
            details[canonical] = value
    if any(fragment in key for fragment in AVAILABLE_FROM_KEYS):
        details["kontakt"] = f"Dostępne od: {value}"


def _section_value(cell: Tag, selectors: OtodomSelectors) -> Optional[str]:
    spans = [element_text(span) for span in cell.select(selectors.detail_value_span)]
    joined = ", ".join(text for text in spans if text)
    return joined or element_text(cell)


def parse_details(root: Tag, selectors: OtodomSelectors = SELECTORS) -> Dict[str, str]:
    """Collect the details table, keyed by lower-cased labels plus aliases."""

    details: Dict[str, str] = {}
    for section in root.select(selectors.detail_section):
        key_cell = section.select_one(f"{selectors.detail_cell}:first-child")
        value_cell = section.select_one(f"{selectors.detail_cell}:last-child")
        if key_cell is None or value_cell is None:
            continue
        key = _detail_key(element_text(key_cell))
        value = _section_value(value_cell, selectors)
        if key and value and key != value:
            _store_detail(details, key, value)

    # Layouts without section wrappers render label and value as siblings.
    cells = root.select(selectors.detail_cell)
    for index in range(0, len(cells) - 1, 2):
        key = _detail_key(element_text(cells[index]))
        value = element_text(cells[index + 1])
        if key and value and key != value and key not in details:
            _store_detail(details, key, value)

    if any("meble" in value.lower() for value in details.values()):
        details["umeblowane"] = "tak"
    return details


def _extract_footage(root: Tag, selectors: OtodomSelectors) -> Optional[str]:
    for cell in root.select(selectors.detail_cell):
        text = element_text(cell)
        if text and FOOTAGE_PATTERN.search(text.lower()):
            return text
    return None


def _extract_images(root: Tag, selectors: OtodomSelectors) -> List[str]:
    images: List[str] = []
    for image in collect_elements(root, ("img",)):
        src = image.get("src")
        if not src or src in images:
            continue
        if any(host in src for host in selectors.image_hosts):
            images.append(src)
        if len(images) >= selectors.max_images:
            break
    return images


def strip_promotional_suffix(name: Optional[str]) -> Optional[str]:
    """Drop call-to-action text that Otodom appends after the seller name."""

    name = clean_text(name)
    if not name:
        return None
    head, separator, tail = name.partition(" - ")
    if separator and any(keyword in tail.lower() for keyword in PROMOTIONAL_KEYWORDS):
        name = head
    return re.sub(r"[\s-]+$", "", name).strip() or None


def _extract_contact(root: Tag, selectors: OtodomSelectors) -> Optional[str]:
    seller = strip_promotional_suffix(element_text(select_first(root, selectors.seller_name)))
    offer_type = extract_text(root, selectors.offer_type)
    parts = [part for part in (seller, offer_type) if part]
    return " - ".join(parts) if parts else None


def extract_otodom(page: RenderedPage, selectors: OtodomSelectors = SELECTORS) -> RawExtraction:
    """Extract raw Otodom fields. Otodom exposes no view counter."""

    root = parse_html(page)
    address = extract_text(root, selectors.address)
    location = split_location(address)
    details = parse_details(root, selectors)

    return RawExtraction(
        source=Source.OTODOM,
        url=page.url,
        title=extract_text(root, selectors.title),
        price_text=extract_text(root, selectors.price),
        description=extract_text(root, selectors.description),
        images=_extract_images(root, selectors),
        parameters=details,
        views=None,
        city=location[-2] if len(location) >= 2 else None,
        district=location[-3] if len(location) >= 3 else None,
        address_text=address,
        footage_text=_extract_footage(root, selectors),
        contact=_extract_contact(root, selectors),
        metadata={"detail_count": len(details)},
    )


__all__ = ["OtodomSelectors", "extract_otodom", "parse_details", "strip_promotional_suffix"]
