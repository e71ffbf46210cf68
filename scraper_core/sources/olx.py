"""Source adapter for OLX listing pages."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from bs4 import Tag

from scraper_core.models import RawExtraction, RenderedPage, Source
from .page_common import (
    FLAG_VALUE,
    collect_attributes,
    collect_elements,
    element_text,
    extract_text,
    merge_parameters,
    parse_html,
    parse_parameter_line,
    parse_views,
    select_first,
    split_location,
)


@dataclass(frozen=True)
class OlxSelectors:
    """Selectors describing where OLX renders each field."""

    title: Sequence[str] = ("[data-testid='offer_title'] h4", "[data-cy='ad_title']", "h1")
    price: Sequence[str] = ("[data-testid='ad-price-container'] h3",)
    price_container: Sequence[str] = ("[data-testid='ad-price-container']",)
    posted_at: Sequence[str] = ("[data-testid='ad-posted-at']",)
    description: Sequence[str] = (
        "[data-cy='ad_description'] .css-19duwlz",
        "[data-cy='ad_description'] div",
        "[data-cy='ad_description']",
    )
    parameters: Sequence[str] = (
        "[data-testid='ad-parameters-container'] p.css-13x8d99",
        "[data-testid='ad-parameters-container'] p",
    )
    location: Sequence[str] = (
        ".css-9pna1a",
        "[data-testid='map-aside-section'] p",
        "[data-testid='location-date']",
    )
    images: Sequence[str] = ("[data-testid='ad-photo'] img",)
    seller_name: Sequence[str] = ("[data-testid='user-profile-user-name']",)
    member_since: Sequence[str] = ("[data-testid='member-since'] span", "[data-testid='member-since']")
    last_seen: Sequence[str] = ("[data-testid='lastSeenBox'] .css-1p85e15", "[data-testid='lastSeenBox'] span")
    inactive: Sequence[str] = ("[data-testid='ad-inactive-msg']",)
    view_counter: Sequence[str] = ("[data-testid='page-view-counter']",)


SELECTORS = OlxSelectors()
NEGOTIABLE_MARKER = "do negocjacji"
VIEWS_MARKER = "wyświetl"


def _parse_parameters(root: Tag, selectors: OlxSelectors) -> Dict[str, str]:
    parameters: Dict[str, str] = {}
    for element in collect_elements(root, selectors.parameters):
        # Flag entries render the label in an unstyled span.
        flag_span = next(
            (span for span in element.find_all("span") if not span.get("class")), None
        )
        if flag_span is not None:
            label = element_text(flag_span)
            if label:
                merge_parameters(parameters, label, FLAG_VALUE)
            continue
        parsed = parse_parameter_line(element.get_text(" ", strip=True))
        if parsed:
            merge_parameters(parameters, parsed[0], parsed[1])
    return parameters


def _extract_views(root: Tag, selectors: OlxSelectors) -> tuple:
    if select_first(root, selectors.inactive) is not None:
        return 0, "inactive-ad"
    views = parse_views(extract_text(root, selectors.view_counter), VIEWS_MARKER)
    if views is None:
        return 0, "none"
    return views, "page-view-counter"


def _format_contact(name: Optional[str], member_since: Optional[str], last_seen: Optional[str]) -> Optional[str]:
    if not name:
        return None
    contact = name
    if member_since:
        contact += f" - Na OLX od {member_since}"
    if last_seen:
        contact += f" - {last_seen}"
    return contact


def extract_olx(page: RenderedPage, selectors: OlxSelectors = SELECTORS) -> RawExtraction:
    """Extract raw OLX fields; missing sections degrade to ``None``/empty."""

    root = parse_html(page)

    price_container = extract_text(root, selectors.price_container) or ""
    location = split_location(extract_text(root, selectors.location))
    views, views_method = _extract_views(root, selectors)

    return RawExtraction(
        source=Source.OLX,
        url=page.url,
        title=extract_text(root, selectors.title),
        price_text=extract_text(root, selectors.price),
        description=extract_text(root, selectors.description),
        images=collect_attributes(root, selectors.images, "src"),
        parameters=_parse_parameters(root, selectors),
        views=views,
        city=location[0] if location else None,
        district=location[1] if len(location) > 1 else None,
        created_at_text=extract_text(root, selectors.posted_at),
        negotiable=NEGOTIABLE_MARKER in price_container.lower(),
        contact=_format_contact(
            extract_text(root, selectors.seller_name),
            extract_text(root, selectors.member_since),
            extract_text(root, selectors.last_seen),
        ),
        metadata={"views_method": views_method},
    )


__all__ = ["OlxSelectors", "extract_olx"]
