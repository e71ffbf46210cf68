"""Tests for the OLX extraction adapter."""

from __future__ import annotations

import pytest

from scraper_core.errors import UnsupportedSourceError
from scraper_core.models import RenderedPage, Source
from scraper_core.sources import SOURCE_ADAPTERS, adapter_for
from scraper_core.sources.olx import extract_olx

OLX_URL = "https://www.olx.pl/d/oferta/mieszkanie-2-pokoje-CID3-ID1.html"

OLX_HTML = """
<html><body>
  <div data-testid="offer_title"><h4>Mieszkanie 2 pokoje, ul. Mickiewicza</h4></div>
  <div data-testid="ad-price-container">
    <h3>2 500 zł</h3>
    <p class="css-nw4rgq">Do negocjacji</p>
  </div>
  <span data-testid="ad-posted-at">12 marca 2025</span>
  <div data-cy="ad_description"><div class="css-19duwlz">Jasne mieszkanie blisko parku.</div></div>
  <div data-testid="ad-parameters-container">
    <p><span>Prywatne</span></p>
    <p class="css-b5m1rv">Poziom: 3</p>
    <p class="css-b5m1rv">Umeblowane: Tak</p>
    <p class="css-b5m1rv">Powierzchnia: 48 m²</p>
    <p class="css-b5m1rv">Winda</p>
  </div>
  <p class="css-9pna1a">Kraków, Krowodrza</p>
  <div data-testid="ad-photo"><img src="https://cdn.olx.pl/1.jpg"/></div>
  <div data-testid="ad-photo"><img src="https://cdn.olx.pl/2.jpg"/></div>
  <div data-testid="ad-photo"><img src="https://cdn.olx.pl/1.jpg"/></div>
  <h4 data-testid="user-profile-user-name">Anna</h4>
  <p data-testid="member-since"><span>maj 2019</span></p>
  <p data-testid="lastSeenBox"><span class="css-1p85e15">Ostatnio online dziś</span></p>
  <span data-testid="page-view-counter">Wyświetlenia: 1 234</span>
</body></html>
"""


def _page(html: str) -> RenderedPage:
    return RenderedPage(requested_url=OLX_URL, url=OLX_URL, html=html)


def test_registry_maps_olx_to_adapter() -> None:
    assert SOURCE_ADAPTERS[Source.OLX] is extract_olx
    assert adapter_for(Source.OLX) is extract_olx


def test_extract_olx_reads_all_sections() -> None:
    raw = extract_olx(_page(OLX_HTML))

    assert raw.source is Source.OLX
    assert raw.url == OLX_URL
    assert raw.title == "Mieszkanie 2 pokoje, ul. Mickiewicza"
    assert raw.price_text == "2 500 zł"
    assert raw.negotiable is True
    assert raw.created_at_text == "12 marca 2025"
    assert raw.description == "Jasne mieszkanie blisko parku."
    assert raw.city == "Kraków"
    assert raw.district == "Krowodrza"
    assert raw.images == ["https://cdn.olx.pl/1.jpg", "https://cdn.olx.pl/2.jpg"]
    assert raw.contact == "Anna - Na OLX od maj 2019 - Ostatnio online dziś"
    assert raw.views == 1234
    assert raw.metadata["views_method"] == "page-view-counter"


def test_extract_olx_parameter_formats() -> None:
    params = extract_olx(_page(OLX_HTML)).parameters

    assert params["Prywatne"] == "Tak"
    assert params["Poziom"] == "3"
    assert params["Umeblowane"] == "Tak"
    assert params["Powierzchnia"] == "48 m²"
    assert params["Winda"] == "Tak"


def test_inactive_ad_reports_zero_views() -> None:
    html = OLX_HTML.replace(
        "<body>", '<body><div data-testid="ad-inactive-msg">Ogłoszenie nieaktywne</div>'
    )

    raw = extract_olx(_page(html))

    assert raw.views == 0
    assert raw.metadata["views_method"] == "inactive-ad"


def test_missing_sections_degrade_to_empty_values() -> None:
    raw = extract_olx(_page("<html><body><p>Nic tu nie ma</p></body></html>"))

    assert raw.title is None
    assert raw.price_text is None
    assert raw.negotiable is False
    assert raw.images == []
    assert raw.parameters == {}
    assert raw.city is None
    assert raw.contact is None
    assert raw.views == 0
    assert raw.metadata["views_method"] == "none"


def test_custom_registry_without_olx_rejects_source() -> None:
    with pytest.raises(UnsupportedSourceError):
        adapter_for(Source.OLX, {})
