"""Tests for the Otodom extraction adapter."""

from __future__ import annotations

import unittest

from scraper_core.models import RenderedPage, Source
from scraper_core.sources import SOURCE_ADAPTERS
from scraper_core.sources.otodom import extract_otodom, strip_promotional_suffix

OTODOM_URL = "https://www.otodom.pl/pl/oferta/mieszkanie-ID4abc"

OTODOM_HTML = """
<html><body>
  <h1 data-cy="adPageAdTitle">Nowoczesne 2 pokoje przy parku</h1>
  <strong data-cy="adPageHeaderPrice">3 200 zł</strong>
  <a href="#map" class="e1aypsbg1">ul. Długa, Stare Miasto, Gdańsk, pomorskie</a>
  <div data-cy="adPageAdDescription">Mieszkanie po remoncie.</div>
  <div class="e1mm5aqc1">
    <p class="e1mm5aqc2">Powierzchnia:</p><p class="e1mm5aqc2">52 m²</p>
  </div>
  <div class="e1mm5aqc1">
    <p class="e1mm5aqc2">Liczba pokoi:</p><p class="e1mm5aqc2">2</p>
  </div>
  <div class="e1mm5aqc1">
    <p class="e1mm5aqc2">Piętro:</p><p class="e1mm5aqc2">3/5</p>
  </div>
  <div class="e1mm5aqc1">
    <p class="e1mm5aqc2">Czynsz:</p><p class="e1mm5aqc2">650 zł</p>
  </div>
  <div class="e1mm5aqc1">
    <p class="e1mm5aqc2">Dostępne od:</p><p class="e1mm5aqc2">2025-04-01</p>
  </div>
  <div class="e1mm5aqc1">
    <p class="e1mm5aqc2">Wyposażenie:</p>
    <p class="e1mm5aqc2"><span>lodówka</span><span>meble</span><span>pralka</span></p>
  </div>
  <div class="e1mm5aqc1">
    <p class="e1mm5aqc2">Bezpieczeństwo i zabezpieczenia wyposażenie:</p><p class="e1mm5aqc2">domofon</p>
  </div>
  <div class="e1mm5aqc1">
    <p class="e1mm5aqc2">Typ ogłoszeniodawcy:</p><p class="e1mm5aqc2">prywatny</p>
  </div>
  <img src="https://ireland.apollo.olxcdn.com/v1/files/a.jpg"/>
  <img src="https://static.otodom.pl/b.jpg"/>
  <img src="https://example.com/logo.png"/>
  <div class="e4jldvc1 css-vbzhap">Jan Kowalski - Włącz powiadomienia i nie przegap okazji</div>
  <div class="css-f4ltfo">Oferta prywatna</div>
</body></html>
"""


def _page(html: str) -> RenderedPage:
    return RenderedPage(requested_url=OTODOM_URL, url=OTODOM_URL, html=html)


class ExtractOtodomTests(unittest.TestCase):
    def setUp(self) -> None:
        self.raw = extract_otodom(_page(OTODOM_HTML))

    def test_registry_entry(self) -> None:
        self.assertIs(SOURCE_ADAPTERS[Source.OTODOM], extract_otodom)

    def test_header_fields(self) -> None:
        self.assertEqual(self.raw.title, "Nowoczesne 2 pokoje przy parku")
        self.assertEqual(self.raw.price_text, "3 200 zł")
        self.assertEqual(self.raw.description, "Mieszkanie po remoncie.")
        self.assertEqual(self.raw.footage_text, "52 m²")

    def test_city_and_district_come_from_address_tail(self) -> None:
        self.assertEqual(self.raw.address_text, "ul. Długa, Stare Miasto, Gdańsk, pomorskie")
        self.assertEqual(self.raw.city, "Gdańsk")
        self.assertEqual(self.raw.district, "Stare Miasto")

    def test_details_use_canonical_aliases(self) -> None:
        details = self.raw.parameters
        self.assertEqual(details["powierzchnia"], "52 m²")
        self.assertEqual(details["liczba pokoi"], "2")
        self.assertEqual(details["pokoi"], "2")
        self.assertEqual(details["piętro"], "3/5")
        self.assertEqual(details["czynsz dodatkowy"], "650 zł")
        self.assertEqual(details["kontakt"], "Dostępne od: 2025-04-01")
        self.assertEqual(details["typ ogłoszeniodawcy"], "prywatny")
        self.assertEqual(details["wyposażenie"], "lodówka, meble, pralka")

    def test_furniture_is_inferred_from_equipment(self) -> None:
        self.assertEqual(self.raw.parameters["umeblowane"], "tak")

    def test_images_are_limited_to_cdn_hosts(self) -> None:
        self.assertEqual(
            self.raw.images,
            ["https://ireland.apollo.olxcdn.com/v1/files/a.jpg", "https://static.otodom.pl/b.jpg"],
        )

    def test_contact_drops_promotional_suffix(self) -> None:
        self.assertEqual(self.raw.contact, "Jan Kowalski - Oferta prywatna")

    def test_views_are_not_reported(self) -> None:
        self.assertIsNone(self.raw.views)

    def test_empty_page(self) -> None:
        raw = extract_otodom(_page("<html><body></body></html>"))
        self.assertIsNone(raw.title)
        self.assertIsNone(raw.city)
        self.assertEqual(raw.parameters, {})
        self.assertEqual(raw.images, [])
        self.assertIsNone(raw.contact)


class StripPromotionalSuffixTests(unittest.TestCase):
    def test_keeps_regular_hyphenated_names(self) -> None:
        self.assertEqual(strip_promotional_suffix("Biuro - Nieruchomości Nord"), "Biuro - Nieruchomości Nord")

    def test_trims_trailing_dashes(self) -> None:
        self.assertEqual(strip_promotional_suffix("Agencja XYZ -  "), "Agencja XYZ")


if __name__ == "__main__":
    unittest.main()
