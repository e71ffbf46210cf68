import sqlite3
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from scraper_core.errors import DuplicateOfferError, PersistenceError
from scraper_core.models import BuildingType, CanonicalOffer, OwnerType, Source
from scraper_core.repository import OfferRepository

LINK = "https://www.olx.pl/d/oferta/mieszkanie-ID1.html"


class OfferRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.repository = OfferRepository(str(Path(self._tmp.name) / "nested" / "offers.db"))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _stored_offers(self) -> int:
        with sqlite3.connect(self.repository.database) as connection:
            return connection.execute("SELECT COUNT(*) FROM offers").fetchone()[0]

    def _offer(self, **overrides) -> CanonicalOffer:
        values = dict(
            link=LINK,
            source=Source.OLX,
            title="Mieszkanie",
            price=2500.0,
            furniture=True,
            elevator=False,
            owner_type=OwnerType.PRIVATE,
            building_type=BuildingType.BLOCK_OF_FLATS,
            images=["https://cdn.olx.pl/1.jpg", "https://cdn.olx.pl/2.jpg"],
            created_at=datetime(2025, 3, 1, 12, 0),
            updated_at=datetime(2025, 3, 1, 12, 0),
            is_new=True,
        )
        values.update(overrides)
        return CanonicalOffer(**values)

    def test_insert_round_trips_types(self) -> None:
        inserted = self.repository.insert(self._offer())

        stored = self.repository.get_by_link(LINK)
        self.assertEqual(stored.id, inserted.id)
        self.assertIs(stored.source, Source.OLX)
        self.assertIs(stored.owner_type, OwnerType.PRIVATE)
        self.assertIsNone(stored.parking_type)
        self.assertIs(stored.furniture, True)
        self.assertIs(stored.elevator, False)
        self.assertIsNone(stored.pets)
        self.assertEqual(stored.images, ["https://cdn.olx.pl/1.jpg", "https://cdn.olx.pl/2.jpg"])
        self.assertEqual(stored.created_at, datetime(2025, 3, 1, 12, 0))
        self.assertTrue(stored.is_new)
        self.assertEqual(self.repository.get(inserted.id).link, LINK)

    def test_link_is_unique(self) -> None:
        self.repository.insert(self._offer())

        with self.assertRaises(DuplicateOfferError):
            self.repository.insert(self._offer(title="Inny"))
        self.assertEqual(self._stored_offers(), 1)

    def test_update_overwrites_row(self) -> None:
        offer = self.repository.insert(self._offer())
        offer.price = 2700.0
        offer.views = 12

        self.repository.update(offer)

        stored = self.repository.get_by_link(LINK)
        self.assertEqual(stored.price, 2700.0)
        self.assertEqual(stored.views, 12)

    def test_update_of_missing_offer_fails(self) -> None:
        with self.assertRaises(PersistenceError):
            self.repository.update(self._offer(link="https://www.olx.pl/d/oferta/missing"))

    def test_lookup_of_unknown_link(self) -> None:
        self.assertIsNone(self.repository.get_by_link("https://www.olx.pl/d/oferta/none"))


if __name__ == "__main__":
    unittest.main()
