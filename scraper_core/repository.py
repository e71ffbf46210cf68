"""SQLite-backed persistence for canonical offers."""
from __future__ import annotations

import json
import sqlite3
from dataclasses import fields
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .errors import DuplicateOfferError, PersistenceError
from .models import BuildingType, CanonicalOffer, OwnerType, ParkingType, Source

# Column order of the ``offers`` table, excluding the ``id`` primary key.
COLUMNS: Tuple[str, ...] = tuple(f.name for f in fields(CanonicalOffer) if f.name != "id")

_ENUM_COLUMNS = {
    "source": Source,
    "owner_type": OwnerType,
    "parking_type": ParkingType,
    "building_type": BuildingType,
}
_BOOL_COLUMNS = {"furniture", "elevator", "pets", "negotiable", "is_new"}
_DATETIME_COLUMNS = {"created_at", "updated_at"}


def _to_db(name: str, value: Any) -> Any:
    if value is None:
        return None
    if name == "images":
        return json.dumps(list(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


def _from_db(name: str, value: Any) -> Any:
    if name == "images":
        return json.loads(value) if value else []
    if value is None:
        return None
    if name in _ENUM_COLUMNS:
        return _ENUM_COLUMNS[name](value)
    if name in _BOOL_COLUMNS:
        return bool(value)
    if name in _DATETIME_COLUMNS:
        return datetime.fromisoformat(value)
    return value


class OfferRepository:
    """SQLite backed store of :class:`CanonicalOffer` rows keyed by ``link``."""

    def __init__(self, database: str) -> None:
        self.database = database
        db_path = Path(database)
        if db_path.parent and not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self.database)
        connection.row_factory = sqlite3.Row
        return connection

    def _ensure_schema(self) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS offers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    link TEXT NOT NULL UNIQUE,
                    source TEXT NOT NULL,
                    title TEXT NOT NULL,
                    price REAL,
                    footage REAL,
                    city TEXT,
                    district TEXT,
                    street TEXT,
                    street_number TEXT,
                    latitude REAL,
                    longitude REAL,
                    description TEXT,
                    summary TEXT,
                    rooms INTEGER,
                    floor INTEGER,
                    furniture INTEGER,
                    elevator INTEGER,
                    pets INTEGER,
                    negotiable INTEGER,
                    owner_type TEXT,
                    parking_type TEXT,
                    building_type TEXT,
                    rent_additional REAL,
                    contact TEXT,
                    info_additional TEXT,
                    furnishing TEXT,
                    media TEXT,
                    views INTEGER NOT NULL DEFAULT 0,
                    images TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    is_new INTEGER NOT NULL DEFAULT 0
                )
                """
            )

    def _row_to_offer(self, row: sqlite3.Row) -> CanonicalOffer:
        values: Dict[str, Any] = {name: _from_db(name, row[name]) for name in COLUMNS}
        return CanonicalOffer(id=row["id"], **values)

    def _fetch_one(self, query: str, params: Tuple[Any, ...]) -> Optional[CanonicalOffer]:
        try:
            with self._connect() as connection:
                row = connection.execute(query, params).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Offer lookup failed: {exc}") from exc
        return self._row_to_offer(row) if row else None

    def get_by_link(self, link: str) -> Optional[CanonicalOffer]:
        return self._fetch_one("SELECT * FROM offers WHERE link = ?", (link,))

    def get(self, offer_id: int) -> Optional[CanonicalOffer]:
        return self._fetch_one("SELECT * FROM offers WHERE id = ?", (offer_id,))

    def insert(self, offer: CanonicalOffer) -> CanonicalOffer:
        """Insert ``offer`` and return it with its new ``id``."""

        placeholders = ", ".join("?" for _ in COLUMNS)
        payload = tuple(_to_db(name, getattr(offer, name)) for name in COLUMNS)
        try:
            with self._connect() as connection:
                cursor = connection.execute(
                    f"INSERT INTO offers ({', '.join(COLUMNS)}) VALUES ({placeholders})",
                    payload,
                )
                offer.id = cursor.lastrowid
        except sqlite3.IntegrityError as exc:
            raise DuplicateOfferError(f"Offer already exists: {offer.link}") from exc
        except sqlite3.Error as exc:
            raise PersistenceError(f"Offer insert failed: {exc}") from exc
        return offer

    def update(self, offer: CanonicalOffer) -> CanonicalOffer:
        """Overwrite every column of the row identified by ``offer.link``."""

        columns = [name for name in COLUMNS if name != "link"]
        assignments = ", ".join(f"{name} = ?" for name in columns)
        payload = tuple(_to_db(name, getattr(offer, name)) for name in columns) + (offer.link,)
        try:
            with self._connect() as connection:
                cursor = connection.execute(f"UPDATE offers SET {assignments} WHERE link = ?", payload)
                if cursor.rowcount == 0:
                    raise PersistenceError(f"Offer vanished before update: {offer.link}")
        except sqlite3.Error as exc:
            raise PersistenceError(f"Offer update failed: {exc}") from exc
        return offer


__all__ = ["COLUMNS", "OfferRepository"]
