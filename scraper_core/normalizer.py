"""Turn raw adapter output into typed offer values."""
from __future__ import annotations

from datetime import datetime, timedelta
import logging
import re
from typing import Dict, Iterable, Mapping, Optional

from .models import BuildingType, NormalizedOffer, OwnerType, ParkingType, RawExtraction, Source

LOGGER = logging.getLogger(__name__)

POLISH_MONTHS: Dict[str, int] = {
    "stycznia": 1,
    "lutego": 2,
    "marca": 3,
    "kwietnia": 4,
    "maja": 5,
    "czerwca": 6,
    "lipca": 7,
    "sierpnia": 8,
    "września": 9,
    "października": 10,
    "listopada": 11,
    "grudnia": 12,
}

TRUE_WORDS = ("tak", "yes", "true")
FALSE_WORDS = ("nie", "no", "false", "brak")

OWNER_KEYWORDS = (
    (OwnerType.COMPANY, ("firm", "biuro", "agencja", "deweloper", "pośrednik")),
    (OwnerType.PRIVATE, ("prywat",)),
)
PARKING_KEYWORDS = (
    (ParkingType.GARAGE, ("garaż", "hala", "podziemn")),
    (ParkingType.SECURED, ("strzeżon", "zamknięt", "ogrodzon")),
    (ParkingType.STREET, ("ulic", "przy ulicy", "publiczn")),
    (ParkingType.NONE, ("brak", "nie")),
)
BUILDING_KEYWORDS = (
    (BuildingType.BLOCK_OF_FLATS, ("blok",)),
    (BuildingType.TENEMENT, ("kamienica",)),
    (BuildingType.DETACHED, ("wolnostojący", "dom wolnostojący")),
    (BuildingType.TERRACED, ("szeregowiec", "szeregow")),
    (BuildingType.APARTMENT, ("apartamentowiec", "apartament")),
    (BuildingType.LOFT, ("loft",)),
)

FOOTAGE_KEYS = ("powierzchnia",)
ROOM_KEYS = ("liczba pokoi", "pokoi", "pokoje")
FLOOR_KEYS = ("poziom", "piętro")
FURNITURE_KEYS = ("umeblowane", "umeblowanie")
ELEVATOR_KEYS = ("winda",)
PETS_KEYS = ("zwierzęta", "zwierzeta")
PARKING_KEYS = ("parking", "miejsce parkingowe")
BUILDING_KEYS = ("rodzaj zabudowy", "typ budynku")
RENT_KEYS = ("czynsz (dodatkowo)", "czynsz dodatkowy", "czynsz")
OWNER_KEYS = ("typ ogłoszeniodawcy",)
OWNER_FLAGS = ("prywatne", "firmowe")


def parse_number(text: Optional[str]) -> Optional[float]:
    """Read ``"2 500,50 zł"`` style amounts; return ``None`` when unparsable."""

    if text is None:
        return None
    if isinstance(text, (int, float)):
        return float(text)
    cleaned = re.sub(r"[\s\u00a0]", "", str(text))
    match = re.search(r"-?\d+(?:[.,]\d+)?", cleaned)
    if not match:
        return None
    try:
        return float(match.group(0).replace(",", "."))
    except ValueError:
        return None


def find_param_value(parameters: Mapping[str, str], target_key: str) -> Optional[str]:
    """Case-insensitive lookup: exact label first, then substring match."""

    target = target_key.strip().lower()
    if not target:
        return None
    for label, value in parameters.items():
        if label.strip().lower() == target:
            return value
    for label, value in parameters.items():
        if target in label.strip().lower():
            return value
    return None


def _first_param(parameters: Mapping[str, str], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = find_param_value(parameters, key)
        if value:
            return value
    return None


def parse_boolean(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    words = re.split(r"[\s,.;:]+", value.strip().lower())
    if words[0] in TRUE_WORDS:
        return True
    if words[0] in FALSE_WORDS:
        return False
    return None


def parse_rooms(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    lowered = value.strip().lower()
    if "kawalerka" in lowered:
        return 1
    match = re.search(r"\d+", lowered)
    if match:
        return int(match.group(0))
    return None


def parse_floor(value: Optional[str]) -> Optional[int]:
    """``parter`` is 0, ``suterena`` is -1, ``"3/5"`` is 3 and ``"powyżej 10"`` is 11."""

    if not value:
        return None
    lowered = value.strip().lower()
    if lowered.startswith("parter"):
        return 0
    if lowered.startswith("suterena"):
        return -1
    if lowered.startswith("powyżej"):
        match = re.search(r"\d+", lowered)
        return int(match.group(0)) + 1 if match else 11
    match = re.search(r"-?\d+", lowered)
    if match:
        return int(match.group(0))
    return None


def _match_keywords(value: Optional[str], table):
    if not value:
        return None
    lowered = value.strip().lower()
    for enum_value, keywords in table:
        if any(keyword in lowered for keyword in keywords):
            return enum_value
    return None


def parse_owner_type(parameters: Mapping[str, str]) -> Optional[OwnerType]:
    explicit = _first_param(parameters, OWNER_KEYS)
    if explicit:
        return _match_keywords(explicit, OWNER_KEYWORDS)
    # OLX renders the seller kind as a bare flag such as "Prywatne".
    for label in parameters:
        lowered = label.strip().lower()
        if lowered in OWNER_FLAGS:
            return _match_keywords(lowered, OWNER_KEYWORDS)
    return None


def parse_parking_type(value: Optional[str]) -> Optional[ParkingType]:
    return _match_keywords(value, PARKING_KEYWORDS)


def parse_building_type(value: Optional[str]) -> Optional[BuildingType]:
    if not value:
        return None
    return _match_keywords(value, BUILDING_KEYWORDS) or BuildingType.OTHER


def parse_polish_date(text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """Parse ``"12 marca 2025"``, ``"Dzisiaj o 10:15"`` and ``"Wczoraj o 08:00"``."""

    if not text:
        return None
    now = now or datetime.now()
    lowered = text.strip().lower()

    relative = re.search(r"(dzisiaj|wczoraj)\s+o\s+(\d{1,2}):(\d{2})", lowered)
    if relative:
        day = now if relative.group(1) == "dzisiaj" else now - timedelta(days=1)
        try:
            return day.replace(
                hour=int(relative.group(2)), minute=int(relative.group(3)), second=0, microsecond=0
            )
        except ValueError:
            return None

    absolute = re.search(r"(\d{1,2})\s+([a-ząćęłńóśźż]+)\s+(\d{4})", lowered)
    if absolute:
        month = POLISH_MONTHS.get(absolute.group(2))
        if month is None:
            return None
        try:
            return datetime(int(absolute.group(3)), month, int(absolute.group(1)))
        except ValueError:
            return None
    return None


def normalize_extraction(raw: RawExtraction, now: Optional[datetime] = None) -> NormalizedOffer:
    """Derive typed fields from one extraction. Unparsable values become ``None``."""

    params = raw.parameters
    footage = parse_number(raw.footage_text) or parse_number(_first_param(params, FOOTAGE_KEYS))
    building_type = parse_building_type(_first_param(params, BUILDING_KEYS))
    if building_type is None and raw.source is Source.OTODOM:
        building_type = BuildingType.APARTMENT

    rent = _first_param(params, RENT_KEYS)
    offer = NormalizedOffer(
        source=raw.source,
        title=raw.title,
        price=parse_number(raw.price_text),
        footage=footage,
        city=raw.city,
        district=raw.district,
        address_text=raw.address_text,
        description=raw.description,
        rooms=parse_rooms(_first_param(params, ROOM_KEYS)),
        floor=parse_floor(_first_param(params, FLOOR_KEYS)),
        furniture=parse_boolean(_first_param(params, FURNITURE_KEYS)),
        elevator=parse_boolean(_first_param(params, ELEVATOR_KEYS)),
        pets=parse_boolean(_first_param(params, PETS_KEYS)),
        negotiable=raw.negotiable,
        owner_type=parse_owner_type(params),
        parking_type=parse_parking_type(_first_param(params, PARKING_KEYS)),
        building_type=building_type,
        rent_additional=parse_number(rent),
        contact=raw.contact or find_param_value(params, "kontakt"),
        info_additional=find_param_value(params, "informacje dodatkowe"),
        furnishing=find_param_value(params, "wyposażenie"),
        media=find_param_value(params, "media"),
        views=raw.views,
        images=list(raw.images),
        created_at=parse_polish_date(raw.created_at_text, now=now),
    )
    LOGGER.debug(
        "Normalised %s offer %s: price=%s footage=%s rooms=%s floor=%s",
        raw.source.value,
        raw.url,
        offer.price,
        offer.footage,
        offer.rooms,
        offer.floor,
    )
    return offer


__all__ = [
    "find_param_value",
    "normalize_extraction",
    "parse_boolean",
    "parse_building_type",
    "parse_floor",
    "parse_number",
    "parse_owner_type",
    "parse_parking_type",
    "parse_polish_date",
    "parse_rooms",
]
