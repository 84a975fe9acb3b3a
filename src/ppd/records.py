"""Field accessors for photo and water-test records.

Records are opaque mappings as delivered by the document-database proxy, so
every accessor tolerates missing or oddly typed fields.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Mapping, Optional

from ppd.models import Number
from ppd.utils.time import parse_timestamp


Record = Mapping[str, Any]

# First non-empty wins.
DATE_FIELDS = ("updated", "moderated", "created", "dateTime")
MISSION_REF_FIELDS = ("missions", "missionIds")
DICTIONARY_KEY_DECIMALS = 2
UNDEFINED_CATEGORY = "undefined"


def to_number(value: Any) -> Optional[float]:
    """Return a finite float for numeric-looking values, otherwise None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _compact(number: float) -> Number:
    return int(number) if number.is_integer() else number


def get_pieces(record: Record) -> Number:
    """Return the piece count; missing or non-numeric is 0 and never negative."""
    number = to_number(record.get("pieces"))
    if number is None or number <= 0:
        return 0
    return _compact(number)


def is_moderated(record: Record) -> bool:
    """Publish flag wins over the legacy moderated-date flag."""
    published = record.get("published")
    if isinstance(published, bool):
        return published
    if isinstance(published, str):
        normalized = published.strip().lower()
        if normalized == "true":
            return True
        if normalized == "false":
            return False
    return bool(record.get("moderated"))


def get_record_date(record: Record) -> Optional[datetime]:
    """Return the record timestamp using the fixed field precedence."""
    for field in DATE_FIELDS:
        raw = record.get(field)
        # Empty strings and a numeric 0 timestamp fall through to the next field.
        if raw is None or raw == "" or isinstance(raw, bool) or raw == 0:
            continue
        return parse_timestamp(raw)
    return None


def get_categories(record: Record) -> list[Mapping[str, Any]]:
    categories = record.get("categories")
    if not isinstance(categories, list):
        return []
    return [category for category in categories if isinstance(category, Mapping)]


def get_category_count(category: Mapping[str, Any]) -> Number:
    """Explicit positive count, defaulting to 1."""
    number = to_number(category.get("number"))
    if number is None or number <= 0:
        return 1
    return _compact(number)


def get_category_value(category: Mapping[str, Any], field_name: str) -> str:
    raw = category.get(field_name)
    value = str(raw).strip() if raw is not None else ""
    return value or UNDEFINED_CATEGORY


def get_mission_refs(record: Record) -> list[str]:
    for field in MISSION_REF_FIELDS:
        refs = record.get(field)
        if isinstance(refs, list):
            return [str(ref).strip() for ref in refs if ref is not None and str(ref).strip()]
        if isinstance(refs, str) and refs.strip():
            return [refs.strip()]
    return []


def get_coordinates(record: Record) -> Optional[tuple[float, float]]:
    """Return (lat, lon) or None. Exactly (0, 0) counts as no location."""
    location = record.get("location")
    if not isinstance(location, Mapping):
        return None

    lat = to_number(location.get("_latitude", location.get("latitude")))
    lon = to_number(location.get("_longitude", location.get("longitude")))
    if lat is None or lon is None:
        return None
    if lat == 0 and lon == 0:
        return None
    return lat, lon


def coordinate_key(lat: float, lon: float) -> str:
    """Stable dictionary key, e.g. ``"51.50,-0.10"``."""
    return f"{lat:.{DICTIONARY_KEY_DECIMALS}f},{lon:.{DICTIONARY_KEY_DECIMALS}f}"


def record_coordinate_key(record: Record) -> Optional[str]:
    coords = get_coordinates(record)
    if coords is None:
        return None
    return coordinate_key(*coords)


def unique_coordinates(records: Mapping[str, Record]) -> list[tuple[str, float, float]]:
    """Unique rounded coordinates as (key, lat, lon), first occurrence wins."""
    seen: dict[str, tuple[str, float, float]] = {}
    for record in records.values():
        if not isinstance(record, Mapping):
            continue
        coords = get_coordinates(record)
        if coords is None:
            continue
        key = coordinate_key(*coords)
        if key not in seen:
            seen[key] = (key, coords[0], coords[1])
    return list(seen.values())
