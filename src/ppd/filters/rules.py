"""Per-record filter predicates.

Each predicate treats an empty filter value as "match everything".
"""

from __future__ import annotations

from typing import Any, Mapping

from ppd.aggregation.missions import Mission, record_mission_keys
from ppd.records import Record, get_categories, get_pieces, get_record_date, is_moderated
from ppd.utils.text import as_text
from ppd.utils.time import parse_int


def passes_status(record: Record, status: str) -> bool:
    if status == "moderated":
        return is_moderated(record)
    if status == "unmoderated":
        return not is_moderated(record)
    return True


def passes_min_pieces(record: Record, min_pieces: int) -> bool:
    return get_pieces(record) >= max(0, min_pieces)


def passes_date(record: Record, year: str = "", month: str = "", day: str = "") -> bool:
    """Each active part must match exactly; undated records fail any active part.

    An unparseable year never matches. Unparseable month or day values are
    ignored.
    """
    if not (year or month or day):
        return True
    moment = get_record_date(record)
    if moment is None:
        return False
    if year:
        wanted_year = parse_int(year)
        if wanted_year is None or moment.year != wanted_year:
            return False
    if month:
        wanted_month = parse_int(month)
        if wanted_month is not None and moment.month != wanted_month:
            return False
    if day:
        wanted_day = parse_int(day)
        if wanted_day is not None and moment.day != wanted_day:
            return False
    return True


def passes_mission(record: Record, mission_key: str, missions: Mapping[str, Mission]) -> bool:
    if not mission_key:
        return True
    return mission_key in record_mission_keys(record, missions)


def normalize_search(value: Any) -> str:
    return as_text(value).strip().lower()


def category_matches_search(category: Mapping[str, Any], term: str) -> bool:
    """``term`` must already be normalized with :func:`normalize_search`."""
    if not term:
        return True
    brand = normalize_search(category.get("brand"))
    label = normalize_search(category.get("label"))
    return term in brand or term in label


def matching_categories(record: Record, term: str) -> list[Mapping[str, Any]]:
    return [category for category in get_categories(record) if category_matches_search(category, term)]
