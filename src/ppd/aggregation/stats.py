"""Summary counts and category leaderboards."""

from __future__ import annotations

from typing import Mapping

from ppd.models import LeaderboardRow, Number, SummaryCounts
from ppd.records import (
    UNDEFINED_CATEGORY,
    Record,
    get_categories,
    get_category_count,
    get_category_value,
    get_pieces,
    is_moderated,
)


def summarize(records: Mapping[str, Record]) -> SummaryCounts:
    """Totals plus the moderated/unmoderated split in one pass."""
    summary = SummaryCounts()
    for record in records.values():
        pieces = get_pieces(record)
        summary.total_records += 1
        summary.total_pieces += pieces
        if is_moderated(record):
            summary.moderated_count += 1
            summary.moderated_pieces += pieces
        else:
            summary.unmoderated_count += 1
            summary.unmoderated_pieces += pieces
    return summary


def _sorted_rows(totals: Mapping[str, Number]) -> list[LeaderboardRow]:
    rows = [LeaderboardRow(name=name, count=count) for name, count in totals.items()]
    rows.sort(key=lambda row: (-row.count, row.name.lower(), row.name))
    return rows


def aggregate_category_totals(records: Mapping[str, Record], field: str) -> dict[str, Number]:
    """Category weight per field value; uncategorized records count once as undefined."""
    totals: dict[str, Number] = {}
    for record in records.values():
        categories = get_categories(record)
        if not categories:
            totals[UNDEFINED_CATEGORY] = totals.get(UNDEFINED_CATEGORY, 0) + 1
            continue
        for category in categories:
            key = get_category_value(category, field)
            totals[key] = totals.get(key, 0) + get_category_count(category)
    return totals


def top_category_totals(
    records: Mapping[str, Record], field: str, limit: int = 10
) -> list[LeaderboardRow]:
    return _sorted_rows(aggregate_category_totals(records, field))[: max(0, limit)]


def summarize_record_category_totals(record: Record, field: str) -> list[LeaderboardRow]:
    """Per-record breakdown used for detail rows."""
    totals: dict[str, Number] = {}
    for category in get_categories(record):
        key = get_category_value(category, field)
        totals[key] = totals.get(key, 0) + get_category_count(category)
    return _sorted_rows(totals)
