"""Time-series bucketing with automatic granularity."""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping

from ppd.models import Granularity, Number, TimeSeries, TimeSeriesPoint
from ppd.records import Record, get_pieces, get_record_date
from ppd.utils.time import EPOCH_FALLBACK_YEAR


def choose_granularity(year: Any = "", month: Any = "") -> Granularity:
    """Day buckets when year and month are pinned, months for a year, else years."""
    year_set = bool(str(year or "").strip())
    month_set = bool(str(month or "").strip())
    if year_set and month_set:
        return "day"
    if year_set:
        return "month"
    return "year"


def bucket_start(moment: date, granularity: Granularity) -> date:
    if granularity == "year":
        return date(moment.year, 1, 1)
    if granularity == "month":
        return date(moment.year, moment.month, 1)
    return date(moment.year, moment.month, moment.day)


def bucket_key(moment: date, granularity: Granularity) -> str:
    start = bucket_start(moment, granularity)
    if granularity == "year":
        return f"{start.year}"
    if granularity == "month":
        return f"{start.year}-{start.month:02d}"
    return start.isoformat()


def build_time_series(
    records: Mapping[str, Record], year: Any = "", month: Any = ""
) -> TimeSeries:
    """Pieces and record counts per observed bucket, oldest first.

    Empty periods are not filled in. Records dated in 1970 are skipped since
    that year almost always means a zero/missing timestamp.
    """
    granularity = choose_granularity(year, month)
    pieces: dict[date, Number] = {}
    counts: dict[date, int] = {}

    for record in records.values():
        moment = get_record_date(record)
        if moment is None or moment.year == EPOCH_FALLBACK_YEAR:
            continue
        start = bucket_start(moment, granularity)
        pieces[start] = pieces.get(start, 0) + get_pieces(record)
        counts[start] = counts.get(start, 0) + 1

    points = [
        TimeSeriesPoint(
            key=bucket_key(start, granularity),
            start=start,
            pieces=pieces[start],
            records=counts[start],
        )
        for start in sorted(pieces)
    ]
    return TimeSeries(granularity=granularity, points=points)
