"""Timestamp parsing helpers."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Optional


EPOCH_FALLBACK_YEAR = 1970


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO string or epoch-milliseconds value into a UTC datetime.

    Aware values are converted to UTC; naive ISO strings are taken as UTC.
    Anything unparseable returns None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return _from_epoch_millis(float(value))

    text = str(value).strip()
    if not text:
        return None

    normalized = text.replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        # Epoch milliseconds serialized as a string.
        if text.isdigit() and len(text) >= 10:
            return _from_epoch_millis(float(text))
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _from_epoch_millis(millis: float) -> Optional[datetime]:
    if not math.isfinite(millis):
        return None
    try:
        return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_int(value: Any) -> Optional[int]:
    """Parse a filter value such as ``"2023"`` or ``" 5 "``; blank/invalid is None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return None
