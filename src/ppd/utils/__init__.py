"""Utility helpers."""

from ppd.utils.logging import configure_logging, get_logger
from ppd.utils.text import lookup_key, normalize_whitespace
from ppd.utils.time import parse_int, parse_timestamp

__all__ = [
    "configure_logging",
    "get_logger",
    "lookup_key",
    "normalize_whitespace",
    "parse_int",
    "parse_timestamp",
]
