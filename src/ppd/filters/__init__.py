"""Filter package."""

from ppd.filters.engine import (
    build_constituency_options,
    build_country_options,
    build_mission_options,
    filter_records,
    year_options,
)

__all__ = [
    "filter_records",
    "build_country_options",
    "build_constituency_options",
    "build_mission_options",
    "year_options",
]
