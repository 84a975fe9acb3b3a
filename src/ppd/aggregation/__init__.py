"""Aggregation package."""

from ppd.aggregation.missions import top_mission_totals
from ppd.aggregation.stats import summarize, top_category_totals
from ppd.aggregation.time_series import build_time_series, choose_granularity

__all__ = [
    "build_time_series",
    "choose_granularity",
    "summarize",
    "top_category_totals",
    "top_mission_totals",
]
