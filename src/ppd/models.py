"""Core data models shared by the resolver, filters and aggregations."""

from __future__ import annotations

from datetime import date
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ppd.utils.time import parse_int


UNKNOWN_COUNTRY_LABEL = "Unknown country"
UNKNOWN_LOCATION_LABEL = "Unknown location"

Number = Union[int, float]
Granularity = Literal["day", "month", "year"]


class LocationEntry(BaseModel):
    """Resolved place for one rounded coordinate cell.

    Persisted with camelCase keys (``countryCode``) so older caches stay readable.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    label: str = UNKNOWN_LOCATION_LABEL
    country: str = UNKNOWN_COUNTRY_LABEL
    country_code: str = Field(default="", alias="countryCode")
    constituency: str = ""

    @property
    def is_unknown(self) -> bool:
        return self.country == UNKNOWN_COUNTRY_LABEL

    @property
    def has_constituency(self) -> bool:
        return bool(self.constituency)


UNKNOWN_ENTRY = LocationEntry()


class ResolutionRow(BaseModel):
    """One row of the precomputed resolution dataset."""

    model_config = ConfigDict(frozen=True)

    key: str
    lat: float
    lon: float
    country: str
    constituency: str = ""


class CountryInfo(BaseModel):
    """Country / constituency grouping resolved for a single record."""

    model_config = ConfigDict(frozen=True)

    country: str
    country_code: str
    country_key: str
    constituency: str
    constituency_key: str
    label: str


class FilterCriteria(BaseModel):
    """Conjunctive filter state. Empty values mean "do not filter"."""

    model_config = ConfigDict(extra="ignore")

    status: str = "all"
    min_pieces: int = 0
    year: str = ""
    month: str = ""
    day: str = ""
    country: str = ""
    constituency: str = ""
    mission: str = ""
    search: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> str:
        text = str(value or "").strip().lower()
        if text in {"moderated", "unmoderated"}:
            return text
        return "all"

    @field_validator("min_pieces", mode="before")
    @classmethod
    def _clamp_min_pieces(cls, value: object) -> int:
        parsed = parse_int(value)
        if parsed is None or parsed < 0:
            return 0
        return parsed

    @field_validator("year", "month", "day", "country", "constituency", "mission", "search", mode="before")
    @classmethod
    def _strip(cls, value: object) -> str:
        return str(value if value is not None else "").strip()

    def effective(self) -> "FilterCriteria":
        """Return criteria with mission and location selection made mutually exclusive."""
        if self.mission and (self.country or self.constituency):
            return self.model_copy(update={"country": "", "constituency": ""})
        return self


class SummaryCounts(BaseModel):
    total_records: int = 0
    total_pieces: Number = 0
    moderated_count: int = 0
    unmoderated_count: int = 0
    moderated_pieces: Number = 0
    unmoderated_pieces: Number = 0


class LeaderboardRow(BaseModel):
    name: str
    count: Number


class CountryOption(BaseModel):
    key: str
    country: str
    country_code: str = ""
    count: int = 0
    flag: str = ""


class ConstituencyOption(BaseModel):
    key: str
    constituency: str
    count: int = 0


class MissionOption(BaseModel):
    key: str
    name: str


class TimeSeriesPoint(BaseModel):
    key: str
    start: date
    pieces: Number = 0
    records: int = 0


class TimeSeries(BaseModel):
    granularity: Granularity
    points: list[TimeSeriesPoint] = Field(default_factory=list)

