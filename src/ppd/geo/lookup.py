"""Offline resolution table built from the precomputed export.

The export is a single JSON document ``{"locations": [{key, lat, lon,
country, detail}, ...]}``. It is loaded once per lookup instance; any load
failure leaves an empty table, so the resolver simply falls through to its
live stages.
"""

from __future__ import annotations

import asyncio
import math
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

import httpx
import orjson

from ppd.config import Settings
from ppd.geo.normalize import CountryNormalizer, format_location_label, normalize_constituency
from ppd.models import UNKNOWN_COUNTRY_LABEL, UNKNOWN_ENTRY, LocationEntry, ResolutionRow
from ppd.records import DICTIONARY_KEY_DECIMALS, to_number
from ppd.utils.logging import get_logger
from ppd.utils.text import as_text


logger = get_logger(__name__)


def resolution_key(lat: float, lon: float) -> str:
    """Key format used by the export, e.g. ``"51.50, -0.10"``."""
    return f"{lat:.{DICTIONARY_KEY_DECIMALS}f}, {lon:.{DICTIONARY_KEY_DECIMALS}f}"


def distance_squared(a_lat: float, a_lon: float, b_lat: float, b_lon: float) -> float:
    d_lat = a_lat - b_lat
    d_lon = a_lon - b_lon
    return d_lat * d_lat + d_lon * d_lon


def _row_constituency(row: Mapping[str, Any], country: str) -> str:
    explicit = normalize_constituency(row.get("constituency"), country)
    if explicit:
        return explicit
    # Older exports only carry a free-form ``detail`` that may be a status marker.
    detail = row.get("detail")
    if not isinstance(detail, str) or detail.strip().lower().startswith("status"):
        return ""
    return normalize_constituency(detail, country)


def parse_rows(payload: Any, normalizer: CountryNormalizer) -> list[ResolutionRow]:
    """Parse the export payload; rows without a known country or coordinates are skipped."""
    raw_rows = payload.get("locations") if isinstance(payload, Mapping) else None
    if not isinstance(raw_rows, list):
        return []

    rows: list[ResolutionRow] = []
    for raw in raw_rows:
        if not isinstance(raw, Mapping):
            continue
        country = normalizer.normalize_country_name(raw.get("country"))
        if country == UNKNOWN_COUNTRY_LABEL:
            continue
        lat = to_number(raw.get("lat"))
        lon = to_number(raw.get("lon"))
        if lat is None or lon is None:
            continue
        key = as_text(raw.get("key")).strip() or resolution_key(lat, lon)
        rows.append(
            ResolutionRow(
                key=key,
                lat=lat,
                lon=lon,
                country=country,
                constituency=_row_constituency(raw, country),
            )
        )
    return rows


class ResolutionLookup:
    """Exact-key then nearest-neighbour lookup over the resolution rows."""

    def __init__(
        self,
        normalizer: CountryNormalizer,
        max_distance: float = 0.35,
        rows: Optional[Iterable[ResolutionRow]] = None,
    ) -> None:
        self.normalizer = normalizer
        self.max_distance = max_distance
        self._by_key: dict[str, ResolutionRow] = {}
        self._points: list[ResolutionRow] = []
        self._loaded = False
        self._lock = asyncio.Lock()
        if rows is not None:
            self._index(rows)

    @property
    def loaded(self) -> bool:
        return self._loaded

    def __len__(self) -> int:
        return len(self._points)

    def _index(self, rows: Iterable[ResolutionRow]) -> None:
        self._by_key = {}
        self._points = []
        for row in rows:
            self._by_key[row.key] = row
            self._points.append(row)
        self._loaded = True

    async def ensure_loaded(
        self,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """Load the table once; concurrent callers wait for the same load."""
        if self._loaded:
            return
        async with self._lock:
            if self._loaded:
                return
            settings = settings or Settings()
            payload = await self._read_payload(client, settings)
            self._index(parse_rows(payload, self.normalizer))
            logger.info("lookup.loaded rows=%s", len(self._points))

    async def _read_payload(
        self, client: Optional[httpx.AsyncClient], settings: Settings
    ) -> Any:
        if settings.resolution_data_file is not None:
            return self._read_file(settings.resolution_data_file)
        if client is None:
            logger.info("lookup.skipped reason=no_client")
            return None
        try:
            response = await asyncio.wait_for(
                client.get(settings.resolution_data_url, headers={"Accept": "application/json"}),
                timeout=settings.geocode_timeout_seconds,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as exc:
            logger.warning("lookup.fetch.failed error=%s", exc.__class__.__name__)
            return None
        if not response.is_success:
            logger.warning("lookup.fetch.failed status=%s", response.status_code)
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning("lookup.fetch.failed error=malformed_json")
            return None

    @staticmethod
    def _read_file(path: Path) -> Any:
        try:
            return orjson.loads(path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as exc:
            logger.warning("lookup.file.failed path=%s error=%s", path, exc)
            return None

    def resolve(self, lat: float, lon: float) -> LocationEntry:
        """Exact key match, else nearest row within ``max_distance`` degrees."""
        row = self._by_key.get(resolution_key(lat, lon)) or self._nearest(lat, lon)
        if row is None:
            return UNKNOWN_ENTRY
        return LocationEntry(
            label=format_location_label(row.country, row.constituency),
            country=row.country,
            country_code=self.normalizer.country_code_from_name(row.country),
            constituency=row.constituency,
        )

    def _nearest(self, lat: float, lon: float) -> Optional[ResolutionRow]:
        nearest: Optional[ResolutionRow] = None
        nearest_distance = math.inf
        for point in self._points:
            distance = distance_squared(lat, lon, point.lat, point.lon)
            if distance < nearest_distance:
                nearest_distance = distance
                nearest = point
        if nearest is not None and nearest_distance <= self.max_distance * self.max_distance:
            return nearest
        return None
