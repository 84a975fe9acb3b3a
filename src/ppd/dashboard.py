"""Dashboard session: one dataset snapshot, its location dictionary and derived views.

Views are read-only snapshots recomputed from scratch on every filter change
and whenever background enrichment adds dictionary entries.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping, Optional

import httpx
from pydantic import BaseModel, Field

from ppd.aggregation.missions import Mission, top_mission_totals
from ppd.aggregation.stats import summarize, top_category_totals
from ppd.aggregation.time_series import build_time_series
from ppd.config import Settings
from ppd.filters.engine import (
    build_constituency_options,
    build_country_options,
    build_mission_options,
    filter_records,
    reconcile_criteria,
    year_options,
)
from ppd.geo.dictionary import LocationDictionary
from ppd.geo.lookup import ResolutionLookup
from ppd.geo.normalize import CountryNormalizer
from ppd.geo.providers import build_providers
from ppd.geo.queue import RequestQueue
from ppd.geo.resolver import LocationResolver
from ppd.geo.store import JsonFileStore, KeyValueStore
from ppd.ingestion.fetch import fetch_missions, fetch_records
from ppd.models import (
    ConstituencyOption,
    CountryOption,
    FilterCriteria,
    LeaderboardRow,
    MissionOption,
    SummaryCounts,
    TimeSeries,
)
from ppd.records import Record
from ppd.utils.logging import get_logger
from ppd.water_tests import WaterTestRow, build_water_test_rows, load_water_tests


logger = get_logger(__name__)

CATEGORY_LEADERBOARD_LIMIT = 10
MISSION_LEADERBOARD_LIMIT = 20


class DashboardView(BaseModel):
    criteria: FilterCriteria
    record_count: int = 0
    summary: SummaryCounts = Field(default_factory=SummaryCounts)
    top_brands: list[LeaderboardRow] = Field(default_factory=list)
    top_labels: list[LeaderboardRow] = Field(default_factory=list)
    top_missions: list[LeaderboardRow] = Field(default_factory=list)
    time_series: TimeSeries
    countries: list[CountryOption] = Field(default_factory=list)
    constituencies: list[ConstituencyOption] = Field(default_factory=list)
    missions: list[MissionOption] = Field(default_factory=list)
    years: list[int] = Field(default_factory=list)
    enriching: bool = False


def compute_view(
    records: Mapping[str, Record],
    missions: Mapping[str, Mission],
    dictionary: LocationDictionary,
    criteria: FilterCriteria,
) -> DashboardView:
    """Filter, then aggregate. Option lists are always built over the full snapshot."""
    countries = build_country_options(records, dictionary)
    constituencies = build_constituency_options(records, dictionary, criteria.country)
    effective = reconcile_criteria(criteria, countries, constituencies)
    if effective.country != criteria.country:
        constituencies = build_constituency_options(records, dictionary, effective.country)

    filtered = filter_records(records, dictionary, missions, effective)
    return DashboardView(
        criteria=effective,
        record_count=len(filtered),
        summary=summarize(filtered),
        top_brands=top_category_totals(filtered, "brand", CATEGORY_LEADERBOARD_LIMIT),
        top_labels=top_category_totals(filtered, "label", CATEGORY_LEADERBOARD_LIMIT),
        top_missions=top_mission_totals(missions, filtered, MISSION_LEADERBOARD_LIMIT),
        time_series=build_time_series(filtered, effective.year, effective.month),
        countries=countries,
        constituencies=constituencies,
        missions=build_mission_options(missions),
        years=year_options(records),
        enriching=dictionary.is_enriching,
    )


ViewListener = Callable[[DashboardView], None]


class DashboardSession:
    """Owns the snapshot, the dictionary and the HTTP client for one session.

    Use as ``async with DashboardSession(settings) as session`` and call
    :meth:`open`, which fetches records and missions, fills the dictionary
    from the offline table and schedules live enrichment in the background.
    Leaving the block cancels enrichment and closes the client.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        store: Optional[KeyValueStore] = None,
        normalizer: Optional[CountryNormalizer] = None,
    ) -> None:
        self.settings = settings or Settings()
        self._client = client
        self._owns_client = client is None
        self.store = store
        self.normalizer = normalizer or CountryNormalizer()
        self.records: dict[str, Record] = {}
        self.missions: dict[str, Mission] = {}
        self.dictionary: Optional[LocationDictionary] = None
        self.criteria = FilterCriteria()
        self._view: Optional[DashboardView] = None
        self._listeners: list[ViewListener] = []

    async def __aenter__(self) -> "DashboardSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self.settings.user_agent}, follow_redirects=True
            )
        return self._client

    async def open(self, start_enrichment: bool = True) -> None:
        """Load the snapshot. Raises DatasetLoadError when the records cannot be loaded."""
        records, missions, dictionary = await asyncio.gather(
            fetch_records(self.client, self.settings),
            fetch_missions(self.client, self.settings),
            self.open_locations(),
        )
        self.records = records
        self.missions = missions
        self._view = None

        dictionary.fill_offline(self.records)
        logger.info(
            "session.opened records=%s missions=%s locations=%s",
            len(self.records),
            len(self.missions),
            len(dictionary),
        )
        if start_enrichment:
            dictionary.start_enrichment(self.records)

    async def open_locations(self) -> LocationDictionary:
        """Load the offline table and the persisted dictionary (once per session)."""
        if self.dictionary is None:
            lookup = ResolutionLookup(
                self.normalizer, max_distance=self.settings.resolution_nearest_max_distance
            )
            await lookup.ensure_loaded(self.client, self.settings)
            dictionary = self._build_dictionary(lookup)
            dictionary.add_listener(self._on_dictionary_update)
            self.dictionary = dictionary
        return self.dictionary

    async def water_test_rows(
        self, test_type: str, wait_for_locations: bool = False
    ) -> list[WaterTestRow]:
        """Fetch one water test type and build its table rows."""
        dictionary = await self.open_locations()
        records = await load_water_tests(self.client, test_type, dictionary, self.settings)
        if wait_for_locations:
            await dictionary.enrich(records)
        return build_water_test_rows(test_type, records, dictionary)

    def _build_dictionary(self, lookup: ResolutionLookup) -> LocationDictionary:
        queue = RequestQueue(min_interval_seconds=self.settings.geocode_min_interval_seconds)
        primary, secondary = build_providers(self.settings, self.client, queue, self.normalizer)
        resolver = LocationResolver(
            lookup,
            primary=primary,
            secondary=secondary,
            live_enabled=self.settings.enable_live_reverse_geocoding,
        )
        store = self.store or JsonFileStore(self.settings.location_cache_path)
        return LocationDictionary.load(
            resolver, self.normalizer, store, self.settings.location_cache_key
        )

    async def close(self) -> None:
        if self.dictionary is not None:
            self.dictionary.remove_listener(self._on_dictionary_update)
            await self.dictionary.stop()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _require_dictionary(self) -> LocationDictionary:
        if self.dictionary is None:
            raise RuntimeError("session is not open")
        return self.dictionary

    def subscribe(self, listener: ViewListener) -> None:
        """Call ``listener`` with a fresh view whenever enrichment changes the data."""
        self._listeners.append(listener)

    @property
    def view(self) -> DashboardView:
        dictionary = self._require_dictionary()
        if self._view is None:
            self._view = compute_view(self.records, self.missions, dictionary, self.criteria)
        elif self._view.enriching != dictionary.is_enriching:
            self._view = self._view.model_copy(update={"enriching": dictionary.is_enriching})
        return self._view

    def apply(self, criteria: FilterCriteria) -> DashboardView:
        """Set new filter values and return the recomputed view."""
        self.criteria = criteria
        self._view = None
        view = self.view
        self.criteria = view.criteria
        return view

    def _on_dictionary_update(self, keys: list[str]) -> None:
        logger.debug("session.dictionary.updated keys=%s", len(keys))
        self._view = None
        if not self._listeners:
            return
        view = self.view
        for listener in list(self._listeners):
            listener(view)
