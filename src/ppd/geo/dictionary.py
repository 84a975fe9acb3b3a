"""Session-scoped coordinate -> place cache.

The dictionary is usable immediately after :meth:`LocationDictionary.fill_offline`
(which only consults the offline table) and converges in the background:
:meth:`LocationDictionary.start_enrichment` schedules an asyncio task that
resolves the remaining coordinates through the live resolver, persisting
after every new entry and notifying listeners so views can be recomputed.

All mutation happens on the event loop thread, so no locking is needed.
Entries are only ever added or refined, never removed, during a session.
"""

from __future__ import annotations

import asyncio
import contextlib
import re
from typing import Any, Callable, Mapping, Optional

import orjson

from ppd.geo.normalize import (
    CountryNormalizer,
    constituency_group_key,
    country_group_key,
)
from ppd.geo.resolver import LocationResolver, merge_entries
from ppd.geo.store import KeyValueStore
from ppd.models import UNKNOWN_COUNTRY_LABEL, UNKNOWN_ENTRY, CountryInfo, LocationEntry
from ppd.records import Record, coordinate_key, record_coordinate_key, unique_coordinates
from ppd.utils.logging import get_logger


logger = get_logger(__name__)

DICTIONARY_KEY_PATTERN = re.compile(r"^-?\d+\.\d{2},-?\d+\.\d{2}$")

Listener = Callable[[list[str]], None]


def is_valid_key(key: Any) -> bool:
    return isinstance(key, str) and DICTIONARY_KEY_PATTERN.match(key) is not None


class LocationDictionary:
    """Coordinate-keyed location entries with persistence and background enrichment."""

    def __init__(
        self,
        resolver: LocationResolver,
        normalizer: CountryNormalizer,
        store: KeyValueStore,
        storage_key: str,
        entries: Optional[Mapping[str, LocationEntry]] = None,
    ) -> None:
        self.resolver = resolver
        self.normalizer = normalizer
        self.store = store
        self.storage_key = storage_key
        self._entries: dict[str, LocationEntry] = dict(entries or {})
        self._listeners: list[Listener] = []
        self._pending: dict[str, tuple[float, float]] = {}
        self._task: Optional[asyncio.Task] = None
        self._country_codes: Optional[dict[str, str]] = None

    # -- persistence -------------------------------------------------------

    @classmethod
    def load(
        cls,
        resolver: LocationResolver,
        normalizer: CountryNormalizer,
        store: KeyValueStore,
        storage_key: str,
    ) -> "LocationDictionary":
        """Read the persisted cache; corrupt data or stale key formats are dropped."""
        entries: dict[str, LocationEntry] = {}
        raw = store.get_item(storage_key)
        if raw:
            try:
                parsed = orjson.loads(raw)
            except orjson.JSONDecodeError:
                logger.warning("dictionary.load.corrupt key=%s", storage_key)
                parsed = None
            if isinstance(parsed, dict):
                dropped = 0
                for key, value in parsed.items():
                    if not is_valid_key(key):
                        dropped += 1
                        continue
                    entries[key] = normalizer.normalize_entry(value)
                if dropped:
                    logger.info("dictionary.load.dropped_keys count=%s", dropped)
        logger.info("dictionary.loaded entries=%s", len(entries))
        return cls(resolver, normalizer, store, storage_key, entries)

    def save(self) -> bool:
        """Persist all entries; failures are logged and the memory copy stays authoritative."""
        payload = {
            key: entry.model_dump(by_alias=True) for key, entry in self._entries.items()
        }
        try:
            self.store.set_item(self.storage_key, orjson.dumps(payload).decode("utf-8"))
        except OSError as exc:
            logger.warning("dictionary.save.failed error=%s", exc)
            return False
        return True

    # -- reads -------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[LocationEntry]:
        return self._entries.get(key)

    @property
    def is_enriching(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def live_enabled(self) -> bool:
        return self.resolver.live_enabled

    def needs_resolution(self, key: str) -> bool:
        """Missing entries always; unknown or partial entries only while live lookups run."""
        entry = self._entries.get(key)
        if entry is None:
            return True
        if entry.has_constituency and not entry.is_unknown:
            return False
        if not self.live_enabled:
            return entry.is_unknown
        return True

    def entry_for(self, record: Record) -> LocationEntry:
        key = record_coordinate_key(record)
        if key is None:
            return UNKNOWN_ENTRY
        return self._entries.get(key, UNKNOWN_ENTRY)

    def country_code_for(self, country: str) -> str:
        """First code seen for the country in this dictionary, else the static table."""
        target = self.normalizer.normalize_country_name(country)
        if target == UNKNOWN_COUNTRY_LABEL:
            return ""
        if self._country_codes is None:
            codes: dict[str, str] = {}
            for entry in self._entries.values():
                if entry.country_code:
                    codes.setdefault(entry.country, entry.country_code)
            self._country_codes = codes
        return self._country_codes.get(target) or self.normalizer.country_code_from_name(target)

    def country_info(self, record: Record) -> CountryInfo:
        """Country and constituency grouping for one record."""
        entry = self.entry_for(record)
        country = entry.country or UNKNOWN_COUNTRY_LABEL
        if entry.is_unknown:
            country_code = ""
            constituency = ""
        else:
            country_code = entry.country_code or self.country_code_for(country)
            constituency = entry.constituency
        country_key = country_group_key(country, country_code)
        return CountryInfo(
            country=country,
            country_code=country_code,
            country_key=country_key,
            constituency=constituency,
            constituency_key=constituency_group_key(country_key, constituency),
            label=entry.label,
        )

    # -- writes ------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def update(self, key: str, entry: LocationEntry) -> bool:
        """Merge ``entry`` into the stored one. Returns True when anything changed."""
        if not is_valid_key(key):
            raise ValueError(f"invalid dictionary key: {key!r}")
        current = self._entries.get(key)
        merged = entry if current is None else merge_entries(current, entry)
        if current == merged:
            return False
        self._entries[key] = merged
        self._country_codes = None
        return True

    def fill_offline(self, records: Mapping[str, Record]) -> int:
        """Resolve every unresolved coordinate through the offline table only.

        Returns the number of entries added or refined; saves once at the end.
        """
        changed: list[str] = []
        for key, lat, lon in unique_coordinates(records):
            if not self.needs_resolution(key):
                continue
            if self.update(key, self.resolver.resolve_offline(lat, lon)):
                changed.append(key)
        if changed:
            self.save()
            self._notify(changed)
        logger.info("dictionary.offline.filled changed=%s total=%s", len(changed), len(self))
        return len(changed)

    async def resolve_coordinate(self, lat: float, lon: float) -> LocationEntry:
        """Resolve one coordinate on demand and store the result."""
        key = coordinate_key(lat, lon)
        if not self.needs_resolution(key):
            return self._entries[key]
        resolved = await self.resolver.resolve(lat, lon)
        if self.update(key, resolved):
            self.save()
            self._notify([key])
        return self._entries.get(key, UNKNOWN_ENTRY)

    def start_enrichment(self, records: Mapping[str, Record]) -> Optional[asyncio.Task]:
        """Queue unresolved coordinates and make sure a background task is draining them.

        Must be called from a running event loop. Returns the task, or None when
        nothing needs resolving.
        """
        if not self.live_enabled:
            # fill_offline already did everything the offline table can.
            return None
        for key, lat, lon in unique_coordinates(records):
            if self.needs_resolution(key):
                self._pending.setdefault(key, (lat, lon))
        if not self._pending:
            return self._task if self.is_enriching else None
        if not self.is_enriching:
            self._task = asyncio.get_running_loop().create_task(self._drain())
        return self._task

    async def enrich(self, records: Mapping[str, Record]) -> int:
        """Run enrichment to completion (used by batch callers such as the CLI)."""
        task = self.start_enrichment(records)
        if task is None:
            return 0
        return await task

    async def stop(self) -> None:
        """Cancel a running enrichment pass; entries resolved so far are kept."""
        self._pending.clear()
        task, self._task = self._task, None
        if task is None:
            return
        if task.done():
            if not task.cancelled() and task.exception() is not None:
                logger.error("dictionary.enrich.failed error=%r", task.exception())
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _drain(self) -> int:
        resolved = 0
        logger.info("dictionary.enrich.start pending=%s", len(self._pending))
        while self._pending:
            key, (lat, lon) = next(iter(self._pending.items()))
            del self._pending[key]
            # Re-check after every await; another caller may have filled it.
            if not self.needs_resolution(key):
                continue
            entry = await self.resolver.resolve(lat, lon)
            if self.update(key, entry):
                resolved += 1
                self.save()
                self._notify([key])
        logger.info("dictionary.enrich.complete resolved=%s total=%s", resolved, len(self))
        return resolved

    def _notify(self, keys: list[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(keys)
            except Exception:
                logger.exception("dictionary.listener.failed keys=%s", len(keys))

