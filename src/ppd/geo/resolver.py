"""Layered coordinate -> place resolution.

Stages, first success wins and later stages only refine:

1. offline resolution table (exact key, then nearest neighbour)
2. stop when the offline row already has country and constituency
3. primary live provider at the exact point, merged with the offline result
4. nearby rings (primary then secondary provider per point)
5. secondary live provider at the exact point

Stages 3-5 only run when live reverse geocoding is enabled. ``resolve``
never raises; the worst case is the unknown entry.
"""

from __future__ import annotations

from typing import Optional, Protocol

from ppd.geo.lookup import ResolutionLookup
from ppd.geo.normalize import format_location_label
from ppd.models import UNKNOWN_ENTRY, LocationEntry
from ppd.utils.logging import get_logger


logger = get_logger(__name__)

# Angular radii (degrees) of the two sample rings around a coordinate.
NEARBY_SEARCH_STEPS: tuple[float, ...] = (0.75, 1.5)


class ReverseProvider(Protocol):
    name: str

    async def reverse(self, lat: float, lon: float) -> LocationEntry:
        """Return the resolved entry or the unknown entry."""


def nearby_points(lat: float, lon: float) -> list[tuple[float, float]]:
    """Four cardinal offsets per ring, inner ring first."""
    points: list[tuple[float, float]] = []
    for step in NEARBY_SEARCH_STEPS:
        points.extend(
            [(lat + step, lon), (lat - step, lon), (lat, lon + step), (lat, lon - step)]
        )
    return points


def is_complete(entry: LocationEntry) -> bool:
    return not entry.is_unknown and entry.has_constituency


def merge_entries(current: LocationEntry, candidate: LocationEntry) -> LocationEntry:
    """Merge two partial results.

    A known country beats an unknown one. When both agree on the country the
    constituency is filled in if missing; an existing constituency is kept.
    When both know different countries, ``current`` wins.
    """
    if candidate.is_unknown:
        return current
    if current.is_unknown:
        return candidate
    if current.country != candidate.country:
        return current

    constituency = current.constituency or candidate.constituency
    country_code = current.country_code or candidate.country_code
    if constituency == current.constituency and country_code == current.country_code:
        return current
    return LocationEntry(
        label=format_location_label(current.country, constituency),
        country=current.country,
        country_code=country_code,
        constituency=constituency,
    )


class LocationResolver:
    """Resolves rounded coordinates through the offline table and live providers."""

    def __init__(
        self,
        lookup: ResolutionLookup,
        primary: Optional[ReverseProvider] = None,
        secondary: Optional[ReverseProvider] = None,
        live_enabled: bool = False,
    ) -> None:
        self.lookup = lookup
        self.primary = primary
        self.secondary = secondary
        self.live_enabled = live_enabled and (primary is not None or secondary is not None)

    def resolve_offline(self, lat: float, lon: float) -> LocationEntry:
        """Stage 1 only. Synchronous; safe to call for every coordinate at load."""
        return self.lookup.resolve(lat, lon)

    async def resolve(self, lat: float, lon: float) -> LocationEntry:
        entry = self.resolve_offline(lat, lon)
        if is_complete(entry) or not self.live_enabled:
            return entry

        if self.primary is not None:
            entry = merge_entries(entry, await self.primary.reverse(lat, lon))
            if is_complete(entry):
                return entry

        entry = merge_entries(entry, await self._sample_nearby(lat, lon))
        if not entry.is_unknown:
            return entry

        if self.secondary is not None:
            entry = merge_entries(entry, await self.secondary.reverse(lat, lon))

        if entry.is_unknown:
            logger.info("resolver.unresolved lat=%s lon=%s", lat, lon)
        return entry

    async def _sample_nearby(self, lat: float, lon: float) -> LocationEntry:
        providers = [p for p in (self.primary, self.secondary) if p is not None]
        for near_lat, near_lon in nearby_points(lat, lon):
            for provider in providers:
                found = await provider.reverse(near_lat, near_lon)
                if not found.is_unknown:
                    logger.debug(
                        "resolver.nearby.hit provider=%s lat=%s lon=%s",
                        provider.name,
                        near_lat,
                        near_lon,
                    )
                    return found
        return UNKNOWN_ENTRY
