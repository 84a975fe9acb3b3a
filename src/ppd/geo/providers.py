"""Reverse-geocoding providers (Photon, Nominatim).

Each provider response is read through ordered extractor strategies; the
first strategy that yields a non-empty value wins. Any failure (timeout,
non-2xx status, malformed body) degrades to the unknown entry here and never
propagates to the resolver.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

import httpx

from ppd.config import Settings
from ppd.geo.normalize import CountryNormalizer, normalize_constituency, normalize_country_code
from ppd.geo.queue import RequestQueue
from ppd.models import UNKNOWN_COUNTRY_LABEL, UNKNOWN_ENTRY, LocationEntry
from ppd.utils.logging import get_logger
from ppd.utils.text import as_text, normalize_whitespace


logger = get_logger(__name__)

Extractor = Callable[[Mapping[str, Any]], Optional[str]]


def feature_property(name: str) -> Extractor:
    """GeoJSON style: ``payload.features[0].properties[name]`` (Photon)."""

    def extract(payload: Mapping[str, Any]) -> Optional[str]:
        features = payload.get("features")
        if not isinstance(features, list) or not features or not isinstance(features[0], Mapping):
            return None
        properties = features[0].get("properties")
        if not isinstance(properties, Mapping):
            return None
        return _clean(properties.get(name))

    return extract


def address_field(name: str) -> Extractor:
    """Nominatim style: ``payload.address[name]``."""

    def extract(payload: Mapping[str, Any]) -> Optional[str]:
        address = payload.get("address")
        if not isinstance(address, Mapping):
            return None
        return _clean(address.get(name))

    return extract


def _clean(value: Any) -> Optional[str]:
    if isinstance(value, (Mapping, list)):
        return None
    text = normalize_whitespace(as_text(value))
    return text or None


def first_non_empty(payload: Mapping[str, Any], extractors: Sequence[Extractor]) -> str:
    for extractor in extractors:
        value = extractor(payload)
        if value:
            return value
    return ""


@dataclass(frozen=True)
class ProviderSpec:
    """Which payload fields a provider answers with, in priority order."""

    name: str
    country: tuple[Extractor, ...]
    country_code: tuple[Extractor, ...]
    constituency: tuple[Extractor, ...]
    place: tuple[Extractor, ...]


PHOTON_SPEC = ProviderSpec(
    name="photon",
    country=(feature_property("country"),),
    country_code=(feature_property("countrycode"),),
    constituency=(feature_property("county"), feature_property("state")),
    place=(
        feature_property("city"),
        feature_property("name"),
        feature_property("county"),
        feature_property("state"),
    ),
)

NOMINATIM_SPEC = ProviderSpec(
    name="nominatim",
    country=(address_field("country"),),
    country_code=(address_field("country_code"),),
    constituency=(
        address_field("county"),
        address_field("state_district"),
        address_field("state"),
    ),
    place=(
        address_field("city"),
        address_field("town"),
        address_field("village"),
        address_field("county"),
        address_field("state"),
    ),
)


def parse_payload(
    payload: Mapping[str, Any],
    spec: ProviderSpec,
    normalizer: CountryNormalizer,
) -> LocationEntry:
    """Turn a provider payload into a normalized entry (unknown if no country)."""
    country = normalizer.normalize_country_name(first_non_empty(payload, spec.country))
    if country == UNKNOWN_COUNTRY_LABEL:
        return UNKNOWN_ENTRY

    country_code = normalize_country_code(
        first_non_empty(payload, spec.country_code)
    ) or normalizer.country_code_from_name(country)
    constituency = normalize_constituency(first_non_empty(payload, spec.constituency), country)
    place = first_non_empty(payload, spec.place)
    label = f"{place}, {country}" if place and place != country else country
    return LocationEntry(
        label=label,
        country=country,
        country_code=country_code,
        constituency=constituency,
    )


class ReverseGeocodingProvider:
    """One live provider. Every call goes through the shared request queue."""

    def __init__(
        self,
        spec: ProviderSpec,
        url: str,
        params: Mapping[str, Any],
        client: httpx.AsyncClient,
        queue: RequestQueue,
        normalizer: CountryNormalizer,
        timeout_seconds: float,
        user_agent: str,
    ) -> None:
        self.spec = spec
        self.url = url
        self.params = dict(params)
        self.client = client
        self.queue = queue
        self.normalizer = normalizer
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent

    @property
    def name(self) -> str:
        return self.spec.name

    async def reverse(self, lat: float, lon: float) -> LocationEntry:
        """Resolve a point; returns the unknown entry on any failure."""
        try:
            payload = await self.queue.submit(lambda: self._fetch(lat, lon))
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning(
                "provider.failed provider=%s lat=%s lon=%s error=%s",
                self.name,
                lat,
                lon,
                exc.__class__.__name__,
            )
            return UNKNOWN_ENTRY

        if payload is None:
            return UNKNOWN_ENTRY
        return parse_payload(payload, self.spec, self.normalizer)

    async def _fetch(self, lat: float, lon: float) -> Optional[Mapping[str, Any]]:
        params = {**self.params, "lat": lat, "lon": lon}
        headers = {"Accept": "application/json", "User-Agent": self.user_agent}
        response = await asyncio.wait_for(
            self.client.get(self.url, params=params, headers=headers),
            timeout=self.timeout_seconds,
        )
        if not response.is_success:
            logger.info(
                "provider.status provider=%s status=%s", self.name, response.status_code
            )
            return None
        payload = response.json()
        if not isinstance(payload, Mapping):
            return None
        return payload


def build_providers(
    settings: Settings,
    client: httpx.AsyncClient,
    queue: RequestQueue,
    normalizer: CountryNormalizer,
) -> tuple[ReverseGeocodingProvider, ReverseGeocodingProvider]:
    """Return (primary, secondary) providers configured from settings."""
    photon = ReverseGeocodingProvider(
        spec=PHOTON_SPEC,
        url=settings.photon_url,
        params={},
        client=client,
        queue=queue,
        normalizer=normalizer,
        timeout_seconds=settings.geocode_timeout_seconds,
        user_agent=settings.user_agent,
    )
    nominatim = ReverseGeocodingProvider(
        spec=NOMINATIM_SPEC,
        url=settings.nominatim_url,
        params={"format": "jsonv2", "zoom": settings.nominatim_zoom, "addressdetails": 1},
        client=client,
        queue=queue,
        normalizer=normalizer,
        timeout_seconds=settings.geocode_timeout_seconds,
        user_agent=settings.user_agent,
    )
    return photon, nominatim
