import asyncio

import orjson

from ppd.config import Settings
from ppd.geo.lookup import ResolutionLookup, parse_rows, resolution_key
from ppd.geo.normalize import CountryNormalizer
from ppd.geo.resolver import LocationResolver, merge_entries, nearby_points
from ppd.models import UNKNOWN_COUNTRY_LABEL, UNKNOWN_ENTRY, LocationEntry, ResolutionRow


NORMALIZER = CountryNormalizer()


class _FakeProvider:
    def __init__(self, name, answers=None):
        self.name = name
        self.answers = answers or {}
        self.calls = []

    async def reverse(self, lat, lon):
        self.calls.append((round(lat, 2), round(lon, 2)))
        return self.answers.get((round(lat, 2), round(lon, 2)), UNKNOWN_ENTRY)


def _row(key, lat, lon, country, constituency=""):
    return ResolutionRow(key=key, lat=lat, lon=lon, country=country, constituency=constituency)


def _lookup(*rows):
    return ResolutionLookup(NORMALIZER, max_distance=0.35, rows=rows)


def test_exact_key_match():
    lookup = _lookup(_row("51.50, -0.10", 51.5, -0.1, "United Kingdom", "Greater London"))
    entry = lookup.resolve(51.5, -0.1)
    assert entry.country == "United Kingdom"
    assert entry.country_code == "GB"
    assert entry.constituency == "Greater London"
    assert entry.label == "Greater London, United Kingdom"


def test_nearest_neighbour_within_radius():
    lookup = _lookup(_row("51.50, -0.10", 51.5, -0.1, "United Kingdom"))
    assert lookup.resolve(51.7, -0.1).country == "United Kingdom"
    assert lookup.resolve(51.5, 0.2).country == "United Kingdom"


def test_nearest_neighbour_beyond_radius_is_unknown():
    lookup = _lookup(_row("51.50, -0.10", 51.5, -0.1, "United Kingdom"))
    assert lookup.resolve(52.0, -0.1).country == UNKNOWN_COUNTRY_LABEL
    assert _lookup().resolve(51.5, -0.1).is_unknown


def test_nearest_picks_closest_row():
    lookup = _lookup(
        _row("50.00, 5.00", 50.0, 5.0, "Belgium"),
        _row("50.00, 5.30", 50.0, 5.3, "Luxembourg"),
    )
    assert lookup.resolve(50.0, 5.2).country == "Luxembourg"


def test_parse_rows_normalizes_and_skips_bad_rows():
    payload = {
        "locations": [
            {"key": "", "lat": 48.85, "lon": 2.35, "country": "france", "detail": "Paris"},
            {"lat": 40.0, "lon": -3.7, "country": "Unknown", "detail": "x"},
            {"lat": "nope", "lon": 1, "country": "Spain"},
            {"lat": 52.52, "lon": 13.4, "country": "Deutschland", "detail": "status_ok"},
            "garbage",
        ]
    }
    rows = parse_rows(payload, NORMALIZER)
    assert [(r.key, r.country, r.constituency) for r in rows] == [
        ("48.85, 2.35", "France", "Paris"),
        (resolution_key(52.52, 13.4), "Germany", ""),
    ]
    assert parse_rows({"locations": "nope"}, NORMALIZER) == []
    assert parse_rows(None, NORMALIZER) == []


def test_lookup_loads_file_once(tmp_path):
    path = tmp_path / "resolutions.json"
    path.write_bytes(
        orjson.dumps({"locations": [{"lat": 51.5, "lon": -0.1, "country": "UK"}]})
    )
    settings = Settings(resolution_data_file=path)
    lookup = ResolutionLookup(NORMALIZER)

    asyncio.run(lookup.ensure_loaded(settings=settings))
    path.write_bytes(b"{}")
    asyncio.run(lookup.ensure_loaded(settings=settings))

    assert lookup.loaded
    assert len(lookup) == 1
    assert lookup.resolve(51.5, -0.1).country == "United Kingdom"


def test_lookup_tolerates_corrupt_file(tmp_path):
    path = tmp_path / "resolutions.json"
    path.write_bytes(b"{not json")
    lookup = ResolutionLookup(NORMALIZER)
    asyncio.run(lookup.ensure_loaded(settings=Settings(resolution_data_file=path)))
    assert lookup.loaded
    assert len(lookup) == 0


def test_merge_prefers_known_country_and_fills_constituency():
    uk = LocationEntry(label="United Kingdom", country="United Kingdom", country_code="GB")
    uk_kent = LocationEntry(label="Kent, United Kingdom", country="United Kingdom", constituency="Kent")
    france = LocationEntry(label="France", country="France", country_code="FR", constituency="Nord")

    assert merge_entries(UNKNOWN_ENTRY, uk) == uk
    assert merge_entries(uk, UNKNOWN_ENTRY) == uk
    assert merge_entries(uk, france) == uk

    merged = merge_entries(uk, uk_kent)
    assert merged.constituency == "Kent"
    assert merged.country_code == "GB"
    assert merged.label == "Kent, United Kingdom"

    other = uk_kent.model_copy(update={"constituency": "Surrey"})
    assert merge_entries(uk_kent, other).constituency == "Kent"


def test_nearby_points_two_rings_four_directions():
    points = nearby_points(10.0, 20.0)
    assert points == [
        (10.75, 20.0), (9.25, 20.0), (10.0, 20.75), (10.0, 19.25),
        (11.5, 20.0), (8.5, 20.0), (10.0, 21.5), (10.0, 18.5),
    ]


def test_offline_fast_path_skips_live_providers():
    primary = _FakeProvider("photon")
    resolver = LocationResolver(
        _lookup(_row("51.50, -0.10", 51.5, -0.1, "United Kingdom", "Greater London")),
        primary=primary,
        live_enabled=True,
    )
    entry = asyncio.run(resolver.resolve(51.5, -0.1))
    assert entry.constituency == "Greater London"
    assert primary.calls == []


def test_live_disabled_returns_offline_result():
    primary = _FakeProvider("photon")
    resolver = LocationResolver(_lookup(), primary=primary, live_enabled=False)
    assert asyncio.run(resolver.resolve(10.0, 20.0)).is_unknown
    assert primary.calls == []


def test_primary_provider_refines_offline_country():
    kent = LocationEntry(label="Kent, United Kingdom", country="United Kingdom", country_code="GB", constituency="Kent")
    primary = _FakeProvider("photon", {(51.3, 0.5): kent})
    resolver = LocationResolver(
        _lookup(_row("51.30, 0.50", 51.3, 0.5, "United Kingdom")),
        primary=primary,
        live_enabled=True,
    )
    entry = asyncio.run(resolver.resolve(51.3, 0.5))
    assert entry.country == "United Kingdom"
    assert entry.constituency == "Kent"
    assert primary.calls == [(51.3, 0.5)]


def test_nearby_ring_used_when_origin_unresolved():
    france = LocationEntry(label="France", country="France", country_code="FR")
    primary = _FakeProvider("photon")
    secondary = _FakeProvider("nominatim", {(10.75, 20.0): france})
    resolver = LocationResolver(_lookup(), primary=primary, secondary=secondary, live_enabled=True)

    entry = asyncio.run(resolver.resolve(10.0, 20.0))

    assert entry.country == "France"
    assert primary.calls == [(10.0, 20.0), (10.75, 20.0)]
    assert secondary.calls == [(10.75, 20.0)]


def test_secondary_provider_is_last_resort():
    primary = _FakeProvider("photon")
    secondary = _FakeProvider("nominatim")
    resolver = LocationResolver(_lookup(), primary=primary, secondary=secondary, live_enabled=True)

    entry = asyncio.run(resolver.resolve(10.0, 20.0))

    assert entry.is_unknown
    assert len(primary.calls) == 1 + 8
    assert len(secondary.calls) == 8 + 1
    assert secondary.calls[-1] == (10.0, 20.0)
