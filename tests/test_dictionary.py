import asyncio

import orjson
import pytest

from ppd.geo.dictionary import LocationDictionary, is_valid_key
from ppd.geo.lookup import ResolutionLookup
from ppd.geo.normalize import CountryNormalizer
from ppd.geo.resolver import LocationResolver
from ppd.geo.store import JsonFileStore, MemoryStore
from ppd.models import UNKNOWN_ENTRY, LocationEntry, ResolutionRow


NORMALIZER = CountryNormalizer()
CACHE_KEY = "test.locations"


class _FakeProvider:
    def __init__(self, answers=None):
        self.name = "fake"
        self.answers = answers or {}
        self.calls = []

    async def reverse(self, lat, lon):
        self.calls.append((round(lat, 2), round(lon, 2)))
        return self.answers.get((round(lat, 2), round(lon, 2)), UNKNOWN_ENTRY)


class _FullStore(MemoryStore):
    def set_item(self, key, value):
        raise OSError("quota exceeded")


def _photo(lat, lon, **overrides):
    payload = {"pieces": 1, "location": {"_latitude": lat, "_longitude": lon}}
    payload.update(overrides)
    return payload


def _resolver(rows=(), provider=None, live_enabled=False):
    lookup = ResolutionLookup(NORMALIZER, rows=list(rows))
    return LocationResolver(lookup, primary=provider, live_enabled=live_enabled)


def _uk_row():
    return ResolutionRow(key="51.50, -0.10", lat=51.5, lon=-0.1, country="United Kingdom")


def test_key_pattern():
    assert is_valid_key("51.50,-0.10")
    assert is_valid_key("-1.00,0.00")
    assert not is_valid_key("51.5,-0.1")
    assert not is_valid_key("51.50, -0.10")
    assert not is_valid_key(None)


def test_load_drops_stale_keys_and_upgrades_legacy_entries():
    persisted = {
        "51.50,-0.10": "London, UK",
        "48.86,2.35": {"label": "Paris, France", "country": "France", "countryCode": "FR"},
        "51.5, -0.1": {"country": "United Kingdom"},
        "undefined": "Nowhere",
    }
    store = MemoryStore({CACHE_KEY: orjson.dumps(persisted).decode()})

    dictionary = LocationDictionary.load(_resolver(), NORMALIZER, store, CACHE_KEY)

    assert len(dictionary) == 2
    assert dictionary.get("51.50,-0.10").country == "United Kingdom"
    assert dictionary.get("51.50,-0.10").country_code == "GB"
    assert dictionary.get("48.86,2.35").country_code == "FR"


def test_load_tolerates_corrupt_cache():
    store = MemoryStore({CACHE_KEY: "{broken"})
    dictionary = LocationDictionary.load(_resolver(), NORMALIZER, store, CACHE_KEY)
    assert len(dictionary) == 0

    store = MemoryStore({CACHE_KEY: "[1, 2, 3]"})
    assert len(LocationDictionary.load(_resolver(), NORMALIZER, store, CACHE_KEY)) == 0


def test_save_failure_keeps_memory_state():
    dictionary = LocationDictionary(_resolver(), NORMALIZER, _FullStore(), CACHE_KEY)
    dictionary.update("51.50,-0.10", LocationEntry(label="UK", country="United Kingdom"))
    assert dictionary.save() is False
    assert dictionary.get("51.50,-0.10").country == "United Kingdom"


def test_json_file_store_round_trip_and_corruption(tmp_path):
    path = tmp_path / "cache" / "locations.json"
    store = JsonFileStore(path)
    store.set_item("k", "v")
    assert JsonFileStore(path).get_item("k") == "v"

    path.write_text("not json", encoding="utf-8")
    assert JsonFileStore(path).get_item("k") is None


def test_fill_offline_persists_and_notifies():
    store = MemoryStore()
    dictionary = LocationDictionary(_resolver([_uk_row()]), NORMALIZER, store, CACHE_KEY)
    seen = []
    dictionary.add_listener(seen.append)

    changed = dictionary.fill_offline({"a": _photo(51.5, -0.1), "b": _photo(0, 0)})

    assert changed == 1
    assert seen == [["51.50,-0.10"]]
    persisted = orjson.loads(store.get_item(CACHE_KEY))
    assert persisted["51.50,-0.10"]["countryCode"] == "GB"


def test_needs_resolution_depends_on_live_mode():
    partial = LocationEntry(label="United Kingdom", country="United Kingdom", country_code="GB")
    entries = {"51.50,-0.10": partial, "10.00,20.00": UNKNOWN_ENTRY}

    offline = LocationDictionary(_resolver(), NORMALIZER, MemoryStore(), CACHE_KEY, entries)
    assert offline.needs_resolution("51.50,-0.10") is False
    assert offline.needs_resolution("10.00,20.00") is True
    assert offline.needs_resolution("1.00,1.00") is True

    live = LocationDictionary(
        _resolver(provider=_FakeProvider(), live_enabled=True), NORMALIZER, MemoryStore(), CACHE_KEY, entries
    )
    assert live.needs_resolution("51.50,-0.10") is True


def test_background_enrichment_fills_entries_and_notifies():
    kent = LocationEntry(label="Kent, United Kingdom", country="United Kingdom", constituency="Kent")
    provider = _FakeProvider({(51.3, 0.5): kent})
    store = MemoryStore()
    dictionary = LocationDictionary(
        _resolver(provider=provider, live_enabled=True), NORMALIZER, store, CACHE_KEY
    )
    updates = []
    dictionary.add_listener(updates.append)
    records = {"a": _photo(51.3, 0.5), "b": _photo(51.3001, 0.5001)}

    async def run():
        task = dictionary.start_enrichment(records)
        assert dictionary.is_enriching
        resolved = await task
        return resolved

    assert asyncio.run(run()) == 1
    assert not dictionary.is_enriching
    assert updates == [["51.30,0.50"]]
    assert dictionary.get("51.30,0.50").constituency == "Kent"
    assert provider.calls == [(51.3, 0.5)]
    assert "51.30,0.50" in orjson.loads(store.get_item(CACHE_KEY))


def test_start_enrichment_is_noop_when_live_disabled():
    dictionary = LocationDictionary(_resolver(), NORMALIZER, MemoryStore(), CACHE_KEY)

    async def run():
        return dictionary.start_enrichment({"a": _photo(10.0, 20.0)})

    assert asyncio.run(run()) is None


def test_country_info_uses_dictionary_country_code():
    entries = {
        "51.50,-0.10": LocationEntry(label="London", country="United Kingdom", country_code="GB"),
        "53.80,-1.55": LocationEntry(label="Leeds", country="United Kingdom", constituency="West Yorkshire"),
    }
    dictionary = LocationDictionary(_resolver(), NORMALIZER, MemoryStore(), CACHE_KEY, entries)

    info = dictionary.country_info(_photo(53.8, -1.55))
    assert info.country_code == "GB"
    assert info.country_key == "cc:GB"
    assert info.constituency_key == "cc:GB|west yorkshire"

    missing = dictionary.country_info(_photo(0, 0))
    assert missing.country == "Unknown country"
    assert missing.country_key == "nm:unknown country"
    assert missing.constituency_key == ""


def test_resolve_coordinate_on_demand():
    france = LocationEntry(label="Paris, France", country="France", country_code="FR", constituency="Paris")
    provider = _FakeProvider({(48.85, 2.35): france})
    dictionary = LocationDictionary(
        _resolver(provider=provider, live_enabled=True), NORMALIZER, MemoryStore(), CACHE_KEY
    )

    first = asyncio.run(dictionary.resolve_coordinate(48.851, 2.349))
    second = asyncio.run(dictionary.resolve_coordinate(48.85, 2.35))

    assert first.constituency == "Paris"
    assert second == first
    assert "48.85,2.35" in dictionary
    assert provider.calls == [(48.85, 2.35)]


def test_update_rejects_malformed_keys():
    dictionary = LocationDictionary(_resolver(), NORMALIZER, MemoryStore(), CACHE_KEY)
    with pytest.raises(ValueError):
        dictionary.update("51.5,-0.1", UNKNOWN_ENTRY)


def test_failing_listener_does_not_stop_enrichment():
    answers = {
        (lat, 10.0): LocationEntry(label="Spain", country="Spain", country_code="ES", constituency=f"Zone {lat}")
        for lat in (40.0, 41.0, 42.0)
    }
    provider = _FakeProvider(answers)
    dictionary = LocationDictionary(
        _resolver(provider=provider, live_enabled=True), NORMALIZER, MemoryStore(), CACHE_KEY
    )
    seen = []

    def broken(keys):
        raise RuntimeError("view failed")

    dictionary.add_listener(broken)
    dictionary.add_listener(seen.extend)
    records = {f"r{lat}": _photo(lat, 10.0) for lat in (40.0, 41.0, 42.0)}

    async def run():
        return await dictionary.enrich(records)

    assert asyncio.run(run()) == 3
    assert len(provider.calls) == 3
    assert sorted(seen) == ["40.00,10.00", "41.00,10.00", "42.00,10.00"]
    assert not dictionary.is_enriching


class _ExplodingProvider(_FakeProvider):
    async def reverse(self, lat, lon):
        raise RuntimeError("resolver bug")


def test_stop_reports_crashed_enrichment(caplog):
    dictionary = LocationDictionary(
        _resolver(provider=_ExplodingProvider(), live_enabled=True), NORMALIZER, MemoryStore(), CACHE_KEY
    )

    async def run():
        task = dictionary.start_enrichment({"a": _photo(10.0, 20.0)})
        await asyncio.wait([task])
        await dictionary.stop()

    asyncio.run(run())

    assert "dictionary.enrich.failed" in caplog.text
    assert not dictionary.is_enriching
