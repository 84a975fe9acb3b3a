from datetime import datetime, timezone

from ppd.records import (
    coordinate_key,
    get_categories,
    get_category_count,
    get_category_value,
    get_coordinates,
    get_mission_refs,
    get_pieces,
    get_record_date,
    is_moderated,
    unique_coordinates,
)
from ppd.utils.time import parse_timestamp


def _photo(**overrides):
    payload = {
        "pieces": 3,
        "published": True,
        "updated": "2023-05-14T09:30:00Z",
        "location": {"_latitude": 51.5074, "_longitude": -0.1278},
        "categories": [{"brand": "Coke", "label": "can", "number": 2}],
    }
    payload.update(overrides)
    return payload


def test_zero_zero_is_no_location():
    assert get_coordinates(_photo(location={"_latitude": 0, "_longitude": 0})) is None
    assert get_coordinates(_photo(location={"latitude": 0.0, "longitude": 0.0})) is None


def test_coordinates_from_photo_and_water_test_shapes():
    assert get_coordinates(_photo()) == (51.5074, -0.1278)
    assert get_coordinates({"location": {"latitude": "10.5", "longitude": 20}}) == (10.5, 20.0)
    assert get_coordinates({"location": {"_latitude": "x", "_longitude": 1}}) is None
    assert get_coordinates({}) is None


def test_coordinate_key_rounds_to_two_decimals():
    assert coordinate_key(51.5074, -0.1278) == "51.51,-0.13"
    assert coordinate_key(0.001, 10) == "0.00,10.00"


def test_unique_coordinates_skips_missing_and_duplicates():
    records = {
        "a": _photo(),
        "b": _photo(location={"_latitude": 51.5071, "_longitude": -0.1281}),
        "c": _photo(location={"_latitude": 0, "_longitude": 0}),
        "d": _photo(location={"_latitude": 48.8566, "_longitude": 2.3522}),
    }
    keys = [key for key, _, _ in unique_coordinates(records)]
    assert keys == ["51.51,-0.13", "48.86,2.35"]


def test_pieces_never_negative():
    assert get_pieces(_photo(pieces=10)) == 10
    assert get_pieces(_photo(pieces="7")) == 7
    assert get_pieces(_photo(pieces=-4)) == 0
    assert get_pieces(_photo(pieces="lots")) == 0
    assert get_pieces({}) == 0
    assert get_pieces(_photo(pieces=2.5)) == 2.5


def test_publish_flag_wins_over_moderated_date():
    assert is_moderated(_photo(published=True, moderated=None)) is True
    assert is_moderated(_photo(published=False, moderated="2023-01-01")) is False
    assert is_moderated(_photo(published="true")) is True
    assert is_moderated(_photo(published=" FALSE ", moderated="2023-01-01")) is False
    assert is_moderated({"moderated": "2023-01-01"}) is True
    assert is_moderated({}) is False


def test_record_date_precedence():
    record = {"updated": "", "moderated": "2022-02-03T00:00:00Z", "created": "2021-01-01T00:00:00Z"}
    assert get_record_date(record) == datetime(2022, 2, 3, tzinfo=timezone.utc)
    assert get_record_date({"dateTime": 1684056600000}) == datetime(
        2023, 5, 14, 9, 30, tzinfo=timezone.utc
    )
    assert get_record_date({}) is None


def test_zero_timestamp_falls_through_to_next_field():
    record = {"updated": 0, "created": "2023-05-01T08:00:00Z"}
    assert get_record_date(record) == datetime(2023, 5, 1, 8, tzinfo=timezone.utc)
    assert get_record_date({"updated": 0}) is None


def test_parse_timestamp_variants():
    assert parse_timestamp("2023-05-14T10:30:00+01:00") == datetime(
        2023, 5, 14, 9, 30, tzinfo=timezone.utc
    )
    assert parse_timestamp("2023-05-14") == datetime(2023, 5, 14, tzinfo=timezone.utc)
    assert parse_timestamp("1684056600000") == datetime(2023, 5, 14, 9, 30, tzinfo=timezone.utc)
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp(True) is None


def test_category_helpers():
    record = _photo(categories=[{"brand": " Coke ", "number": 0}, {"label": "bottle"}, "junk"])
    categories = get_categories(record)
    assert len(categories) == 2
    assert get_category_count(categories[0]) == 1
    assert get_category_value(categories[0], "brand") == "Coke"
    assert get_category_value(categories[1], "brand") == "undefined"
    assert get_categories(_photo(categories=None)) == []


def test_mission_refs():
    assert get_mission_refs({"missions": ["m1", " m2 ", None, ""]}) == ["m1", "m2"]
    assert get_mission_refs({"missionIds": "m3"}) == ["m3"]
    assert get_mission_refs({}) == []
