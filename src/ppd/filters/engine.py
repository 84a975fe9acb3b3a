"""Filter engine and the option lists that drive the filter controls."""

from __future__ import annotations

from typing import Mapping

from ppd.aggregation.missions import Mission, group_missions
from ppd.filters import rules
from ppd.geo.dictionary import LocationDictionary
from ppd.geo.normalize import country_code_to_flag
from ppd.models import (
    UNKNOWN_COUNTRY_LABEL,
    ConstituencyOption,
    CountryOption,
    FilterCriteria,
    MissionOption,
)
from ppd.records import Record, get_record_date


def filter_records(
    records: Mapping[str, Record],
    dictionary: LocationDictionary,
    missions: Mapping[str, Mission],
    criteria: FilterCriteria,
) -> dict[str, Record]:
    """Return the records passing every active filter, keyed by id.

    Cheap field checks run before the dictionary lookup. With a search term
    active, each kept record is a shallow copy whose ``categories`` only hold
    the matching entries; the input records are never modified.
    """
    term = rules.normalize_search(criteria.search)
    needs_location = bool(criteria.country or criteria.constituency)
    out: dict[str, Record] = {}

    for record_id, record in records.items():
        if not rules.passes_status(record, criteria.status):
            continue
        if not rules.passes_min_pieces(record, criteria.min_pieces):
            continue
        if not rules.passes_date(record, criteria.year, criteria.month, criteria.day):
            continue
        if not rules.passes_mission(record, criteria.mission, missions):
            continue

        if term:
            categories = rules.matching_categories(record, term)
            if not categories:
                continue

        if needs_location:
            info = dictionary.country_info(record)
            if criteria.country and info.country_key != criteria.country:
                continue
            if criteria.constituency and info.constituency_key != criteria.constituency:
                continue

        out[record_id] = {**record, "categories": categories} if term else record
    return out


def build_country_options(
    records: Mapping[str, Record], dictionary: LocationDictionary
) -> list[CountryOption]:
    """Known countries with record counts, most records first."""
    options: dict[str, CountryOption] = {}
    for record in records.values():
        info = dictionary.country_info(record)
        if info.country == UNKNOWN_COUNTRY_LABEL:
            continue
        option = options.get(info.country_key)
        if option is None:
            option = options[info.country_key] = CountryOption(
                key=info.country_key, country=info.country
            )
        option.count += 1
        if not option.country_code and info.country_code:
            option.country_code = info.country_code

    for option in options.values():
        option.flag = country_code_to_flag(option.country_code)
    return sorted(options.values(), key=lambda o: (-o.count, o.country.lower()))


def build_constituency_options(
    records: Mapping[str, Record], dictionary: LocationDictionary, country_key: str
) -> list[ConstituencyOption]:
    if not country_key:
        return []
    options: dict[str, ConstituencyOption] = {}
    for record in records.values():
        info = dictionary.country_info(record)
        if info.country_key != country_key or not info.constituency_key:
            continue
        option = options.get(info.constituency_key)
        if option is None:
            option = options[info.constituency_key] = ConstituencyOption(
                key=info.constituency_key, constituency=info.constituency
            )
        option.count += 1
    return sorted(options.values(), key=lambda o: (-o.count, o.constituency.lower()))


def build_mission_options(missions: Mapping[str, Mission]) -> list[MissionOption]:
    groups = group_missions(missions)
    options = [MissionOption(key=group.key, name=group.name) for group in groups.values()]
    return sorted(options, key=lambda o: (o.name.lower(), o.key))


def year_options(records: Mapping[str, Record]) -> list[int]:
    years = set()
    for record in records.values():
        moment = get_record_date(record)
        if moment is not None:
            years.add(moment.year)
    return sorted(years)


def reconcile_criteria(
    criteria: FilterCriteria,
    countries: list[CountryOption],
    constituencies: list[ConstituencyOption],
) -> FilterCriteria:
    """Drop a mission/location conflict and selections that no longer exist as options."""
    effective = criteria.effective()
    update: dict[str, str] = {}
    if effective.country and effective.country not in {o.key for o in countries}:
        update["country"] = ""
        update["constituency"] = ""
    elif effective.constituency and effective.constituency not in {o.key for o in constituencies}:
        update["constituency"] = ""
    return effective.model_copy(update=update) if update else effective
