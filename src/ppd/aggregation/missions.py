"""Mission grouping and the mission leaderboard.

Several mission documents can describe one logical campaign, so missions
are grouped by normalized name rather than by identifier. Every "Sky Care"
variant ("Sky Care 2022", "Sky Care Mission 2024", ...) collapses into one
group; nameless missions get a group of their own per identifier.

The leaderboard reconciles two attribution sources per group: the missions'
self-reported ``totalPieces`` and the pieces of records that reference the
mission. The larger of the two is shown.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ppd.models import LeaderboardRow, Number
from ppd.records import Record, get_mission_refs, get_pieces, to_number
from ppd.utils.text import as_text, normalize_whitespace


SKY_CARE_KEY = "sky care"
SKY_CARE_NAME = "Sky Care"
UNNAMED_MISSION = "Unnamed mission"

# First present field wins.
MISSION_PIECE_FIELDS = ("totalPieces", "pieces", "piecesCollected", "collectedPieces")

Mission = Mapping[str, Any]


def normalize_mission_name(value: Any) -> str:
    return normalize_whitespace(as_text(value)).lower()


def mission_group_key(name: Any, mission_id: str = "") -> str:
    normalized = normalize_mission_name(name)
    if normalized.startswith(SKY_CARE_KEY):
        return SKY_CARE_KEY
    if normalized:
        return normalized
    return f"id:{mission_id}"


def get_mission_pieces(mission: Mission) -> Number:
    raw = None
    for field in MISSION_PIECE_FIELDS:
        if mission.get(field) is not None:
            raw = mission.get(field)
            break
    number = to_number(raw)
    if number is None:
        return 0
    return int(number) if number.is_integer() else number


def is_mission_hidden(mission: Mission) -> bool:
    return mission.get("hidden") is True


def mission_ref_key(ref: str, missions: Mapping[str, Mission]) -> str:
    """Group key for a mission reference on a record; unknown ids group by id."""
    mission = missions.get(ref)
    if not isinstance(mission, Mapping):
        return f"id:{ref}"
    return mission_group_key(mission.get("name"), ref)


def record_mission_keys(record: Record, missions: Mapping[str, Mission]) -> set[str]:
    return {mission_ref_key(ref, missions) for ref in get_mission_refs(record)}


@dataclass
class MissionGroup:
    key: str
    name: str
    self_reported: Number = 0
    from_records: Number = 0

    @property
    def total(self) -> Number:
        return max(self.self_reported, self.from_records)


def _display_name(key: str, raw_name: str) -> str:
    if key == SKY_CARE_KEY:
        return SKY_CARE_NAME
    return raw_name or UNNAMED_MISSION


def group_missions(missions: Mapping[str, Mission]) -> dict[str, MissionGroup]:
    """Visible missions grouped by key, with self-reported totals summed."""
    groups: dict[str, MissionGroup] = {}
    for mission_id, mission in missions.items():
        if not isinstance(mission, Mapping) or is_mission_hidden(mission):
            continue
        raw_name = normalize_whitespace(as_text(mission.get("name")))
        key = mission_group_key(raw_name, mission_id)
        group = groups.get(key)
        if group is None:
            group = groups[key] = MissionGroup(key=key, name=_display_name(key, raw_name))
        group.self_reported += get_mission_pieces(mission)
    return groups


def top_mission_totals(
    missions: Mapping[str, Mission],
    records: Optional[Mapping[str, Record]] = None,
    limit: int = 20,
) -> list[LeaderboardRow]:
    """Mission leaderboard: max of self-reported and record-attributed pieces per group.

    Hidden missions and references to unknown missions are ignored. A record
    counts once per group even if it references several missions of the group.
    Groups with no positive total are dropped.
    """
    groups = group_missions(missions)

    for record in (records or {}).values():
        keys: set[str] = set()
        for ref in get_mission_refs(record):
            mission = missions.get(ref)
            if not isinstance(mission, Mapping) or is_mission_hidden(mission):
                continue
            keys.add(mission_ref_key(ref, missions))
        if not keys:
            continue
        pieces = get_pieces(record)
        for key in keys:
            if key in groups:
                groups[key].from_records += pieces

    rows = [
        LeaderboardRow(name=group.name, count=group.total)
        for group in groups.values()
        if group.total > 0
    ]
    rows.sort(key=lambda row: (-row.count, row.name.lower(), row.name))
    return rows[: max(0, limit)]
