"""
Format Bridge.

Converts between the position-indexed scheduler state and the legacy
flat-list shape used by persisted learner records.

Legacy shape (schema version 2):
- One ordered list of unit records per track; array index is the order
- `currentUnitId` names the unit presented next (index 0 when absent)
- Per-unit `position`, `skipNumber` and `distractorLevel` fields

Schema version 1 records (the older "tubes"/"stitches" layout, including
its position-keyed variant) are upgraded to version 2 before validation.

Only the bridge repairs malformed input: duplicate, missing or out-of-order
positions and a misplaced current unit are fixed and reported.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from helix.core.errors import MalformedLegacyInput
from helix.core.models import (
    DEFAULT_SKIP_PROGRESSION,
    TRACK_NUMBERS,
    CompletionRecord,
    DistractorLevel,
    SchedulerState,
    SkipProgression,
    Track,
    Unit,
)
from helix.engine.position_table import PositionTable

CURRENT_SCHEMA_VERSION = 2
LEGACY_DEFAULT_SKIP_NUMBER = 3


# =============================================================================
# Persisted Shape
# =============================================================================


class LegacyModel(BaseModel):
    """Base for persisted records: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class LegacyUnitRecord(LegacyModel):
    unit_id: str = Field(min_length=1)
    thread_id: str | None = None
    skip_number: int | None = None
    distractor_level: DistractorLevel | None = None
    position: int | None = None
    completed: bool = False


class LegacyTrackRecord(LegacyModel):
    thread_id: str | None = None
    current_unit_id: str | None = None
    units: list[LegacyUnitRecord] = Field(default_factory=list)


class LegacyCompletionRecord(LegacyModel):
    unit_id: str
    thread_id: str | None = None
    track_number: int | None = None
    correct_count: int = Field(ge=0)
    total_count: int = Field(ge=0)
    timestamp: datetime


class LegacyState(LegacyModel):
    """A learner's persisted scheduler record."""

    schema_version: Literal[2] = CURRENT_SCHEMA_VERSION
    user_id: str = "anonymous"
    active_track_number: int = 1
    cycle_count: int = Field(default=0, ge=0)
    tracks: dict[int, LegacyTrackRecord]
    completed_units: list[LegacyCompletionRecord] = Field(default_factory=list)
    total_points: int = Field(default=0, ge=0)
    last_updated: datetime | None = None


# =============================================================================
# Repair Reporting
# =============================================================================


@dataclass
class TrackRepair:
    """One correction applied while accepting legacy input."""

    track_number: int
    kind: str  # missing_position | duplicate_position | out_of_order | current_moved
    detail: str


@dataclass
class RepairReport:
    """All corrections applied to one legacy record."""

    repairs: list[TrackRepair] = field(default_factory=list)

    @property
    def repaired(self) -> bool:
        return bool(self.repairs)

    def add(self, track_number: int, kind: str, detail: str) -> None:
        self.repairs.append(TrackRepair(track_number, kind, detail))
        logger.warning(f"Repaired legacy track {track_number} ({kind}): {detail}")


# =============================================================================
# Version Detection
# =============================================================================


def _upgrade_v1(payload: dict[str, Any]) -> dict[str, Any]:
    """Map a version 1 "tubes/stitches" record onto the version 2 layout."""
    tubes = payload.get("tubes") or {}
    if not isinstance(tubes, dict):
        raise MalformedLegacyInput(f"tubes must be an object, got {type(tubes).__name__}")

    tracks: dict[str, Any] = {}
    for key, tube in tubes.items():
        if not isinstance(tube, dict):
            raise MalformedLegacyInput(f"Tube {key!r} is not an object")

        if isinstance(tube.get("positions"), dict):
            stitches = []
            for position, data in tube["positions"].items():
                if not isinstance(data, dict):
                    raise MalformedLegacyInput(
                        f"Tube {key!r} position {position!r} is not an object"
                    )
                try:
                    numeric = int(position)
                except (TypeError, ValueError) as exc:
                    raise MalformedLegacyInput(
                        f"Tube {key!r} has non-numeric position {position!r}"
                    ) from exc
                stitches.append({**data, "id": data.get("stitchId"), "position": numeric})
        else:
            stitches = tube.get("stitches") or []
            if not isinstance(stitches, list) or not all(isinstance(s, dict) for s in stitches):
                raise MalformedLegacyInput(f"Tube {key!r} stitches must be a list of objects")
            stitches = list(stitches)

        # Older records were ordered by position, not by array index
        stitches.sort(
            key=lambda s: s.get("position") if isinstance(s.get("position"), int) else float("inf")
        )
        tracks[str(key)] = {
            "threadId": tube.get("threadId"),
            "currentUnitId": tube.get("currentStitchId"),
            "units": [
                {
                    "unitId": s.get("id") or s.get("stitchId"),
                    "threadId": s.get("threadId"),
                    "skipNumber": s.get("skipNumber"),
                    "distractorLevel": s.get("distractorLevel"),
                    "position": s.get("position"),
                    "completed": bool(s.get("completed", False)),
                }
                for s in stitches
            ],
        }

    completed = payload.get("completedStitches") or []
    if not isinstance(completed, list) or not all(isinstance(c, dict) for c in completed):
        raise MalformedLegacyInput("completedStitches must be a list of objects")

    return {
        "schemaVersion": CURRENT_SCHEMA_VERSION,
        "userId": payload.get("userId") or "anonymous",
        "activeTrackNumber": payload.get("activeTubeNumber", 1),
        "cycleCount": payload.get("cycleCount") or 0,
        "tracks": tracks,
        "completedUnits": [
            {
                "unitId": c.get("stitchId"),
                "threadId": c.get("threadId"),
                "correctCount": c.get("score"),
                "totalCount": c.get("totalQuestions"),
                "timestamp": c.get("timestamp"),
            }
            for c in completed
        ],
        "totalPoints": payload.get("totalPoints") or 0,
        "lastUpdated": payload.get("last_updated") or payload.get("lastUpdated"),
    }


def load_legacy(payload: dict[str, Any] | LegacyState) -> LegacyState:
    """
    Validate a persisted record of any supported schema version.

    Args:
        payload: Decoded JSON record, or an already-validated LegacyState

    Returns:
        Validated version 2 LegacyState

    Raises:
        MalformedLegacyInput: If the record cannot be validated
    """
    if isinstance(payload, LegacyState):
        return payload
    if not isinstance(payload, dict):
        raise MalformedLegacyInput(f"Expected a JSON object, got {type(payload).__name__}")

    version = payload.get("schemaVersion", payload.get("schema_version"))
    if version is None:
        version = 1 if "tubes" in payload else CURRENT_SCHEMA_VERSION

    if version == 1:
        logger.info("Upgrading schema version 1 record to version 2")
        payload = _upgrade_v1(payload)
    elif version != CURRENT_SCHEMA_VERSION:
        raise MalformedLegacyInput(f"Unsupported schema version: {version!r}")

    try:
        return LegacyState.model_validate(payload)
    except ValidationError as exc:
        raise MalformedLegacyInput(
            f"Invalid legacy state: {exc.error_count()} error(s)",
            errors=exc.errors(include_url=False),
        ) from exc


# =============================================================================
# Conversion
# =============================================================================


def to_legacy(state: SchedulerState) -> LegacyState:
    """
    Convert position-indexed state to the legacy flat-list shape.

    Units are emitted in ascending position; the current unit is index 0.

    Raises:
        InvariantViolation: If a track has no single current unit
    """
    tracks = {}
    for number in sorted(state.tracks):
        track = state.tracks[number]
        table = PositionTable(track)
        current = table.get_current()
        tracks[number] = LegacyTrackRecord(
            thread_id=track.thread_id,
            current_unit_id=current.id,
            units=[
                LegacyUnitRecord(
                    unit_id=unit.id,
                    thread_id=unit.thread_id,
                    skip_number=unit.skip_number,
                    distractor_level=unit.distractor_level,
                    position=unit.position,
                    completed=unit.completed,
                )
                for unit in table.ordered()
            ],
        )

    return LegacyState(
        user_id=state.user_id,
        active_track_number=state.active_track_number,
        cycle_count=state.cycle_count,
        tracks=tracks,
        completed_units=[
            LegacyCompletionRecord(
                unit_id=record.unit_id,
                thread_id=record.thread_id,
                track_number=record.track_number,
                correct_count=record.correct_count,
                total_count=record.total_count,
                timestamp=record.timestamp,
            )
            for record in state.completed_units
        ],
        total_points=state.total_points,
        last_updated=state.last_updated,
    )


def from_legacy_with_report(
    legacy: dict[str, Any] | LegacyState,
    progression: SkipProgression | None = None,
    default_skip_number: int = LEGACY_DEFAULT_SKIP_NUMBER,
) -> tuple[SchedulerState, RepairReport]:
    """
    Convert a legacy record to position-indexed state, repairing as needed.

    Args:
        legacy: Persisted record (any supported version) or LegacyState
        progression: Skip progression skip numbers must belong to
        default_skip_number: Skip number for records that carry none

    Returns:
        Tuple of (SchedulerState, RepairReport)

    Raises:
        MalformedLegacyInput: If the record cannot be accepted
    """
    progression = progression or SkipProgression(DEFAULT_SKIP_PROGRESSION)
    record = load_legacy(legacy)
    report = RepairReport()

    if record.active_track_number not in TRACK_NUMBERS:
        raise MalformedLegacyInput(
            f"activeTrackNumber must be 1, 2 or 3, got {record.active_track_number}"
        )
    extra = sorted(set(record.tracks) - set(TRACK_NUMBERS))
    if extra:
        raise MalformedLegacyInput(f"Unknown track number(s): {extra}")
    missing = [n for n in TRACK_NUMBERS if n not in record.tracks]
    if missing:
        raise MalformedLegacyInput(f"Missing track(s): {missing}")

    tracks = {
        number: _track_from_legacy(
            number, record.tracks[number], progression, default_skip_number, report
        )
        for number in TRACK_NUMBERS
    }

    state = SchedulerState(
        tracks=tracks,
        user_id=record.user_id,
        active_track_number=record.active_track_number,
        cycle_count=record.cycle_count,
        completed_units=[
            CompletionRecord(
                unit_id=c.unit_id,
                thread_id=c.thread_id,
                track_number=c.track_number or _guess_track(tracks, c.unit_id),
                correct_count=c.correct_count,
                total_count=c.total_count,
                timestamp=c.timestamp,
            )
            for c in record.completed_units
        ],
        total_points=record.total_points,
        last_updated=record.last_updated,
    )

    if report.repaired:
        logger.warning(
            f"Accepted legacy state for {state.user_id} with {len(report.repairs)} repair(s)"
        )
    return state, report


def from_legacy(
    legacy: dict[str, Any] | LegacyState,
    progression: SkipProgression | None = None,
    default_skip_number: int = LEGACY_DEFAULT_SKIP_NUMBER,
) -> SchedulerState:
    """Convert a legacy record to position-indexed state (repairs are logged)."""
    state, _ = from_legacy_with_report(legacy, progression, default_skip_number)
    return state


def dump_legacy(state: SchedulerState) -> dict[str, Any]:
    """Serialize state to a JSON-ready legacy record."""
    return to_legacy(state).model_dump(mode="json", by_alias=True)


def _track_from_legacy(
    number: int,
    record: LegacyTrackRecord,
    progression: SkipProgression,
    default_skip_number: int,
    report: RepairReport,
) -> Track:
    """Build one track, assigning dense positions in array order."""
    units = list(record.units)
    if not units:
        raise MalformedLegacyInput(f"Track {number} has no units")

    ids = [u.unit_id for u in units]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise MalformedLegacyInput(f"Track {number} repeats unit id(s): {duplicates}")

    for unit in units:
        skip = unit.skip_number if unit.skip_number is not None else default_skip_number
        if skip not in progression:
            raise MalformedLegacyInput(
                f"Unit {unit.unit_id} in track {number} has skip number {skip} "
                f"outside {list(progression.values)}"
            )

    # Detect position problems before reordering
    unpositioned = [u.unit_id for u in units if u.position is None]
    if unpositioned:
        report.add(number, "missing_position", f"no position for {unpositioned}")

    positions = [u.position for u in units if u.position is not None]
    shared = sorted({p for p in positions if positions.count(p) > 1})
    if shared:
        report.add(number, "duplicate_position", f"positions {shared} held by several units")
    elif any(b < a for a, b in zip(positions, positions[1:])):
        report.add(number, "out_of_order", "positions disagree with array order")
    elif positions != list(range(len(positions))) and not unpositioned:
        logger.debug(f"Compacting sparse positions in legacy track {number}")

    if record.current_unit_id is not None:
        if record.current_unit_id not in ids:
            raise MalformedLegacyInput(
                f"currentUnitId {record.current_unit_id} is not in track {number}"
            )
        index = ids.index(record.current_unit_id)
        if index != 0:
            report.add(
                number,
                "current_moved",
                f"{record.current_unit_id} moved from index {index} to the front",
            )
            units.insert(0, units.pop(index))

    return Track(
        number=number,
        thread_id=record.thread_id,
        units=[
            Unit(
                id=unit.unit_id,
                thread_id=unit.thread_id,
                position=index,
                skip_number=(
                    unit.skip_number if unit.skip_number is not None else default_skip_number
                ),
                distractor_level=unit.distractor_level or DistractorLevel.L1,
                completed=unit.completed,
            )
            for index, unit in enumerate(units)
        ],
    )


def _guess_track(tracks: dict[int, Track], unit_id: str) -> int:
    for number, track in tracks.items():
        if track.get(unit_id) is not None:
            return number
    logger.debug(
        f"Completion record {unit_id} matches no track, filed under track {TRACK_NUMBERS[0]}"
    )
    return TRACK_NUMBERS[0]
