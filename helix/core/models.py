"""
Core Data Model.

Plain data holders shared by every engine component.

Design:
- DistractorLevel: Ordered difficulty tiers for wrong-answer options
- SkipProgression: Fixed ascending sequence of skip numbers
- Unit: One learning item and its scheduling state
- Track: One of the three parallel content sequences
- SchedulerState: Everything the scheduler knows about one learner
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from helix.core.errors import InvalidTrack, InvariantViolation

TRACK_NUMBERS: tuple[int, ...] = (1, 2, 3)
DEFAULT_SKIP_PROGRESSION: tuple[int, ...] = (1, 3, 5, 10, 25, 100)


def validate_track_number(track_number: object) -> int:
    """
    Check that a value names one of the three tracks.

    Args:
        track_number: Candidate track number

    Returns:
        The track number as an int

    Raises:
        InvalidTrack: If the value is not 1, 2 or 3
    """
    if isinstance(track_number, bool) or not isinstance(track_number, int):
        raise InvalidTrack(track_number)
    if track_number not in TRACK_NUMBERS:
        raise InvalidTrack(track_number)
    return track_number


class DistractorLevel(str, Enum):
    """
    Difficulty tier of the incorrect options shown with a unit.

    Escalates one step per perfect answer and drops back to L1 on failure.
    """

    L1 = "L1"
    L2 = "L2"
    L3 = "L3"

    @classmethod
    def minimum(cls) -> DistractorLevel:
        return cls.L1

    @property
    def rank(self) -> int:
        """Zero-based index in the escalation order."""
        return list(DistractorLevel).index(self)

    def escalate(self) -> DistractorLevel:
        """Next level up, capped at L3."""
        levels = list(DistractorLevel)
        return levels[min(self.rank + 1, len(levels) - 1)]


@dataclass(frozen=True)
class SkipProgression:
    """
    Ascending sequence of skip numbers a unit moves through.

    A perfect answer moves a unit one step along the sequence; the last
    value is a ceiling.
    """

    values: tuple[int, ...] = DEFAULT_SKIP_PROGRESSION

    def __post_init__(self):
        values = tuple(self.values)
        if not values:
            raise ValueError("Skip progression must not be empty")
        if any(v < 1 for v in values):
            raise ValueError(f"Skip numbers must be positive: {values}")
        if any(b <= a for a, b in zip(values, values[1:])):
            raise ValueError(f"Skip progression must be strictly ascending: {values}")
        object.__setattr__(self, "values", values)

    def __contains__(self, value: object) -> bool:
        return value in self.values

    @property
    def minimum(self) -> int:
        return self.values[0]

    @property
    def maximum(self) -> int:
        return self.values[-1]

    def advance(self, value: int) -> int:
        """
        Return the skip number following `value`.

        Raises:
            InvariantViolation: If `value` is not part of the progression
        """
        if value not in self.values:
            raise InvariantViolation(
                f"Skip number {value} is not in progression {list(self.values)}"
            )
        index = self.values.index(value)
        return self.values[min(index + 1, len(self.values) - 1)]


@dataclass
class Unit:
    """A single learning unit and its position within its track."""

    id: str
    thread_id: str | None
    position: int
    skip_number: int = DEFAULT_SKIP_PROGRESSION[0]
    distractor_level: DistractorLevel = DistractorLevel.L1
    completed: bool = False


@dataclass
class Track:
    """One of the three parallel content sequences."""

    number: int
    thread_id: str | None
    units: list[Unit] = field(default_factory=list)

    def get(self, unit_id: str) -> Unit | None:
        """Find a unit by id, or None."""
        for unit in self.units:
            if unit.id == unit_id:
                return unit
        return None

    def unit_ids(self) -> list[str]:
        return [unit.id for unit in self.units]


@dataclass
class CompletionRecord:
    """A single accepted completion event."""

    unit_id: str
    thread_id: str | None
    track_number: int
    correct_count: int
    total_count: int
    timestamp: datetime

    @property
    def is_perfect(self) -> bool:
        return self.correct_count == self.total_count


@dataclass
class SchedulerState:
    """
    Per-learner scheduler state.

    Mutated in place by completion events and rotations; persisted through
    the format bridge.
    """

    tracks: dict[int, Track]
    user_id: str = "anonymous"
    active_track_number: int = 1
    cycle_count: int = 0
    completed_units: list[CompletionRecord] = field(default_factory=list)
    total_points: int = 0
    last_updated: datetime | None = field(default_factory=lambda: datetime.now(UTC))

    def track(self, track_number: int) -> Track:
        """
        Get a track by number.

        Raises:
            InvalidTrack: If the number is not 1-3 or the track is missing
        """
        validate_track_number(track_number)
        track = self.tracks.get(track_number)
        if track is None:
            raise InvalidTrack(track_number, f"Track {track_number} is not present in state")
        return track

    @property
    def active_track(self) -> Track:
        return self.track(self.active_track_number)

    def touch(self) -> None:
        """Stamp the state as modified now."""
        self.last_updated = datetime.now(UTC)

    def copy(self) -> SchedulerState:
        """Deep copy, used as the working copy of a turn."""
        return copy.deepcopy(self)
