"""
Repositioning Engine.

Computes a track's new positions after the learner answers its current unit.

Perfect answer:
- The unit's skip number advances one step along the progression and its
  distractor level escalates one tier, in lockstep.
- Units at positions 1..skip move up one slot and the answered unit drops
  into the freed slot `skip`, using the skip number it was answered with.
- The unit previously at position 1 becomes current.

Imperfect answer:
- Skip number returns to the progression minimum, distractor level to L1.
- The unit stays current at position 0; no other unit moves.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from loguru import logger

from helix.core.errors import InvariantViolation, NotCurrentUnit, PositionConflict
from helix.core.models import DistractorLevel, SkipProgression, Track, validate_track_number
from helix.engine.position_table import PositionTable


@dataclass
class RepositionResult:
    """Outcome of repositioning one track."""

    track_number: int
    unit_id: str
    is_perfect_score: bool
    previous_skip_number: int
    skip_number: int
    previous_distractor_level: DistractorLevel
    distractor_level: DistractorLevel
    current_unit_id: str
    positions: dict[str, int] = field(default_factory=dict)

    @property
    def advanced(self) -> bool:
        """Whether a different unit is now current."""
        return self.current_unit_id != self.unit_id


class RepositioningEngine:
    """
    Applies completion outcomes to a single track.

    Every change is planned and checked before any unit is touched, so a
    failed call leaves the track exactly as it was.
    """

    def __init__(self, progression: SkipProgression | None = None):
        """
        Initialize the engine.

        Args:
            progression: Skip progression (uses the default 1..100 sequence if None)
        """
        self.progression = progression or SkipProgression()

    def reposition(self, track: Track, unit_id: str, is_perfect_score: bool) -> RepositionResult:
        """
        Reposition `track` after its current unit was answered.

        Args:
            track: Track holding the answered unit (mutated in place)
            unit_id: Id of the answered unit; must be at position 0
            is_perfect_score: Whether every question was answered correctly

        Returns:
            RepositionResult describing the change

        Raises:
            InvalidTrack: If the track number is outside 1-3
            NotCurrentUnit: If `unit_id` is not at position 0
            PositionConflict: If the track holds colliding positions
            InvariantViolation: If the track has no single current unit
        """
        validate_track_number(track.number)
        table = PositionTable(track)
        current = table.get_current()
        if current.id != unit_id:
            raise NotCurrentUnit(track.number, unit_id, current.id)

        previous_skip = current.skip_number
        previous_level = current.distractor_level
        if previous_skip not in self.progression:
            logger.error(f"Track {track.number}: {unit_id} holds foreign skip {previous_skip}")
            raise InvariantViolation(
                f"Unit {unit_id} has skip number {previous_skip} outside the progression"
            )

        if is_perfect_score:
            new_skip = self.progression.advance(previous_skip)
            new_level = previous_level.escalate()
            plan = self._plan_perfect(table, unit_id, target=previous_skip)
        else:
            new_skip = self.progression.minimum
            new_level = DistractorLevel.L1
            plan = {}

        # Commit: nothing below can fail
        for moved_id, new_position in plan.items():
            track.get(moved_id).position = new_position
        current.skip_number = new_skip
        current.distractor_level = new_level
        if is_perfect_score:
            current.completed = True

        table = PositionTable(track)
        next_current = table.get_current()

        if is_perfect_score:
            logger.debug(
                f"Track {track.number}: {unit_id} perfect, skip {previous_skip}->{new_skip}, "
                f"level {previous_level.value}->{new_level.value}, "
                f"placed at {current.position}; {next_current.id} is current"
            )
        else:
            logger.debug(
                f"Track {track.number}: {unit_id} imperfect, skip reset to {new_skip}, "
                f"level reset to {new_level.value}; stays current"
            )

        return RepositionResult(
            track_number=track.number,
            unit_id=unit_id,
            is_perfect_score=is_perfect_score,
            previous_skip_number=previous_skip,
            skip_number=new_skip,
            previous_distractor_level=previous_level,
            distractor_level=new_level,
            current_unit_id=next_current.id,
            positions=table.positions(),
        )

    def _plan_perfect(self, table: PositionTable, unit_id: str, target: int) -> dict[str, int]:
        """
        Plan the new position of every unit after a perfect answer.

        Returns:
            Mapping of unit id to new position for units that move

        Raises:
            PositionConflict: If the plan would put two units in one slot
        """
        others = [u for u in table.ordered() if u.id != unit_id]
        if not others:
            # A lone unit has nowhere to go and stays current
            return {}

        positions = {u.id: u.position for u in others}

        # Sparse table: pull the nearest follower into slot 1 so a successor exists
        if table.occupant(1) is None:
            follower = others[0]
            logger.debug(
                f"Track {table.track.number}: position 1 vacant, "
                f"closing gap from {follower.position} for {follower.id}"
            )
            positions[follower.id] = 1

        planned = {}
        for other_id, position in positions.items():
            planned[other_id] = position - 1 if 1 <= position <= target else position
        planned[unit_id] = target

        counts = Counter(planned.values())
        for position, count in counts.items():
            if count > 1:
                claimants = tuple(uid for uid, p in planned.items() if p == position)
                raise PositionConflict(table.track.number, position, claimants)
        if counts.get(0) != 1:
            raise InvariantViolation(
                f"Repositioning track {table.track.number} would leave no current unit"
            )

        current_positions = {u.id: u.position for u in table.track.units}
        return {uid: p for uid, p in planned.items() if current_positions[uid] != p}
