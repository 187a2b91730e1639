"""
Position Table.

Position-first index over one track. Positions are the keys; each position
holds at most one unit and position 0 is the unit currently presented.
"""

from __future__ import annotations

from loguru import logger

from helix.core.errors import InvariantViolation, PositionConflict
from helix.core.models import DistractorLevel, SkipProgression, Track, Unit


class PositionTable:
    """
    Index of a track's units by position.

    Building the table rejects tracks where two units share a position, so a
    table that exists is always collision-free.
    """

    def __init__(self, track: Track):
        """
        Index a track.

        Args:
            track: The track to index; its units are shared, not copied

        Raises:
            PositionConflict: If two units share a position
            InvariantViolation: If a position is negative
        """
        self.track = track
        self._by_position: dict[int, Unit] = {}
        for unit in track.units:
            if unit.position < 0:
                raise InvariantViolation(
                    f"Unit {unit.id} in track {track.number} has negative position {unit.position}"
                )
            existing = self._by_position.get(unit.position)
            if existing is not None:
                raise PositionConflict(track.number, unit.position, (existing.id, unit.id))
            self._by_position[unit.position] = unit

    def __len__(self) -> int:
        return len(self._by_position)

    def __contains__(self, position: int) -> bool:
        return position in self._by_position

    def occupant(self, position: int) -> Unit | None:
        """Unit at `position`, or None if the slot is vacant."""
        return self._by_position.get(position)

    def find(self, unit_id: str) -> Unit | None:
        return self.track.get(unit_id)

    def ordered(self) -> list[Unit]:
        """Units sorted by ascending position."""
        return [self._by_position[p] for p in sorted(self._by_position)]

    def positions(self) -> dict[str, int]:
        """Mapping of unit id to position, in position order."""
        return {unit.id: unit.position for unit in self.ordered()}

    def is_dense(self) -> bool:
        """True when positions are exactly 0..n-1."""
        return sorted(self._by_position) == list(range(len(self._by_position)))

    def get_current(self) -> Unit:
        """
        Get the unit at position 0.

        Raises:
            InvariantViolation: If no unit or more than one unit is at position 0
        """
        at_zero = [u for u in self.track.units if u.position == 0]
        if len(at_zero) != 1:
            logger.error(
                f"Track {self.track.number} has {len(at_zero)} units at position 0"
            )
            raise InvariantViolation(
                f"Track {self.track.number} must have exactly one unit at position 0, "
                f"found {len(at_zero)}"
            )
        return at_zero[0]

    def set_position(self, unit_id: str, new_position: int) -> None:
        """
        Move one unit to a new position.

        Internal primitive: callers resolve conflicts before calling.

        Raises:
            PositionConflict: If another unit already holds `new_position`
            InvariantViolation: If the unit is not in the track or the position is negative
        """
        unit = self.find(unit_id)
        if unit is None:
            raise InvariantViolation(f"Unit {unit_id} is not in track {self.track.number}")
        if new_position < 0:
            raise InvariantViolation(f"Position {new_position} is negative")

        occupant = self._by_position.get(new_position)
        if occupant is not None and occupant.id != unit_id:
            raise PositionConflict(self.track.number, new_position, (occupant.id, unit_id))

        if self._by_position.get(unit.position) is unit:
            del self._by_position[unit.position]
        unit.position = new_position
        self._by_position[new_position] = unit

    def validate(self, progression: SkipProgression | None = None) -> list[str]:
        """
        Check every table invariant.

        Returns:
            List of human-readable problems (empty when valid)
        """
        progression = progression or SkipProgression()
        errors: list[str] = []

        at_zero = [u.id for u in self.track.units if u.position == 0]
        if len(at_zero) != 1:
            errors.append(f"Expected 1 unit at position 0, found {len(at_zero)}")

        seen: dict[int, str] = {}
        for unit in self.track.units:
            if unit.position in seen:
                errors.append(
                    f"Position {unit.position} shared by {seen[unit.position]} and {unit.id}"
                )
            seen.setdefault(unit.position, unit.id)
            if unit.skip_number not in progression:
                errors.append(f"Unit {unit.id} has skip number {unit.skip_number}")
            if not isinstance(unit.distractor_level, DistractorLevel):
                errors.append(f"Unit {unit.id} has distractor level {unit.distractor_level!r}")

        return errors


def get_current(track: Track) -> Unit:
    """Get the unit at position 0 of `track`."""
    return PositionTable(track).get_current()


def set_position(track: Track, unit_id: str, new_position: int) -> None:
    """Move `unit_id` to `new_position` within `track`."""
    PositionTable(track).set_position(unit_id, new_position)
