"""
Track Rotator.

Round-robin selection of the active track: 1 -> 2 -> 3 -> 1. Every wrap back
to track 1 completes one cycle.
"""

from __future__ import annotations

from loguru import logger

from helix.core.models import TRACK_NUMBERS, SchedulerState, Unit, validate_track_number
from helix.engine.position_table import PositionTable


def next_track_number(track_number: int) -> int:
    """Successor of `track_number` in rotation order."""
    validate_track_number(track_number)
    index = TRACK_NUMBERS.index(track_number)
    return TRACK_NUMBERS[(index + 1) % len(TRACK_NUMBERS)]


class TrackRotator:
    """Advances the active track of a scheduler state."""

    def advance(self, state: SchedulerState) -> tuple[int, Unit]:
        """
        Move to the next track in rotation.

        Args:
            state: Scheduler state (mutated in place)

        Returns:
            Tuple of (new active track number, current unit of that track)

        Raises:
            InvalidTrack: If the state's active track number is invalid
            InvariantViolation: If the new track has no single current unit
        """
        previous = state.active_track_number
        following = next_track_number(previous)
        current = PositionTable(state.track(following)).get_current()

        state.active_track_number = following
        if following == TRACK_NUMBERS[0]:
            state.cycle_count += 1
            logger.debug(f"Rotation wrapped to track {following}, cycle {state.cycle_count}")
        else:
            logger.debug(f"Rotated from track {previous} to track {following}")

        return following, current

    def select_track(self, state: SchedulerState, track_number: int) -> Unit:
        """
        Pin the active track, bypassing rotation.

        Diagnostic entry point only; does not count toward cycles.

        Raises:
            InvalidTrack: If the track number is outside 1-3
            InvariantViolation: If the track has no single current unit
        """
        current = PositionTable(state.track(track_number)).get_current()
        state.active_track_number = track_number
        logger.info(f"Track {track_number} pinned as active")
        return current


def advance(state: SchedulerState) -> tuple[int, Unit]:
    """Advance `state` to its next track."""
    return TrackRotator().advance(state)
