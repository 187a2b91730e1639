"""
Scheduler error hierarchy.

Every failure raised by the engine is local and recoverable by the caller,
except InvariantViolation, which signals that previously accepted state has
been corrupted and the learner's state must be reset.
"""

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for all Triple Helix scheduler failures."""

    pass


class InvalidTrack(SchedulerError, ValueError):
    """Raised when a track number is outside 1-3 or a thread cannot be resolved."""

    def __init__(self, track: object, message: str | None = None):
        self.track = track
        super().__init__(message or f"Invalid track: {track!r} (expected 1, 2 or 3)")


class NotCurrentUnit(SchedulerError):
    """Raised when a completion targets a unit that is not at position 0."""

    def __init__(self, track_number: int, unit_id: str, current_id: str | None = None):
        self.track_number = track_number
        self.unit_id = unit_id
        self.current_id = current_id
        super().__init__(
            f"Unit {unit_id} is not the current unit of track {track_number}"
            f" (current: {current_id})"
        )


class PositionConflict(SchedulerError):
    """Raised when two units would occupy the same position in one track."""

    def __init__(self, track_number: int, position: int, unit_ids: tuple[str, ...]):
        self.track_number = track_number
        self.position = position
        self.unit_ids = unit_ids
        super().__init__(
            f"Position {position} in track {track_number} is claimed by "
            f"{', '.join(unit_ids)}"
        )


class InvariantViolation(SchedulerError):
    """Raised when accepted state no longer satisfies the table invariants."""

    pass


class MalformedLegacyInput(SchedulerError, ValueError):
    """Raised when persisted legacy state cannot be accepted."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        self.errors = errors or []
        super().__init__(message)


class InvalidCompletionEvent(SchedulerError, ValueError):
    """Raised when a completion event carries impossible scores."""

    pass
