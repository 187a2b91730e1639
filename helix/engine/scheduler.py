"""
Triple Helix Scheduler.

Public entry point for one learner's progression. A completion turn:
1. Validate the event and resolve the track it belongs to
2. Reposition that track (RepositioningEngine)
3. Record the completion and its points
4. Rotate to the next track (TrackRotator)
5. Return the unit to present next

Turns are all-or-nothing: each runs on a working copy of the state that
replaces the held state only when every step succeeded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from helix.core.errors import (
    InvalidCompletionEvent,
    InvalidTrack,
    InvariantViolation,
    PositionConflict,
)
from helix.core.models import (
    TRACK_NUMBERS,
    CompletionRecord,
    SchedulerState,
    SkipProgression,
    Unit,
    validate_track_number,
)
from helix.engine import format_bridge
from helix.engine.position_table import PositionTable
from helix.engine.registry import UnitRegistry, resolve_track_for_thread
from helix.engine.repositioning import RepositioningEngine, RepositionResult
from helix.engine.rotator import TrackRotator


@dataclass
class CompletionEvent:
    """A learner finished answering a unit."""

    track_or_thread_id: int | str
    unit_id: str
    correct_count: int
    total_count: int
    timestamp: datetime | None = None

    @property
    def is_perfect_score(self) -> bool:
        return self.correct_count == self.total_count

    def validate(self) -> None:
        """
        Check the scores are possible.

        Raises:
            InvalidCompletionEvent: If the counts are inconsistent
        """
        if self.total_count <= 0:
            raise InvalidCompletionEvent(f"total_count must be positive, got {self.total_count}")
        if not 0 <= self.correct_count <= self.total_count:
            raise InvalidCompletionEvent(
                f"correct_count must be between 0 and {self.total_count}, "
                f"got {self.correct_count}"
            )


@dataclass
class TurnDecision:
    """What the learner sees next, and how the answered track changed."""

    next_unit_id: str
    next_track_number: int
    updated_positions_for_track: dict[str, int]
    track_number: int
    is_perfect_score: bool
    cycle_count: int
    reposition: RepositionResult | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Boundary representation (camelCase keys)."""
        return {
            "nextUnitId": self.next_unit_id,
            "nextTrackNumber": self.next_track_number,
            "updatedPositionsForTrack": dict(self.updated_positions_for_track),
            "trackNumber": self.track_number,
            "isPerfectScore": self.is_perfect_score,
            "cycleCount": self.cycle_count,
        }


@dataclass
class TrackIntegrity:
    """Integrity status of one track."""

    track_number: int
    valid: bool
    current_count: int
    unit_count: int
    errors: list[str] = field(default_factory=list)


class TripleHelixScheduler:
    """
    Orchestrates completion turns for one learner.

    Holds the learner's SchedulerState; callers serialize turns per learner.
    """

    def __init__(
        self,
        state: SchedulerState,
        registry: UnitRegistry | None = None,
        progression: SkipProgression | None = None,
        preload_count: int = 5,
    ):
        """
        Initialize the scheduler.

        Args:
            state: The learner's current state
            registry: Content registry (used for thread lookup and reset)
            progression: Skip progression (uses the default sequence if None)
            preload_count: Default number of units per track in previews
        """
        validate_track_number(state.active_track_number)
        self.state = state
        self.registry = registry
        self.progression = progression or SkipProgression()
        self.preload_count = preload_count
        self.engine = RepositioningEngine(self.progression)
        self.rotator = TrackRotator()

    @classmethod
    def from_settings(
        cls,
        state: SchedulerState,
        registry: UnitRegistry | None = None,
        settings=None,
    ) -> TripleHelixScheduler:
        """Build a scheduler configured from application settings."""
        if settings is None:
            from config import get_settings

            settings = get_settings()
        return cls(
            state,
            registry=registry,
            progression=settings.get_skip_progression(),
            preload_count=settings.preload_count,
        )

    @classmethod
    def from_legacy(
        cls,
        payload: dict[str, Any] | format_bridge.LegacyState,
        registry: UnitRegistry | None = None,
        progression: SkipProgression | None = None,
        default_skip_number: int = format_bridge.LEGACY_DEFAULT_SKIP_NUMBER,
    ) -> TripleHelixScheduler:
        """Restore a scheduler from a persisted legacy record."""
        state = format_bridge.from_legacy(payload, progression, default_skip_number)
        return cls(state, registry=registry, progression=progression)

    def to_legacy(self) -> dict[str, Any]:
        """Persisted legacy record for the held state."""
        return format_bridge.dump_legacy(self.state)

    # =========================================================================
    # Queries
    # =========================================================================

    def current_track_number(self) -> int:
        return self.state.active_track_number

    def current_unit(self) -> Unit:
        """The unit to present now: position 0 of the active track."""
        return PositionTable(self.state.active_track).get_current()

    def resolve_track(self, track_or_thread_id: int | str) -> int:
        """
        Resolve a track number or thread id to a track number.

        Raises:
            InvalidTrack: If nothing matches
        """
        if isinstance(track_or_thread_id, int) and not isinstance(track_or_thread_id, bool):
            return validate_track_number(track_or_thread_id)
        if isinstance(track_or_thread_id, str) and track_or_thread_id.isdigit():
            return validate_track_number(int(track_or_thread_id))
        if not isinstance(track_or_thread_id, str) or not track_or_thread_id:
            raise InvalidTrack(track_or_thread_id)

        known = {n: t.thread_id for n, t in self.state.tracks.items()}
        if self.registry is not None:
            for number, assignment in self.registry.assignments.items():
                if not known.get(number):
                    known[number] = assignment.thread_id
        return resolve_track_for_thread(track_or_thread_id, known)

    def upcoming(self, count: int | None = None) -> dict[int, list[Unit]]:
        """
        Next units per track in presentation order.

        Args:
            count: Units per track (defaults to preload_count)
        """
        count = self.preload_count if count is None else count
        return {
            number: PositionTable(self.state.track(number)).ordered()[:count]
            for number in TRACK_NUMBERS
        }

    def verify_integrity(self) -> dict[int, TrackIntegrity]:
        """Check every track's invariants without raising."""
        report = {}
        for number in TRACK_NUMBERS:
            track = self.state.tracks.get(number)
            if track is None:
                report[number] = TrackIntegrity(number, False, 0, 0, ["Track missing"])
                continue
            current_count = sum(1 for u in track.units if u.position == 0)
            try:
                errors = PositionTable(track).validate(self.progression)
            except (PositionConflict, InvariantViolation) as exc:
                errors = [str(exc)]
            report[number] = TrackIntegrity(
                track_number=number,
                valid=not errors,
                current_count=current_count,
                unit_count=len(track.units),
                errors=errors,
            )
        return report

    # =========================================================================
    # Turns
    # =========================================================================

    def complete(self, event: CompletionEvent) -> TurnDecision:
        """
        Apply a completion event and choose the next unit.

        Args:
            event: The completion to apply

        Returns:
            TurnDecision for the next presentation

        Raises:
            InvalidCompletionEvent: If the scores are impossible
            InvalidTrack: If the event's track or thread cannot be resolved
            NotCurrentUnit: If the unit is not current in its track
            PositionConflict: If the track holds colliding positions
            InvariantViolation: If the state is corrupt
        """
        event.validate()
        track_number = self.resolve_track(event.track_or_thread_id)

        working = self.state.copy()
        track = working.track(track_number)
        result = self.engine.reposition(track, event.unit_id, event.is_perfect_score)

        working.completed_units.append(
            CompletionRecord(
                unit_id=event.unit_id,
                thread_id=track.thread_id,
                track_number=track_number,
                correct_count=event.correct_count,
                total_count=event.total_count,
                timestamp=event.timestamp or datetime.now(UTC),
            )
        )
        working.total_points += event.correct_count

        next_track, next_unit = self.rotator.advance(working)
        working.touch()
        self.state = working

        logger.info(
            f"Turn for {working.user_id}: {event.unit_id} "
            f"{event.correct_count}/{event.total_count} on track {track_number} -> "
            f"{next_unit.id} on track {next_track}"
        )

        return TurnDecision(
            next_unit_id=next_unit.id,
            next_track_number=next_track,
            updated_positions_for_track=result.positions,
            track_number=track_number,
            is_perfect_score=event.is_perfect_score,
            cycle_count=working.cycle_count,
            reposition=result,
        )

    def rotate(self) -> tuple[int, Unit]:
        """Advance to the next track without a completion."""
        working = self.state.copy()
        result = self.rotator.advance(working)
        working.touch()
        self.state = working
        return result

    def select_track(self, track_number: int) -> Unit:
        """Pin the active track (diagnostic entry point, bypasses rotation)."""
        working = self.state.copy()
        unit = self.rotator.select_track(working, track_number)
        working.touch()
        self.state = working
        return unit

    def reset(self, registry: UnitRegistry | None = None) -> SchedulerState:
        """
        Replace the state with the canonical default table.

        Args:
            registry: Content to reset to (defaults to the scheduler's registry,
                then to the current state's units)
        """
        registry = registry or self.registry or UnitRegistry.from_state(self.state)
        self.registry = registry
        self.state = registry.default_state(self.state.user_id, self.progression)
        logger.info(f"Progress reset for {self.state.user_id}")
        return self.state
