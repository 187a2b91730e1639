"""
Core Module - Shared data model and errors.

Components:
- models: Unit, Track, SchedulerState, DistractorLevel, SkipProgression
- errors: SchedulerError and its subclasses

Design Principle:
Engine modules import from helix.core rather than redefining shared concepts.
"""

from helix.core.errors import (
    InvalidCompletionEvent,
    InvalidTrack,
    InvariantViolation,
    MalformedLegacyInput,
    NotCurrentUnit,
    PositionConflict,
    SchedulerError,
)
from helix.core.models import (
    DEFAULT_SKIP_PROGRESSION,
    TRACK_NUMBERS,
    CompletionRecord,
    DistractorLevel,
    SchedulerState,
    SkipProgression,
    Track,
    Unit,
    validate_track_number,
)

__all__ = [
    # Models
    "CompletionRecord",
    "DistractorLevel",
    "SchedulerState",
    "SkipProgression",
    "Track",
    "Unit",
    "DEFAULT_SKIP_PROGRESSION",
    "TRACK_NUMBERS",
    "validate_track_number",
    # Errors
    "SchedulerError",
    "InvalidTrack",
    "NotCurrentUnit",
    "PositionConflict",
    "InvariantViolation",
    "MalformedLegacyInput",
    "InvalidCompletionEvent",
]
