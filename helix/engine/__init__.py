"""
The Triple Helix engine.

A pure, synchronous state machine: no I/O, no hidden randomness.

Components:
- UnitRegistry: Content assignment per track and thread
- PositionTable: Position-first index with invariant checks
- RepositioningEngine: Moves units after a completion
- TrackRotator: Round-robin track selection
- format_bridge: Legacy flat-list conversion and repair
- TripleHelixScheduler: Public entry point for a learner's turns
"""

from .format_bridge import (
    LegacyState,
    RepairReport,
    dump_legacy,
    from_legacy,
    from_legacy_with_report,
    load_legacy,
    to_legacy,
)
from .position_table import PositionTable, get_current, set_position
from .registry import UnitRegistry
from .repositioning import RepositioningEngine, RepositionResult
from .rotator import TrackRotator, advance, next_track_number
from .scheduler import CompletionEvent, TrackIntegrity, TripleHelixScheduler, TurnDecision

__all__ = [
    # Content
    "UnitRegistry",
    # Positions
    "PositionTable",
    "get_current",
    "set_position",
    # Scheduling
    "RepositioningEngine",
    "RepositionResult",
    "TrackRotator",
    "advance",
    "next_track_number",
    "TripleHelixScheduler",
    "CompletionEvent",
    "TurnDecision",
    "TrackIntegrity",
    # Persistence boundary
    "LegacyState",
    "RepairReport",
    "load_legacy",
    "dump_legacy",
    "to_legacy",
    "from_legacy",
    "from_legacy_with_report",
]
