"""
Unit Registry.

Immutable record of the learning units assigned to each track, as supplied
by the content collaborator. The registry resolves thread ids to tracks and
produces the canonical default state used on first use and on reset.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from loguru import logger

from helix.core.errors import InvalidTrack, InvariantViolation
from helix.core.models import (
    TRACK_NUMBERS,
    DistractorLevel,
    SchedulerState,
    SkipProgression,
    Track,
    Unit,
    validate_track_number,
)

# Thread ids follow "thread-T{track}-{sequence}" by convention
THREAD_TRACK_PATTERN = re.compile(r"thread-T(\d+)-")
LOOSE_TRACK_PATTERN = re.compile(r"T([1-3])-")


@dataclass(frozen=True)
class ThreadAssignment:
    """The thread currently assigned to a track and its ordered unit ids."""

    track_number: int
    thread_id: str
    unit_ids: tuple[str, ...]


class UnitRegistry:
    """
    Read-only view of which units belong to which track and thread.

    Built once from content data; never mutated by the scheduler.
    """

    def __init__(self, assignments: Mapping[int, tuple[str, Iterable[str]]]):
        """
        Initialize the registry.

        Args:
            assignments: Mapping of track number to (thread_id, unit_ids)

        Raises:
            InvalidTrack: If a track number is not 1-3 or a track is missing
            InvariantViolation: If a track has no units or repeats a unit id
        """
        tracks: dict[int, ThreadAssignment] = {}
        for track_number, (thread_id, unit_ids) in assignments.items():
            validate_track_number(track_number)
            ids = tuple(unit_ids)
            if not ids:
                raise InvariantViolation(f"Track {track_number} has no units")
            if len(set(ids)) != len(ids):
                raise InvariantViolation(f"Track {track_number} repeats unit ids")
            tracks[track_number] = ThreadAssignment(track_number, thread_id, ids)

        missing = [n for n in TRACK_NUMBERS if n not in tracks]
        if missing:
            raise InvalidTrack(missing[0], f"No content assigned to track(s) {missing}")

        self._tracks = MappingProxyType(tracks)
        logger.debug(
            "UnitRegistry built: "
            + ", ".join(f"T{n}={len(a.unit_ids)} units" for n, a in sorted(tracks.items()))
        )

    @classmethod
    def from_state(cls, state: SchedulerState) -> UnitRegistry:
        """Rebuild a registry from an existing state, in position order."""
        return cls(
            {
                number: (
                    track.thread_id or "",
                    [u.id for u in sorted(track.units, key=lambda u: u.position)],
                )
                for number, track in state.tracks.items()
            }
        )

    @property
    def assignments(self) -> Mapping[int, ThreadAssignment]:
        return self._tracks

    def thread_for_track(self, track_number: int) -> str:
        validate_track_number(track_number)
        return self._tracks[track_number].thread_id

    def units_for_track(self, track_number: int) -> tuple[str, ...]:
        validate_track_number(track_number)
        return self._tracks[track_number].unit_ids

    def contains(self, track_number: int, unit_id: str) -> bool:
        return unit_id in self.units_for_track(track_number)

    def track_for_thread(self, thread_id: str) -> int:
        """
        Resolve a thread id to the track it is assigned to.

        Registered threads win; otherwise the "thread-T{n}-" naming
        convention is used, then a bare "T{n}-" anywhere in the id.

        Raises:
            InvalidTrack: If no track can be resolved
        """
        return resolve_track_for_thread(
            thread_id, {n: a.thread_id for n, a in self._tracks.items()}
        )

    def default_state(
        self,
        user_id: str = "anonymous",
        progression: SkipProgression | None = None,
    ) -> SchedulerState:
        """
        Build the canonical starting state.

        Every unit starts at the minimum skip number and distractor level L1,
        in registered order, so the first unit of each track is current.
        """
        progression = progression or SkipProgression()
        tracks = {}
        for number in TRACK_NUMBERS:
            assignment = self._tracks[number]
            tracks[number] = Track(
                number=number,
                thread_id=assignment.thread_id,
                units=[
                    Unit(
                        id=unit_id,
                        thread_id=assignment.thread_id,
                        position=index,
                        skip_number=progression.minimum,
                        distractor_level=DistractorLevel.L1,
                    )
                    for index, unit_id in enumerate(assignment.unit_ids)
                ],
            )
        return SchedulerState(tracks=tracks, user_id=user_id)


def resolve_track_for_thread(thread_id: str, known: Mapping[int, str | None]) -> int:
    """
    Resolve a thread id against a mapping of track number to thread id.

    Raises:
        InvalidTrack: If no track can be resolved
    """
    for number, candidate in sorted(known.items()):
        if candidate and candidate == thread_id:
            return number

    match = THREAD_TRACK_PATTERN.search(thread_id)
    if match and int(match.group(1)) in TRACK_NUMBERS:
        return int(match.group(1))

    match = LOOSE_TRACK_PATTERN.search(thread_id)
    if match:
        logger.debug(f"Resolved thread {thread_id} to track {match.group(1)} by naming")
        return int(match.group(1))

    raise InvalidTrack(thread_id, f"Thread {thread_id!r} is not assigned to any track")
