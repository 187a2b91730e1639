"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from pathlib import Path

import pytest
from loguru import logger

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from helix.core.models import SchedulerState, Track, Unit  # noqa: E402
from helix.engine.registry import UnitRegistry  # noqa: E402
from helix.engine.scheduler import TripleHelixScheduler  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


def make_track(number: int, specs: list[tuple[str, int, int]], thread_id: str | None = None) -> Track:
    """Build a track from (unit_id, position, skip_number) triples."""
    thread_id = thread_id or f"thread-T{number}-001"
    return Track(
        number=number,
        thread_id=thread_id,
        units=[
            Unit(id=unit_id, thread_id=thread_id, position=position, skip_number=skip)
            for unit_id, position, skip in specs
        ],
    )


@pytest.fixture
def registry():
    """Six units on each of the three tracks."""
    return UnitRegistry(
        {
            number: (
                f"thread-T{number}-001",
                [f"T{number}-u{index}" for index in range(1, 7)],
            )
            for number in (1, 2, 3)
        }
    )


@pytest.fixture
def state(registry):
    """Canonical default state for the registry."""
    return registry.default_state("learner-1")


@pytest.fixture
def scheduler(state, registry):
    """Scheduler over the default state."""
    return TripleHelixScheduler(state, registry=registry)


@pytest.fixture
def six_unit_track():
    """Track 1 with units a-f at positions 0-5; the current unit has skip 3."""
    return make_track(
        1,
        [("a", 0, 3), ("b", 1, 1), ("c", 2, 1), ("d", 3, 1), ("e", 4, 1), ("f", 5, 1)],
    )


@pytest.fixture
def six_unit_state(six_unit_track):
    """State whose track 1 is the six-unit track."""
    return SchedulerState(
        tracks={
            1: six_unit_track,
            2: make_track(2, [("g", 0, 1), ("h", 1, 1)]),
            3: make_track(3, [("i", 0, 1), ("j", 1, 1)]),
        },
        user_id="learner-1",
    )


@pytest.fixture
def log_messages():
    """Capture loguru output as a list of (level, message) tuples."""
    messages: list[tuple[str, str]] = []
    handler_id = logger.add(
        lambda m: messages.append((m.record["level"].name, m.record["message"])),
        level="DEBUG",
    )
    yield messages
    logger.remove(handler_id)


def legacy_record(tracks: dict, **overrides) -> dict:
    """A version 2 legacy record with the given per-track payloads."""
    record = {
        "schemaVersion": 2,
        "userId": "learner-1",
        "activeTrackNumber": 1,
        "cycleCount": 0,
        "tracks": tracks,
        "completedUnits": [],
        "totalPoints": 0,
        "lastUpdated": "2025-01-01T00:00:00Z",
    }
    record.update(overrides)
    return record


def legacy_units(*unit_ids: str, thread_id: str = "thread-T1-001") -> list[dict]:
    """Well-formed legacy unit records at dense positions."""
    return [
        {
            "unitId": unit_id,
            "threadId": thread_id,
            "skipNumber": 1,
            "distractorLevel": "L1",
            "position": index,
            "completed": False,
        }
        for index, unit_id in enumerate(unit_ids)
    ]


@pytest.fixture
def well_formed_legacy():
    """A complete, consistent version 2 record."""
    return legacy_record(
        {
            "1": {"threadId": "thread-T1-001", "currentUnitId": "u1",
                  "units": legacy_units("u1", "u2", "u3")},
            "2": {"threadId": "thread-T2-001", "currentUnitId": "v1",
                  "units": legacy_units("v1", "v2", thread_id="thread-T2-001")},
            "3": {"threadId": "thread-T3-001", "currentUnitId": "w1",
                  "units": legacy_units("w1", "w2", thread_id="thread-T3-001")},
        }
    )
