"""
Unit tests for the legacy format bridge.

Covers both conversion directions, the round-trip law, the repair pass,
schema version 1 upgrades, and rejection of malformed input.
"""

import copy

import pytest

from conftest import legacy_record, legacy_units, make_track
from helix.core.errors import MalformedLegacyInput
from helix.core.models import DistractorLevel, SchedulerState
from helix.engine.format_bridge import (
    LegacyState,
    dump_legacy,
    from_legacy,
    from_legacy_with_report,
    load_legacy,
    to_legacy,
)
from helix.engine.position_table import PositionTable
from helix.engine.repositioning import RepositioningEngine
from helix.engine.scheduler import CompletionEvent, TripleHelixScheduler


def _tracks(track_one_units, track_one_current=None):
    return {
        "1": {"threadId": "thread-T1-001", "currentUnitId": track_one_current,
              "units": track_one_units},
        "2": {"threadId": "thread-T2-001", "units": legacy_units("v1", thread_id="thread-T2-001")},
        "3": {"threadId": "thread-T3-001", "units": legacy_units("w1", thread_id="thread-T3-001")},
    }


class TestConversion:
    def test_array_to_positions_and_back(self, well_formed_legacy):
        state = from_legacy(well_formed_legacy)
        assert PositionTable(state.track(1)).positions() == {"u1": 0, "u2": 1, "u3": 2}

        legacy = to_legacy(state)
        assert [u.unit_id for u in legacy.tracks[1].units] == ["u1", "u2", "u3"]
        assert legacy.tracks[1].current_unit_id == "u1"

    def test_to_legacy_orders_by_position(self):
        state = SchedulerState(
            tracks={
                1: make_track(1, [("c", 9, 1), ("a", 0, 1), ("b", 4, 1)]),
                2: make_track(2, [("d", 0, 1)]),
                3: make_track(3, [("e", 0, 1)]),
            }
        )
        legacy = to_legacy(state)
        assert [u.unit_id for u in legacy.tracks[1].units] == ["a", "b", "c"]
        assert [u.position for u in legacy.tracks[1].units] == [0, 4, 9]

    def test_dump_is_json_ready(self, state):
        payload = dump_legacy(state)
        tracks = {str(number): track for number, track in payload["tracks"].items()}
        assert payload["schemaVersion"] == 2
        assert set(tracks) == {"1", "2", "3"}
        first = tracks["1"]["units"][0]
        assert first == {
            "unitId": "T1-u1",
            "threadId": "thread-T1-001",
            "skipNumber": 1,
            "distractorLevel": "L1",
            "position": 0,
            "completed": False,
        }
        assert isinstance(payload["lastUpdated"], str)

    def test_load_accepts_model_instance(self, well_formed_legacy):
        model = load_legacy(well_formed_legacy)
        assert isinstance(model, LegacyState)
        assert load_legacy(model) is model

    def test_defaults_for_missing_fields(self):
        units = [{"unitId": "u1", "position": 0}, {"unitId": "u2", "position": 1}]
        state = from_legacy(legacy_record(_tracks(units)))
        unit = state.track(1).get("u1")
        assert unit.skip_number == 3
        assert unit.distractor_level is DistractorLevel.L1
        assert unit.thread_id is None
        assert state.track(1).thread_id == "thread-T1-001"

    def test_custom_default_skip(self):
        units = [{"unitId": "u1", "position": 0}]
        state = from_legacy(legacy_record(_tracks(units)), default_skip_number=1)
        assert state.track(1).get("u1").skip_number == 1


class TestRoundTrip:
    def test_legacy_round_trip(self, well_formed_legacy):
        well_formed_legacy["completedUnits"] = [
            {
                "unitId": "u0",
                "threadId": "thread-T1-001",
                "trackNumber": 1,
                "correctCount": 3,
                "totalCount": 3,
                "timestamp": "2025-01-01T00:00:00Z",
            }
        ]
        well_formed_legacy["totalPoints"] = 3
        original = load_legacy(well_formed_legacy)

        again = to_legacy(from_legacy(well_formed_legacy))

        assert again.model_dump() == original.model_dump()

    def test_dense_state_round_trip(self, scheduler):
        scheduler.complete(CompletionEvent(1, "T1-u1", 3, 3))
        scheduler.complete(CompletionEvent(2, "T2-u1", 1, 3))
        state = scheduler.state

        restored = from_legacy(to_legacy(state))

        assert dump_legacy(restored) == dump_legacy(state)
        for number in (1, 2, 3):
            assert (
                PositionTable(restored.track(number)).positions()
                == PositionTable(state.track(number)).positions()
            )

    def test_sparse_state_keeps_order_and_current(self):
        state = SchedulerState(
            tracks={
                1: make_track(1, [("a", 0, 25), ("b", 1, 1), ("c", 2, 1)]),
                2: make_track(2, [("d", 0, 1)]),
                3: make_track(3, [("e", 0, 1)]),
            }
        )
        RepositioningEngine().reposition(state.track(1), "a", True)
        assert PositionTable(state.track(1)).positions() == {"b": 0, "c": 1, "a": 25}

        restored, report = from_legacy_with_report(to_legacy(state))

        assert PositionTable(restored.track(1)).positions() == {"b": 0, "c": 1, "a": 2}
        assert not report.repaired

    def test_round_trip_without_optional_fields(self, well_formed_legacy):
        del well_formed_legacy["lastUpdated"]
        for track in well_formed_legacy["tracks"].values():
            for unit in track["units"]:
                unit["threadId"] = None
        original = load_legacy(well_formed_legacy)

        state = from_legacy(well_formed_legacy)
        again = to_legacy(state)

        assert state.last_updated is None
        assert again.model_dump() == original.model_dump()

    def test_touch_stamps_restored_state(self, well_formed_legacy):
        del well_formed_legacy["lastUpdated"]
        scheduler = TripleHelixScheduler.from_legacy(well_formed_legacy)

        scheduler.complete(CompletionEvent(1, "u1", 3, 3))

        assert scheduler.state.last_updated is not None

    def test_input_is_not_mutated(self, well_formed_legacy):
        before = copy.deepcopy(well_formed_legacy)
        from_legacy(well_formed_legacy)
        assert well_formed_legacy == before


class TestRepairs:
    def test_duplicate_positions(self, log_messages):
        units = legacy_units("u1", "u2", "u3")
        units[2]["position"] = 1

        state, report = from_legacy_with_report(legacy_record(_tracks(units)))

        assert PositionTable(state.track(1)).positions() == {"u1": 0, "u2": 1, "u3": 2}
        assert [r.kind for r in report.repairs] == ["duplicate_position"]
        assert any(level == "WARNING" and "duplicate_position" in msg for level, msg in log_messages)

    def test_missing_positions(self):
        units = legacy_units("u1", "u2")
        del units[1]["position"]
        _, report = from_legacy_with_report(legacy_record(_tracks(units)))
        assert [r.kind for r in report.repairs] == ["missing_position"]

    def test_out_of_order_positions_follow_array(self):
        units = legacy_units("u1", "u2", "u3")
        units[1]["position"], units[2]["position"] = 2, 1

        state, report = from_legacy_with_report(legacy_record(_tracks(units)))

        assert PositionTable(state.track(1)).positions() == {"u1": 0, "u2": 1, "u3": 2}
        assert [r.kind for r in report.repairs] == ["out_of_order"]

    def test_current_moved_to_front(self):
        units = legacy_units("u1", "u2", "u3")
        state, report = from_legacy_with_report(legacy_record(_tracks(units, "u3")))

        assert PositionTable(state.track(1)).positions() == {"u3": 0, "u1": 1, "u2": 2}
        assert [r.kind for r in report.repairs] == ["current_moved"]

    def test_gaps_compacted_without_repair(self):
        units = legacy_units("u1", "u2", "u3")
        units[1]["position"], units[2]["position"] = 5, 40

        state, report = from_legacy_with_report(legacy_record(_tracks(units)))

        assert PositionTable(state.track(1)).positions() == {"u1": 0, "u2": 1, "u3": 2}
        assert not report.repaired


class TestMalformed:
    def _expect(self, payload):
        with pytest.raises(MalformedLegacyInput):
            from_legacy(payload)

    def test_not_an_object(self):
        self._expect(["not", "a", "record"])

    def test_unknown_version(self, well_formed_legacy):
        well_formed_legacy["schemaVersion"] = 9
        self._expect(well_formed_legacy)

    def test_bad_active_track(self, well_formed_legacy):
        well_formed_legacy["activeTrackNumber"] = 4
        self._expect(well_formed_legacy)

    def test_missing_track(self, well_formed_legacy):
        del well_formed_legacy["tracks"]["3"]
        self._expect(well_formed_legacy)

    def test_extra_track(self, well_formed_legacy):
        well_formed_legacy["tracks"]["4"] = well_formed_legacy["tracks"]["3"]
        self._expect(well_formed_legacy)

    def test_empty_track(self, well_formed_legacy):
        well_formed_legacy["tracks"]["2"]["units"] = []
        self._expect(well_formed_legacy)

    def test_duplicate_unit_ids(self):
        self._expect(legacy_record(_tracks(legacy_units("u1", "u1"))))

    def test_unknown_current_unit(self):
        self._expect(legacy_record(_tracks(legacy_units("u1", "u2"), "u9")))

    def test_skip_outside_progression(self):
        units = legacy_units("u1", "u2")
        units[0]["skipNumber"] = 7
        self._expect(legacy_record(_tracks(units)))

    def test_unknown_distractor_level(self):
        units = legacy_units("u1", "u2")
        units[0]["distractorLevel"] = "L9"
        with pytest.raises(MalformedLegacyInput) as exc_info:
            from_legacy(legacy_record(_tracks(units)))
        assert exc_info.value.errors

    def test_missing_unit_id(self):
        units = legacy_units("u1")
        del units[0]["unitId"]
        self._expect(legacy_record(_tracks(units)))


class TestVersionOne:
    def test_stitch_arrays_upgrade(self):
        payload = {
            "userId": "legacy-user",
            "activeTubeNumber": 2,
            "cycleCount": 4,
            "tubes": {
                "1": {
                    "threadId": "thread-T1-001",
                    "currentStitchId": "s1",
                    "stitches": [
                        {"id": "s2", "threadId": "thread-T1-001", "position": 1,
                         "skipNumber": 5, "distractorLevel": "L2"},
                        {"id": "s1", "threadId": "thread-T1-001", "position": 0,
                         "skipNumber": 1, "distractorLevel": "L1"},
                        {"id": "s3", "threadId": "thread-T1-001", "position": 2},
                    ],
                },
                "2": {"threadId": "thread-T2-001",
                      "stitches": [{"id": "t1", "position": 0, "skipNumber": 3}]},
                "3": {"threadId": "thread-T3-001",
                      "stitches": [{"id": "r1", "position": 0, "skipNumber": 3}]},
            },
            "completedStitches": [
                {"stitchId": "s0", "threadId": "thread-T1-001", "score": 20,
                 "totalQuestions": 20, "timestamp": 1735689600000},
            ],
            "totalPoints": 20,
            "last_updated": 1735689600000,
        }

        state, report = from_legacy_with_report(payload)

        assert state.user_id == "legacy-user"
        assert state.active_track_number == 2
        assert state.cycle_count == 4
        assert state.total_points == 20
        assert PositionTable(state.track(1)).positions() == {"s1": 0, "s2": 1, "s3": 2}
        assert state.track(1).get("s2").distractor_level is DistractorLevel.L2
        assert state.track(1).get("s3").skip_number == 3
        assert state.completed_units[0].unit_id == "s0"
        assert state.completed_units[0].track_number == 1
        assert state.completed_units[0].is_perfect
        assert not report.repaired

    def test_position_map_upgrade(self):
        payload = {
            "activeTubeNumber": 1,
            "tubes": {
                str(n): {
                    "threadId": f"thread-T{n}-001",
                    "positions": {
                        "5": {"stitchId": f"x{n}-b", "skipNumber": 5, "distractorLevel": "L2"},
                        "0": {"stitchId": f"x{n}-a", "skipNumber": 1, "distractorLevel": "L1"},
                    },
                }
                for n in (1, 2, 3)
            },
        }

        state = from_legacy(payload)

        assert PositionTable(state.track(1)).positions() == {"x1-a": 0, "x1-b": 1}
        assert state.track(3).get("x3-b").skip_number == 5

    def test_explicit_version_one(self):
        payload = {"schemaVersion": 1, "tubes": {"1": {"stitches": []}}}
        with pytest.raises(MalformedLegacyInput):
            from_legacy(payload)

    @pytest.mark.parametrize(
        "payload",
        [
            {"tubes": ["a"]},
            {"tubes": {"1": {"stitches": ["x"]}}},
            {"tubes": {"1": {"stitches": "abc"}}},
            {"tubes": {"1": {"positions": {"0": "junk"}}}},
            {"tubes": {"1": {"stitches": []}}, "completedStitches": ["s0"]},
        ],
    )
    def test_malformed_version_one(self, payload):
        with pytest.raises(MalformedLegacyInput):
            from_legacy(payload)

    def test_unmatched_completion_is_logged(self, well_formed_legacy, log_messages):
        well_formed_legacy["completedUnits"] = [
            {"unitId": "gone", "correctCount": 1, "totalCount": 1,
             "timestamp": "2025-01-01T00:00:00Z"}
        ]

        state = from_legacy(well_formed_legacy)

        assert state.completed_units[0].track_number == 1
        assert any(
            level == "DEBUG" and "gone matches no track" in message
            for level, message in log_messages
        )
