"""
JSON State Store for the Helix CLI.

Reads and writes one learner's scheduler record as a legacy-shaped JSON
file. The engine never touches files; only the CLI uses this store.

Default location: ~/.helix/state.json
"""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger

from helix.core.errors import MalformedLegacyInput
from helix.core.models import SchedulerState, SkipProgression
from helix.engine.format_bridge import (
    LEGACY_DEFAULT_SKIP_NUMBER,
    RepairReport,
    dump_legacy,
    from_legacy_with_report,
)


class StateStore:
    """File-backed persistence for a learner's scheduler state."""

    DEFAULT_FILENAME = "state.json"

    def __init__(
        self,
        path: Path,
        progression: SkipProgression | None = None,
        default_skip_number: int = LEGACY_DEFAULT_SKIP_NUMBER,
    ):
        """
        Initialize the store.

        Args:
            path: JSON file holding the state
            progression: Skip progression used to validate loaded records
            default_skip_number: Skip number for legacy records that carry none
        """
        self.path = path
        self.progression = progression
        self.default_skip_number = default_skip_number

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> tuple[SchedulerState, RepairReport]:
        """
        Load and validate the stored record.

        Raises:
            FileNotFoundError: If the file does not exist
            MalformedLegacyInput: If the file is not a valid record
        """
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise MalformedLegacyInput(f"{self.path} is not valid JSON: {exc}") from exc

        state, report = from_legacy_with_report(
            payload, self.progression, self.default_skip_number
        )
        logger.debug(f"Loaded state for {state.user_id} from {self.path}")
        return state, report

    def save(self, state: SchedulerState) -> None:
        """Write the state as a version 2 legacy record."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(dump_legacy(state), indent=2) + "\n",
            encoding="utf-8",
        )
        logger.debug(f"Saved state for {state.user_id} to {self.path}")
