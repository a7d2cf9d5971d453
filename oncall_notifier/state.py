"""Persistent state store for oncall-notifier."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

import structlog

from oncall_notifier.models import PersistedState

logger = structlog.get_logger()


class StorageError(Exception):
    """Base class for state storage failures."""


class StorageReadError(StorageError):
    """Raised when an existing state record cannot be read or parsed."""


class StorageWriteError(StorageError):
    """Raised when the state record cannot be written."""


class StateStore:
    """Reads and writes the persisted state as a small JSON file."""

    def __init__(self, file_path: str) -> None:
        self._path = Path(file_path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> PersistedState:
        """Load state from disk.

        Returns the default state when no file exists yet.

        Raises:
            StorageReadError: If the file exists but cannot be read or decoded.
        """
        if not self._path.exists():
            logger.info("state_file_not_found", path=str(self._path))
            return PersistedState()

        try:
            raw = self._path.read_bytes()
        except OSError as e:
            raise StorageReadError(f"failed to read state file {self._path}: {e}") from e

        try:
            state = PersistedState.from_dict(json.loads(raw.decode("utf-8")))
        except ValueError as e:
            # UnicodeDecodeError and json.JSONDecodeError are both ValueErrors
            raise StorageReadError(f"failed to decode state file {self._path}: {e}") from e

        logger.debug(
            "state_loaded",
            path=str(self._path),
            was_on_call=state.was_on_call,
            last_advance_notification_sent=state.last_advance_notification_sent,
        )
        return state

    def save(self, state: PersistedState) -> None:
        """Write state to disk, replacing the previous record atomically.

        Raises:
            StorageWriteError: On any I/O failure. The previous record is left intact.
        """
        data = json.dumps(state.to_dict(), indent=2) + "\n"
        tmp_name = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise StorageWriteError(f"failed to write state file {self._path}: {e}") from e

        logger.debug("state_saved", path=str(self._path), was_on_call=state.was_on_call)
