"""Checkpoint persistence for maintaining synchronization state.

The checkpoint is a single UTC instant stored as JSON::

    {"format_version": 1, "last_checkpoint": "2024-01-15T14:30:00+00:00"}

Writes go to a temporary file in the same directory which is flushed,
fsynced and then moved over the previous file with ``os.replace``, so a
reader sees either the old or the new checkpoint, never a partial one.
"""

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path

import structlog

from mwsync.errors import PersistenceError
from mwsync.models.revision import ensure_utc

log = structlog.stdlib.get_logger()

CHECKPOINT_FILENAME = "lastcheck.json"
CHECKPOINT_FORMAT_VERSION = 1


class CheckpointStore:
    """Reads and writes the last-synchronized timestamp."""

    def __init__(self, root: str | Path, filename: str = CHECKPOINT_FILENAME):
        """
        Args:
            root: Directory that holds the checkpoint file (created on first save)
            filename: Name of the checkpoint file inside ``root``
        """
        self._root = Path(root)
        self._path = self._root / filename

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> datetime | None:
        """
        Load the last checkpoint.

        Returns:
            The checkpoint in UTC, or None if no checkpoint has been saved yet

        Raises:
            PersistenceError: If the file exists but cannot be read or parsed
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.info("no_checkpoint_found", path=str(self._path))
            return None
        except OSError as e:
            raise PersistenceError(f"Failed to read checkpoint {self._path}: {e}") from e

        try:
            payload = json.loads(raw)
        except ValueError as e:
            raise PersistenceError(f"Checkpoint {self._path} is not valid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise PersistenceError(f"Checkpoint {self._path} must contain a JSON object")

        version = payload.get("format_version")
        if version != CHECKPOINT_FORMAT_VERSION:
            raise PersistenceError(
                f"Unsupported checkpoint format version {version!r} in {self._path}"
            )

        value = payload.get("last_checkpoint")
        if not isinstance(value, str):
            raise PersistenceError(f"Checkpoint {self._path} has no last_checkpoint value")

        try:
            checkpoint = ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError as e:
            raise PersistenceError(
                f"Checkpoint {self._path} has an invalid timestamp {value!r}"
            ) from e

        log.info("checkpoint_loaded", path=str(self._path), checkpoint=checkpoint.isoformat())
        return checkpoint

    def save(self, checkpoint: datetime) -> None:
        """
        Durably overwrite the stored checkpoint.

        Raises:
            PersistenceError: If the checkpoint cannot be written
        """
        checkpoint = ensure_utc(checkpoint)
        payload = {
            "format_version": CHECKPOINT_FORMAT_VERSION,
            "last_checkpoint": checkpoint.isoformat(),
        }

        try:
            self._root.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self._root), prefix=f".{self._path.name}.", suffix=".tmp"
            )
        except OSError as e:
            raise PersistenceError(f"Failed to prepare checkpoint {self._path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
                fh.write("\n")
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self._path)
        except OSError as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise PersistenceError(f"Failed to write checkpoint {self._path}: {e}") from e

        log.info("checkpoint_saved", path=str(self._path), checkpoint=checkpoint.isoformat())

    def clear(self) -> None:
        """Remove the stored checkpoint so the next pass uses the default lookback."""
        try:
            self._path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise PersistenceError(f"Failed to remove checkpoint {self._path}: {e}") from e

        log.info("checkpoint_cleared", path=str(self._path))
