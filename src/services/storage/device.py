"""
Device Storage

Key/value persistence on the local machine: one JSON file per key inside
the configured data directory.

DESIGN DECISION: Writes go to a temporary file that is then moved over the
target, so a crash mid-write leaves the previous value intact. Reads are
forgiving - a missing or unparsable file reads as "nothing saved" - while
writes fail loudly with StorageError.
"""

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Optional

import structlog

from src.services.storage.interface import SerializationError, StorageError


logger = structlog.get_logger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9._-]+$")


class DeviceStorage:
    """Directory-backed key/value store."""

    def __init__(self, root: Path):
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._root / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        """Raw stored text, or None if nothing (readable) is saved."""
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("device_read_failed", key=key, error=str(e))
            return None

    def set_item(self, key: str, value: str) -> None:
        """
        Store text under a key, atomically.

        Raises:
            StorageError: If the value could not be written
        """
        path = self._path(key)
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove {key}: {e}") from e

    def read_json(self, key: str) -> Optional[Any]:
        """Parsed value under a key; corrupt content reads as None."""
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("device_value_corrupt", key=key, error=str(e))
            return None

    def write_json(self, key: str, value: Any) -> None:
        """
        Serialize and store a value.

        Raises:
            SerializationError: If the value is not JSON-serializable
            StorageError: If the value could not be written
        """
        try:
            raw = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot serialize {key}: {e}") from e
        self.set_item(key, raw)
