"""
Keyed local storage backed by a single JSON file.

Behaves like a browser's localStorage: string keys map to string values,
and the whole record set lives in one file under the data directory.
Writes are atomic (temp file + os.replace).
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional

from loguru import logger


class StorageQuotaExceededError(OSError):
    """Raised when a write would grow the storage file past its quota."""

    pass


class LocalStorage:
    """String key/value store persisted to a JSON file.

    Args:
        path: Location of the JSON record file
        max_bytes: Optional quota for the serialized file size
    """

    def __init__(self, path: Path, max_bytes: Optional[int] = None):
        self.path = Path(path)
        self.max_bytes = max_bytes
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring corrupt storage file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring storage file {self.path}: not a JSON object")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write_all(self, records: dict[str, str]) -> None:
        payload = json.dumps(records, ensure_ascii=False)
        encoded = payload.encode("utf-8")
        if self.max_bytes is not None and len(encoded) > self.max_bytes:
            raise StorageQuotaExceededError(
                f"Storage quota exceeded: {len(encoded)} > {self.max_bytes} bytes"
            )

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            prefix=".storage-", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(encoded)
            os.replace(temp_name, self.path)
        except Exception:
            # Clean up temp file on any failure
            Path(temp_name).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value for key, or None."""
        with self._lock:
            return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        """Store value under key.

        Raises:
            StorageQuotaExceededError: If the write would exceed max_bytes
            OSError: If the file cannot be written
        """
        with self._lock:
            records = self._read_all()
            records[key] = value
            self._write_all(records)

    def remove_item(self, key: str) -> None:
        """Delete key if present."""
        with self._lock:
            records = self._read_all()
            if key not in records:
                return
            del records[key]
            self._write_all(records)

    def clear(self) -> None:
        """Delete every key."""
        with self._lock:
            self._write_all({})

    def keys(self) -> list[str]:
        """Return all stored keys."""
        with self._lock:
            return list(self._read_all().keys())
