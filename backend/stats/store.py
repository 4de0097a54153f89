"""
Local durable key-value store.

Responsibilities:
- get/set of opaque string values by key
- Make a completed set() survive an immediate process crash

Non-responsibilities:
- No knowledge of what the values mean (stats are serialized upstream)
- No caching policy, no expiry

FileKeyValueStore layout: one JSON object file mapping key -> string.
Writes go to a sibling temp file, are fsynced, then atomically renamed
over the original.
"""

from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path


class StoreError(Exception):
    """Raised when the store cannot be read or written."""


class KeyValueStore(ABC):
    """Minimal synchronous key-value contract."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """
        Return the stored value, or None if the key is absent.

        Raises:
            StoreError if the backing storage is unreadable.
        """
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Durably store `value` under `key`.

        Must not return before the value would survive a crash.

        Raises:
            StoreError if the write failed.
        """
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store for tests and ephemeral runs."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self.write_count = 0

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self.write_count += 1


class FileKeyValueStore(KeyValueStore):
    """Store backed by a single JSON file."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> str | None:
        value = self._read_all().get(key)
        if value is None or isinstance(value, str):
            return value
        raise StoreError(f"value for {key!r} is not a string")

    def set(self, key: str, value: str) -> None:
        try:
            data = self._read_all()
        except StoreError:
            # Unreadable file is replaced
            data = {}
        data[key] = value
        self._write_all(data)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_all(self) -> dict[str, object]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StoreError(f"cannot read {self._path}: {e}") from e

        try:
            data = json.loads(text)
        except ValueError as e:
            raise StoreError(f"corrupt store file {self._path}: {e}") from e

        if not isinstance(data, dict):
            raise StoreError(f"corrupt store file {self._path}: not an object")
        return data

    def _write_all(self, data: dict[str, object]) -> None:
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=directory, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, separators=(",", ":"))
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StoreError(f"cannot write {self._path}: {e}") from e
