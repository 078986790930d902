"""Durable storage for cache contents: JSON snapshots and per-key audio files."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class SnapshotError(Exception):
    """Base snapshot storage error."""


class SnapshotWriteError(SnapshotError):
    """Raised when a snapshot could not be written."""


class StorageQuotaExceededError(SnapshotWriteError):
    """Raised when a snapshot is larger than the storage allows."""


@runtime_checkable
class SnapshotStorage(Protocol):
    """Interface for persisting one serialized cache snapshot."""

    def load(self) -> str | None:
        """Return the stored snapshot, or None if nothing was stored."""
        ...

    def save(self, payload: str) -> None:
        """Replace the stored snapshot. Raises SnapshotWriteError on failure."""
        ...

    def remove(self) -> None:
        """Delete the stored snapshot if present."""
        ...


class LocalSnapshotStorage:
    """Container deployment — one JSON file per cache under cache_dir."""

    def __init__(self, path: str | Path, max_bytes: int = 0) -> None:
        self._path = Path(path)
        self._max_bytes = max_bytes

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> str | None:
        if not self._path.exists():
            return None
        return self._path.read_text(encoding="utf-8")

    def save(self, payload: str) -> None:
        data = payload.encode("utf-8")
        if self._max_bytes and len(data) > self._max_bytes:
            raise StorageQuotaExceededError(
                f"Snapshot of {len(data)} bytes exceeds quota of {self._max_bytes} bytes"
            )
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, self._path)
        except OSError as e:
            raise SnapshotWriteError(f"Failed to write snapshot {self._path}: {e}") from e

    def remove(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to remove snapshot %s", self._path, exc_info=True)


def get_snapshot_storage(cache_dir: str, name: str, max_bytes: int = 0) -> SnapshotStorage | None:
    """Factory: a file-backed storage under *cache_dir*, or None when persistence is off."""
    if not cache_dir:
        return None
    return LocalSnapshotStorage(Path(cache_dir) / f"{name}.json", max_bytes=max_bytes)


_SAFE_KEY_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@runtime_checkable
class ClipStorage(Protocol):
    """Interface for persisting binary values one file per cache key."""

    def get(self, key: str) -> bytes | None:
        ...

    def put(self, key: str, data: bytes) -> None:
        """Store *data* under *key*. Raises SnapshotWriteError on failure."""
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self) -> list[str]:
        ...

    def clear(self) -> None:
        ...


class LocalClipStorage:
    """Audio clips as individual files under a directory, one per key.

    Only the new clip is written on each insert, so the cost of a write does
    not grow with the number of cached clips.
    """

    def __init__(self, directory: str | Path, suffix: str = ".mp3") -> None:
        self._dir = Path(directory)
        self._suffix = suffix

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY_RE.match(key):
            raise SnapshotWriteError(f"Unsafe clip key: {key!r}")
        return self._dir / f"{key}{self._suffix}"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError:
            logger.warning("Failed to read clip %s", path, exc_info=True)
            return None

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, path)
        except OSError as e:
            raise SnapshotWriteError(f"Failed to write clip {path}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except (OSError, SnapshotWriteError):
            logger.warning("Failed to remove clip for %s", key, exc_info=True)

    def keys(self) -> list[str]:
        if not self._dir.is_dir():
            return []
        return sorted(p.name[: -len(self._suffix)] for p in self._dir.glob(f"*{self._suffix}"))

    def clear(self) -> None:
        for key in self.keys():
            self.delete(key)


def get_clip_storage(cache_dir: str, name: str) -> ClipStorage | None:
    """Factory: a clip directory under *cache_dir*, or None when persistence is off."""
    if not cache_dir:
        return None
    return LocalClipStorage(Path(cache_dir) / name)
