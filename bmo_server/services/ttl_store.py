"""Bounded in-memory TTL store with best-effort snapshot persistence."""

from __future__ import annotations

import base64
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Generic, TypeVar

from bmo_server.services.snapshot_storage import ClipStorage, SnapshotStorage, SnapshotWriteError

logger = logging.getLogger(__name__)

V = TypeVar("V", str, bytes)

# Entries older than this are dropped when a snapshot write fails, before the single retry.
PRUNE_AGE_SECONDS = 3600.0

_SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    value: V
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class BoundedTTLStore(Generic[V]):
    """Expiring key/value map holding at most ``capacity`` entries.

    Eviction follows insertion order: when a new key arrives at capacity the
    oldest-inserted entry goes, whether or not it was read recently. Replacing
    a key counts as a fresh insertion.

    When a ``storage`` is given, the whole map is written to it after every
    mutation and read back on construction. With ``clips`` as well, values are
    kept one file per key and the snapshot only records their timestamps.
    Storage failures are logged and never raised.
    """

    def __init__(
        self,
        capacity: int,
        name: str = "cache",
        storage: SnapshotStorage | None = None,
        clock: Callable[[], float] = time.time,
        clips: ClipStorage | None = None,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._name = name
        self._storage = storage
        self._clips = clips if storage is not None else None
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[V]] = OrderedDict()
        # keys whose clip could not be written; kept out of the snapshot
        self._unsaved: set[str] = set()
        self._load()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def name(self) -> str:
        return self._name

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not entry.is_expired(self._clock())

    def get(self, key: str) -> V | None:
        """Return the live value for *key*, dropping it if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            logger.debug("%s: entry expired: %s", self._name, key)
            self._drop(key)
            self._persist()
            return None
        return entry.value

    def set(self, key: str, value: V, ttl: float) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        now = self._clock()
        self._entries.pop(key, None)
        self._unsaved.discard(key)
        while len(self._entries) >= self._capacity:
            evicted = next(iter(self._entries))
            self._drop(evicted)
            logger.debug("%s: full, evicted oldest entry %s", self._name, evicted)
        self._entries[key] = CacheEntry(value=value, created_at=now, expires_at=now + ttl)
        if self._clips is not None and isinstance(value, bytes) and not self._write_clip(key, value):
            self._unsaved.add(key)
        self._persist()

    def delete(self, key: str) -> bool:
        if key not in self._entries:
            return False
        self._drop(key)
        self._persist()
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._unsaved.clear()
        if self._storage is not None:
            self._storage.remove()
        if self._clips is not None:
            self._clips.clear()

    def purge_expired(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            self._drop(key)
        if expired:
            self._persist()
        return len(expired)

    def stats(self) -> dict:
        now = self._clock()
        live = sum(1 for e in self._entries.values() if not e.is_expired(now))
        return {
            "name": self._name,
            "entries": len(self._entries),
            "live_entries": live,
            "capacity": self._capacity,
            "persistent": self._storage is not None,
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self) -> None:
        if self._storage is None:
            return
        try:
            self._storage.save(self._serialize())
            return
        except SnapshotWriteError as e:
            logger.warning("%s: snapshot write failed (%s), pruning old entries", self._name, e)

        cutoff = self._clock() - PRUNE_AGE_SECONDS
        stale = [k for k, e in self._entries.items() if e.created_at < cutoff]
        for key in stale:
            self._drop(key)
        logger.info("%s: pruned %d entries older than one hour", self._name, len(stale))

        try:
            self._storage.save(self._serialize())
        except SnapshotWriteError as e:
            logger.warning("%s: snapshot retry failed, continuing in memory only: %s", self._name, e)

    def _serialize(self) -> str:
        return json.dumps(
            {
                "version": _SNAPSHOT_VERSION,
                "entries": [
                    [key, _encode_entry(entry, external=self._clips is not None)]
                    for key, entry in self._entries.items()
                    if key not in self._unsaved
                ],
            },
            separators=(",", ":"),
        )

    def _load(self) -> None:
        if self._storage is None:
            return
        try:
            raw = self._storage.load()
            if raw is None:
                self._remove_orphan_clips()
                return
            data = json.loads(raw)
            entries = [(key, _decode_entry(item)) for key, item in data["entries"]]
        except (OSError, ValueError, KeyError, TypeError):
            logger.exception("%s: failed to load snapshot, starting empty", self._name)
            self._storage.remove()
            if self._clips is not None:
                self._clips.clear()
            self._entries.clear()
            return

        now = self._clock()
        expired = missing = 0
        for key, entry in entries:
            if entry.is_expired(now):
                expired += 1
                continue
            if entry.value is None:
                value = self._clips.get(key) if self._clips is not None else None
                if value is None:
                    missing += 1
                    continue
                entry = replace(entry, value=value)
            self._entries[key] = entry

        trimmed = 0
        while len(self._entries) > self._capacity:
            self._drop(next(iter(self._entries)))
            trimmed += 1
        self._remove_orphan_clips()

        if expired or missing or trimmed:
            logger.info(
                "%s: dropped %d expired, %d missing and %d over-capacity snapshot entries",
                self._name, expired, missing, trimmed,
            )
            self._persist()
        logger.info("%s: loaded %d cached entries", self._name, len(self._entries))

    def _drop(self, key: str) -> None:
        self._entries.pop(key, None)
        self._unsaved.discard(key)
        if self._clips is not None:
            self._clips.delete(key)

    def _write_clip(self, key: str, value: bytes) -> bool:
        try:
            self._clips.put(key, value)
        except SnapshotWriteError as e:
            logger.warning("%s: clip write failed, keeping %s in memory only: %s", self._name, key, e)
            return False
        return True

    def _remove_orphan_clips(self) -> None:
        if self._clips is None:
            return
        for key in self._clips.keys():
            if key not in self._entries:
                self._clips.delete(key)


def _encode_entry(entry: CacheEntry, external: bool = False) -> dict:
    if isinstance(entry.value, bytes) and external:
        value, encoding = None, "file"
    elif isinstance(entry.value, bytes):
        value, encoding = base64.b64encode(entry.value).decode("ascii"), "base64"
    else:
        value, encoding = entry.value, "text"
    item = {
        "encoding": encoding,
        "created_at": entry.created_at,
        "expires_at": entry.expires_at,
    }
    if value is not None:
        item["value"] = value
    return item


def _decode_entry(item: dict) -> CacheEntry:
    if item["encoding"] == "base64":
        value = base64.b64decode(item["value"])
    elif item["encoding"] == "text":
        value = item["value"]
    elif item["encoding"] == "file":
        # filled in from clip storage by the caller
        value = None
    else:
        raise ValueError(f"Unknown snapshot encoding: {item['encoding']!r}")
    return CacheEntry(
        value=value,
        created_at=float(item["created_at"]),
        expires_at=float(item["expires_at"]),
    )
