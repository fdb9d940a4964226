"""
storage/history.py — Saved heart-rate readings
===============================================
Finished measurements are stored as a JSON list under a single key of a
key-value store, newest first, capped at the 50 most recent entries.

Two key-value backends are provided:

* `MemoryKeyValueStore`   — a dict; used by tests and ephemeral servers.
* `JsonFileKeyValueStore` — one JSON document on disk holding all keys,
  written atomically (temp file + rename).

Failure policy
--------------
Saving is the only operation in the whole measurement flow allowed to
fail outward: any storage error is wrapped in `PersistenceError` so the
caller can offer a retry.  Loading is best-effort; a missing or corrupt
history yields an empty list and a warning.
"""

import json
import os
import tempfile
import time
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from config import HISTORY_MAX_ENTRIES, HISTORY_STORAGE_KEY
from utils.logger import get_logger

logger = get_logger("storage.history")


class PersistenceError(RuntimeError):
    """A finished reading could not be written to storage."""


class HeartRateEntry(BaseModel):
    """One saved reading."""
    id: str
    bpm: int = Field(..., ge=1, le=300)
    quality: Literal["poor", "fair", "good"]
    timestamp: int = Field(..., description="Unix time in milliseconds.")


_ENTRY_LIST = TypeAdapter(list[HeartRateEntry])


# ── Key-value backends ───────────────────────────────────────────────────────


class MemoryKeyValueStore:
    """In-process key-value store."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileKeyValueStore:
    """Key-value store persisted as a single JSON object on disk."""

    def __init__(self, path: str | os.PathLike):
        self._path = Path(path)

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        with self._path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"{self._path} does not contain a JSON object.")
        return data

    def get(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp, self._path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


# ── History ──────────────────────────────────────────────────────────────────


def make_entry(bpm: int, quality: str, timestamp_ms: int | None = None) -> HeartRateEntry:
    """Build an entry whose id is its creation time in ms."""
    ts = int(time.time() * 1000) if timestamp_ms is None else int(timestamp_ms)
    return HeartRateEntry(id=str(ts), bpm=bpm, quality=quality, timestamp=ts)


class HistoryStore:
    """Newest-first list of `HeartRateEntry` kept under one storage key."""

    def __init__(
        self,
        kv=None,
        key: str = HISTORY_STORAGE_KEY,
        max_entries: int = HISTORY_MAX_ENTRIES,
    ):
        self._kv = kv if kv is not None else MemoryKeyValueStore()
        self._key = key
        self._max_entries = max_entries

    def load(self) -> list[HeartRateEntry]:
        """All saved entries, newest first.  Never raises."""
        try:
            raw = self._kv.get(self._key)
            if not raw:
                return []
            return _ENTRY_LIST.validate_json(raw)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Could not read heart-rate history (%s) — treating as empty.", e)
            return []

    def save(self, entry: HeartRateEntry) -> list[HeartRateEntry]:
        """
        Prepend `entry`, trim to `max_entries` and write back.

        Raises
        ------
        PersistenceError
            If the existing history cannot be read or the write fails.
        """
        try:
            raw = self._kv.get(self._key)
            existing = _ENTRY_LIST.validate_json(raw) if raw else []
            updated = [entry, *existing][: self._max_entries]
            self._kv.set(self._key, _ENTRY_LIST.dump_json(updated).decode("utf-8"))
        except (OSError, ValueError, ValidationError) as e:
            logger.error("Failed to save reading %s: %s", entry.id, e)
            raise PersistenceError(f"Could not save measurement: {e}") from e

        logger.info("Saved reading %s (%d BPM, %s).", entry.id, entry.bpm, entry.quality)
        return updated


def summarize_history(entries: list[HeartRateEntry], last: int = 10) -> dict:
    """
    Chart statistics over the `last` most recent readings.

    Returns
    -------
    dict with keys:
        points : list[HeartRateEntry]  Oldest → newest (chart order).
        min    : int
        max    : int
        range  : int                   max - min, at least 1.
    """
    points = list(reversed(entries[:last]))
    if not points:
        return {"points": [], "min": 50, "max": 120, "range": 70}
    bpms = [e.bpm for e in points]
    lo, hi = min(bpms), max(bpms)
    return {"points": points, "min": lo, "max": hi, "range": max(1, hi - lo)}
