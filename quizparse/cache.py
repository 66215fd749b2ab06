"""In-memory LRU cache of extraction results with TTL and optional persistence.

Thread-safe. Keys are ``{strategy}:{variant}:{sha256}`` where the hash covers
the normalized input, so the same content parsed by a different strategy is
a different entry. When a cache file is configured, entries can be saved and
reloaded so results survive restarts; expired entries are never loaded.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Callable

from .schema import ExtractionResult, RawInput
from .utils import content_hash

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 3600
DEFAULT_SWEEP_SECONDS = 3600


class _CacheEntry:
    __slots__ = ("key", "data", "created_at", "ttl", "access_count", "last_accessed_at")

    def __init__(self, key: str, data: ExtractionResult, ttl: float, now: float) -> None:
        self.key = key
        self.data = data
        self.created_at = now
        self.ttl = ttl
        self.access_count = 0
        self.last_accessed_at = now

    def expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


def make_key(payload: RawInput | str | bytes, strategy: str, variant: str = "default") -> str:
    if isinstance(payload, RawInput):
        payload = payload.payload
    return f"{strategy}:{variant}:{content_hash(payload)}"


class ResultCache:
    """Thread-safe LRU + TTL cache for :class:`ExtractionResult` values."""

    def __init__(
        self,
        max_size: int = 100,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._sweeper: threading.Thread | None = None
        self._stop = threading.Event()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get(
        self, raw: RawInput | str | bytes, strategy: str, variant: str = "default",
    ) -> ExtractionResult | None:
        key = make_key(raw, strategy, variant)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expired(now):
                del self._entries[key]
                self._misses += 1
                return None
            entry.access_count += 1
            entry.last_accessed_at = now
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.data.model_copy(deep=True)

    def set(
        self,
        raw: RawInput | str | bytes,
        strategy: str,
        data: ExtractionResult,
        variant: str = "default",
        ttl: float | None = None,
    ) -> str:
        key = make_key(raw, strategy, variant)
        now = self._clock()
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.max_size and self._entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Cache evicted %s", evicted)
            self._entries[key] = _CacheEntry(
                key, data.model_copy(deep=True), ttl if ttl is not None else self.ttl_seconds, now,
            )
        return key

    def delete(self, raw: RawInput | str | bytes, strategy: str, variant: str = "default") -> bool:
        key = make_key(raw, strategy, variant)
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def sweep(self) -> int:
        """Remove expired entries; return how many were dropped."""
        now = self._clock()
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Cache sweep removed %d expired entries", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def stats(self) -> dict[str, Any]:
        with self._lock:
            entries = list(self._entries.values())
            hits, misses = self._hits, self._misses
        lookups = hits + misses
        approx_bytes = sum(
            len(e.key) + len(e.data.model_dump_json()) for e in entries
        )
        return {
            "size": len(entries),
            "max_size": self.max_size,
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / lookups, 4) if lookups else 0.0,
            "miss_rate": round(misses / lookups, 4) if lookups else 0.0,
            "oldest_entry": min((e.created_at for e in entries), default=None),
            "newest_entry": max((e.created_at for e in entries), default=None),
            "avg_access_count": (
                round(sum(e.access_count for e in entries) / len(entries), 3) if entries else 0.0
            ),
            "approx_bytes": approx_bytes,
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def export_entries(self) -> str:
        now = self._clock()
        with self._lock:
            rows = [
                {
                    "key": e.key,
                    "data": e.data.model_dump(mode="json"),
                    "created_at": e.created_at,
                    "ttl": e.ttl,
                    "access_count": e.access_count,
                    "last_accessed_at": e.last_accessed_at,
                }
                for e in self._entries.values()
                if not e.expired(now)
            ]
        return json.dumps(rows, ensure_ascii=False)

    def import_entries(self, data: str) -> int:
        """Load entries exported by :meth:`export_entries`; returns the count kept."""
        rows = json.loads(data)
        if not isinstance(rows, list):
            raise ValueError("Cache export must be a JSON array.")
        now = self._clock()
        loaded = 0
        with self._lock:
            for row in rows:
                entry = _CacheEntry(
                    row["key"],
                    ExtractionResult.model_validate(row["data"]),
                    float(row["ttl"]),
                    float(row["created_at"]),
                )
                if entry.expired(now):
                    continue
                entry.access_count = int(row.get("access_count", 0))
                entry.last_accessed_at = float(row.get("last_accessed_at", entry.created_at))
                self._entries.pop(entry.key, None)
                while len(self._entries) >= self.max_size and self._entries:
                    self._entries.popitem(last=False)
                self._entries[entry.key] = entry
                loaded += 1
        return loaded

    def save(self, path: str | Path) -> None:
        Path(path).write_text(self.export_entries(), encoding="utf-8")

    def load(self, path: str | Path) -> int:
        file_path = Path(path)
        if not file_path.exists():
            return 0
        try:
            return self.import_entries(file_path.read_text(encoding="utf-8"))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Failed to load cache file %s: %s", file_path, exc)
            return 0

    # ------------------------------------------------------------------
    # Background sweeper
    # ------------------------------------------------------------------
    def start_sweeper(self, interval: float = DEFAULT_SWEEP_SECONDS) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()

        def _run() -> None:
            while not self._stop.wait(interval):
                self.sweep()

        self._sweeper = threading.Thread(target=_run, name="result-cache-sweeper", daemon=True)
        self._sweeper.start()

    def shutdown(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None
