"""
In-Memory TTL Cache - Thread-safe CachePort implementation.

Entries expire lazily on access and are also swept periodically by a daemon
thread. The cache can optionally survive restarts through a pickle snapshot
written on shutdown.
"""

import logging
import pickle
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from ...core.ports.cache import CachePort


logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cache entry with metadata."""

    value: Any
    expires_at: Optional[float]

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


def glob_to_regex(pattern: str) -> re.Pattern:
    """
    Translate a glob into a regex matching the whole key.

    Only ``*`` (any run of characters) and ``?`` (exactly one) are special;
    everything else, including ``.`` and ``[``, matches literally.
    """
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


class TTLCache(CachePort):
    """
    Key/value cache with per-entry TTL, pattern invalidation and optional
    snapshot persistence.
    """

    def __init__(
        self,
        sweep_interval: float = 60.0,
        snapshot_path: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache.

        Args:
            sweep_interval: Seconds between background sweeps (<= 0 disables
                the sweeper thread)
            snapshot_path: Load entries from / save them to this file
            clock: Time source in seconds; tests pass a fake one
        """
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._clock = clock
        self._snapshot_path = Path(snapshot_path) if snapshot_path else None
        self._hit_count = 0
        self._miss_count = 0

        if self._snapshot_path is not None:
            self._load_snapshot()

        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        if sweep_interval > 0:
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                args=(sweep_interval,),
                name="ttl-cache-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    # -------------------------------------------------------------------------
    # CachePort Implementation
    # -------------------------------------------------------------------------

    def get(self, key: str) -> tuple[Any, bool]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._miss_count += 1
                return None, False

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._miss_count += 1
                return None, False

            self._hit_count += 1
            return entry.value, True

    def peek(self, key: str) -> tuple[Any, bool]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, False
            return entry.value, True

    def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds > 0 else None
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=expires_at)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def invalidate_pattern(self, pattern: str) -> int:
        regex = glob_to_regex(pattern)
        with self._lock:
            doomed = [key for key in self._entries if regex.fullmatch(key)]
            for key in doomed:
                del self._entries[key]

        if doomed:
            logger.debug(f"Invalidated {len(doomed)} entries matching '{pattern}'")
        return len(doomed)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def contains(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return False
            return True

    def shutdown(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1.0)
        if self._snapshot_path is not None:
            self._save_snapshot()

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def clean_expired(self) -> int:
        """Remove expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total_requests = self._hit_count + self._miss_count
            hit_rate = (self._hit_count / total_requests) * 100 if total_requests > 0 else 0
            return {
                "backend": "memory",
                "total_keys": len(self._entries),
                "hit_count": self._hit_count,
                "miss_count": self._miss_count,
                "hit_rate_percent": round(hit_rate, 2),
            }

    def _sweep_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            removed = self.clean_expired()
            if removed:
                logger.debug(f"Swept {removed} expired cache entries")

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _load_snapshot(self) -> None:
        path = self._snapshot_path
        if path is None or not path.exists():
            return

        try:
            with path.open("rb") as fh:
                entries = pickle.load(fh)
            if not isinstance(entries, dict):
                raise ValueError(f"unexpected snapshot content {type(entries).__name__}")
        except Exception as e:
            logger.error(f"Discarding unreadable cache snapshot {path}: {e}")
            path.unlink(missing_ok=True)
            return

        now = self._clock()
        with self._lock:
            for key, entry in entries.items():
                if isinstance(entry, CacheEntry) and not entry.is_expired(now):
                    self._entries[key] = entry
        logger.debug(f"Loaded {len(self._entries)} cache entries from {path}")

    def _save_snapshot(self) -> None:
        path = self._snapshot_path
        if path is None:
            return

        now = self._clock()
        with self._lock:
            live = {k: e for k, e in self._entries.items() if not e.is_expired(now)}

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("wb") as fh:
                pickle.dump(live, fh)
        except Exception as e:
            logger.error(f"Could not write cache snapshot {path}: {e}")
            return
        logger.debug(f"Saved {len(live)} cache entries to {path}")
