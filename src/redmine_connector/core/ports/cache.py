"""
Cache Port - Abstract key/value cache with TTL and pattern invalidation.
"""

from abc import ABC, abstractmethod
from typing import Any


class CachePort(ABC):
    """
    Key/value cache with per-entry time-to-live.

    Implementations must be safe for concurrent use without caller-side
    locking.
    """

    @abstractmethod
    def get(self, key: str) -> tuple[Any, bool]:
        """
        Look up a live entry.

        Returns:
            (value, True) if present and not expired, (None, False) otherwise
        """
        ...

    @abstractmethod
    def peek(self, key: str) -> tuple[Any, bool]:
        """Like get(), but also returns entries that have expired and not yet been removed."""
        ...

    @abstractmethod
    def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store a value; ttl_seconds <= 0 means the entry never expires."""
        ...

    @abstractmethod
    def invalidate(self, key: str) -> None:
        ...

    @abstractmethod
    def invalidate_all(self) -> None:
        ...

    @abstractmethod
    def invalidate_pattern(self, pattern: str) -> int:
        """
        Remove every key matching a glob (``*`` any run, ``?`` one char).

        Returns:
            Number of entries removed
        """
        ...

    @abstractmethod
    def size(self) -> int:
        ...

    @abstractmethod
    def contains(self, key: str) -> bool:
        ...

    def shutdown(self) -> None:
        """Stop background work and persist if configured."""
        pass
