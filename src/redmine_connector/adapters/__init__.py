"""
Adapters - Concrete implementations of ports.

This module contains implementations for:
- Issue Trackers: Redmine (HTTP, caching and async layers)
- Cache: In-memory TTL cache with optional snapshot persistence
- Config: Environment variables
"""

from .redmine import (
    AsyncDataService,
    AsyncOperationError,
    CachedDataService,
    RedmineApiClient,
    RedmineDataService,
    RedmineJsonCodec,
)
from .cache import TTLCache
from .config import EnvironmentConfigProvider

__all__ = [
    "AsyncDataService",
    "AsyncOperationError",
    "CachedDataService",
    "RedmineApiClient",
    "RedmineDataService",
    "RedmineJsonCodec",
    "TTLCache",
    "EnvironmentConfigProvider",
]
