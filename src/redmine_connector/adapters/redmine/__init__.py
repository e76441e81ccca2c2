"""
Redmine Adapter - Implementation of IssueTrackerPort for Redmine.

The service stack, bottom to top:
- RedmineApiClient: HTTP transport (auth, error mapping, retries)
- RedmineDataService: One method per remote operation
- CachedDataService: TTL caching of reference data
- AsyncDataService: Future-returning facade on a worker pool
"""

from .adapter import RedmineDataService
from .async_service import AsyncDataService, AsyncOperationError
from .cached import CachedDataService
from .client import RedmineApiClient
from .codec import RedmineJsonCodec

__all__ = [
    "RedmineDataService",
    "RedmineApiClient",
    "RedmineJsonCodec",
    "CachedDataService",
    "AsyncDataService",
    "AsyncOperationError",
]
