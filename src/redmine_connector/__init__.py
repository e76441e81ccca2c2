"""
redmine_connector - Data access layer for the Redmine REST API.

Typical use::

    config = EnvironmentConfigProvider().load()
    service = build_data_service(config)
    tasks = service.fetch_tasks_async("my-project", False, 50).result()
    service.shutdown()
"""

from typing import Optional

from .adapters.cache import TTLCache
from .adapters.config import EnvironmentConfigProvider
from .adapters.redmine import (
    AsyncDataService,
    AsyncOperationError,
    CachedDataService,
    RedmineApiClient,
    RedmineDataService,
    RedmineJsonCodec,
)
from .application import CustomFieldLearningCache
from .core.domain import EventBus
from .core.ports import AppConfig
from .core.ports.config_provider import APP_VERSION


__version__ = APP_VERSION


def build_data_service(
    config: AppConfig,
    event_bus: Optional[EventBus] = None,
    learning_cache: Optional[CustomFieldLearningCache] = None,
) -> AsyncDataService:
    """
    Assemble the full stack: HTTP transport, caching layer, async facade.

    Args:
        config: Complete configuration
        event_bus: Bus receiving TasksFetched and cache events
        learning_cache: If given, learns custom fields from every task fetch
            (a bus is created when none was passed)

    Returns:
        The async facade; shutting it down shuts down the whole stack
    """
    if learning_cache is not None:
        event_bus = event_bus or EventBus()
        learning_cache.subscribe(event_bus)

    transport = RedmineDataService(config.tracker, config.transport, event_bus=event_bus)

    cache = TTLCache(
        sweep_interval=config.cache.sweep_interval,
        snapshot_path=config.cache.snapshot_path if config.cache.persistent else None,
    )
    cached = CachedDataService(
        transport, cache, metadata_ttl=config.cache.metadata_ttl, event_bus=event_bus
    )

    return AsyncDataService(cached, max_workers=config.async_.max_pool_size)


__all__ = [
    "build_data_service",
    "AsyncDataService",
    "AsyncOperationError",
    "CachedDataService",
    "CustomFieldLearningCache",
    "EnvironmentConfigProvider",
    "EventBus",
    "RedmineApiClient",
    "RedmineDataService",
    "RedmineJsonCodec",
    "TTLCache",
]
