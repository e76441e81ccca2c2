"""
Config Provider Port - Abstract interface for configuration sources.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional


APP_NAME = "redmine-connector"
APP_VERSION = "1.0.0"


@dataclass
class TrackerConfig:
    """Connection details for one Redmine instance."""

    url: str = ""
    api_key: str = ""
    project_id: Optional[str] = None

    @property
    def instance_key(self) -> str:
        """Identity of the server, used to keep per-instance state apart."""
        return self.url.rstrip("/").lower()


@dataclass
class TransportConfig:
    """HTTP transport limits."""

    fetch_batch_size: int = 100
    max_bulk_batch_size: int = 100
    timeout: float = 30.0
    max_retry_attempts: int = 3
    retry_delay: float = 1.0
    user_agent: str = f"{APP_NAME}/{APP_VERSION}"


@dataclass
class CacheConfig:
    """Cache lifetimes and persistence."""

    metadata_ttl: float = 300.0
    sweep_interval: float = 60.0
    persistent: bool = False
    snapshot_path: Path = field(
        default_factory=lambda: Path.home() / ".redmine_connector_cache.dat"
    )
    custom_fields_dir: Path = field(default_factory=lambda: Path("cache"))


@dataclass
class AsyncConfig:
    """Worker pool sizing for the async facade."""

    core_pool_size: int = 4
    max_pool_size: int = 8
    keep_alive: float = 60.0


@dataclass
class AppConfig:
    """Complete configuration."""

    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    async_: AsyncConfig = field(default_factory=AsyncConfig)


class ConfigProviderPort(ABC):
    """Abstract interface for configuration providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        ...

    @abstractmethod
    def load(self) -> AppConfig:
        """Load complete configuration."""
        ...

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Get a single configuration value."""
        ...

    @abstractmethod
    def validate(self) -> list[str]:
        """Return a list of configuration errors (empty if valid)."""
        ...
