"""
Environment Config Provider - Load configuration from environment variables.

Supports (in increasing precedence):
- .env files
- Environment variables (REDMINE_URL, REDMINE_API_KEY, ...)
- Programmatic overrides
"""

import os
from pathlib import Path
from typing import Any, Optional

from ...core.ports.config_provider import (
    ConfigProviderPort,
    AppConfig,
    AsyncConfig,
    CacheConfig,
    TrackerConfig,
    TransportConfig,
)


class EnvironmentConfigProvider(ConfigProviderPort):
    """
    Configuration provider that loads from environment variables and .env files.
    """

    ENV_PREFIX = "REDMINE_"

    ENV_MAPPING = {
        "REDMINE_URL": "url",
        "REDMINE_API_KEY": "api_key",
        "REDMINE_PROJECT": "project_id",
        "REDMINE_FETCH_BATCH_SIZE": "fetch_batch_size",
        "REDMINE_BULK_BATCH_SIZE": "max_bulk_batch_size",
        "REDMINE_TIMEOUT": "timeout",
        "REDMINE_MAX_RETRIES": "max_retry_attempts",
        "REDMINE_RETRY_DELAY": "retry_delay",
        "REDMINE_CACHE_TTL": "metadata_ttl",
        "REDMINE_CACHE_PERSISTENT": "persistent",
        "REDMINE_CACHE_FILE": "snapshot_path",
        "REDMINE_CUSTOM_FIELDS_DIR": "custom_fields_dir",
        "REDMINE_POOL_SIZE": "max_pool_size",
    }

    def __init__(
        self,
        env_file: Optional[Path] = None,
        overrides: Optional[dict[str, Any]] = None,
    ):
        """
        Initialize the config provider.

        Args:
            env_file: Path to .env file (auto-detected if not specified)
            overrides: Values taking precedence over everything else
        """
        self._values: dict[str, Any] = {}
        self._env_file = env_file
        self._overrides = {
            self._normalize(k): v for k, v in (overrides or {}).items() if v is not None
        }

        # Load configuration
        self._load_env_file()
        self._load_environment()

    # -------------------------------------------------------------------------
    # ConfigProviderPort Implementation
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "Environment"

    def load(self) -> AppConfig:
        """Load complete configuration."""
        defaults = AppConfig()

        tracker = TrackerConfig(
            url=str(self.get("url", "")),
            api_key=str(self.get("api_key", "")),
            project_id=self.get("project_id"),
        )

        transport = TransportConfig(
            fetch_batch_size=self._int("fetch_batch_size", defaults.transport.fetch_batch_size),
            max_bulk_batch_size=self._int("max_bulk_batch_size", defaults.transport.max_bulk_batch_size),
            timeout=self._float("timeout", defaults.transport.timeout),
            max_retry_attempts=self._int("max_retry_attempts", defaults.transport.max_retry_attempts),
            retry_delay=self._float("retry_delay", defaults.transport.retry_delay),
        )

        cache = CacheConfig(
            metadata_ttl=self._float("metadata_ttl", defaults.cache.metadata_ttl),
            persistent=self._bool("persistent", defaults.cache.persistent),
            snapshot_path=Path(self.get("snapshot_path", defaults.cache.snapshot_path)),
            custom_fields_dir=Path(self.get("custom_fields_dir", defaults.cache.custom_fields_dir)),
        )

        async_ = AsyncConfig(
            max_pool_size=self._int("max_pool_size", defaults.async_.max_pool_size),
        )

        return AppConfig(tracker=tracker, transport=transport, cache=cache, async_=async_)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        key = self._normalize(key)

        # Check overrides first
        if key in self._overrides:
            return self._overrides[key]

        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value."""
        self._values[self._normalize(key)] = value

    def validate(self) -> list[str]:
        """Validate configuration."""
        errors = []

        if not self.get("url"):
            errors.append("Missing REDMINE_URL - set in environment or .env file")
        if not self.get("api_key"):
            errors.append("Missing REDMINE_API_KEY - set in environment or .env file")

        for key, label in (
            ("fetch_batch_size", "REDMINE_FETCH_BATCH_SIZE"),
            ("max_bulk_batch_size", "REDMINE_BULK_BATCH_SIZE"),
            ("max_pool_size", "REDMINE_POOL_SIZE"),
        ):
            value = self.get(key)
            if value is not None and self._int(key, 0) <= 0:
                errors.append(f"{label} must be a positive integer, got '{value}'")

        return errors

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    def _normalize(self, key: str) -> str:
        key = key.lower().replace("-", "_")
        # Accept both "url" and "redmine_url"
        prefix = self.ENV_PREFIX.lower()
        if key.startswith(prefix):
            mapped = self.ENV_MAPPING.get(key.upper())
            if mapped:
                return mapped
        return key

    def _load_env_file(self) -> None:
        """Load values from .env file."""
        env_file = self._find_env_file()
        if not env_file:
            return

        for line in env_file.read_text().splitlines():
            line = line.strip()

            # Skip empty lines and comments
            if not line or line.startswith("#"):
                continue

            # Parse key=value
            if "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")

            config_key = self.ENV_MAPPING.get(key.upper())
            if config_key:
                self._values[config_key] = value

    def _find_env_file(self) -> Optional[Path]:
        """Find .env file."""
        if self._env_file is not None:
            return self._env_file if self._env_file.exists() else None

        cwd_env = Path.cwd() / ".env"
        if cwd_env.exists():
            return cwd_env

        return None

    def _load_environment(self) -> None:
        """Load values from environment variables."""
        for env_key, config_key in self.ENV_MAPPING.items():
            raw_value = os.environ.get(env_key)
            if raw_value is not None:
                self._values[config_key] = raw_value

    def _int(self, key: str, default: int) -> int:
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _float(self, key: str, default: float) -> float:
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    def _bool(self, key: str, default: bool) -> bool:
        value = self.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        # Convert boolean-ish values
        text = str(value).strip().lower()
        if text in ("true", "1", "yes", "on"):
            return True
        if text in ("false", "0", "no", "off"):
            return False
        return default
