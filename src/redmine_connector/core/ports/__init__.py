"""
Ports - Abstract interfaces for external dependencies.

Ports define the contracts that adapters must implement.
This enables dependency inversion and easy testing.
"""

from .cache import CachePort
from .config_provider import (
    AppConfig,
    AsyncConfig,
    CacheConfig,
    ConfigProviderPort,
    TrackerConfig,
    TransportConfig,
)
from .definition_codec import DefinitionCodecPort
from .issue_tracker import (
    AuthenticationError,
    IssueTrackerError,
    IssueTrackerPort,
    NotFoundError,
    PermissionError,
    RateLimitError,
    TransientError,
    ValidationError,
)

__all__ = [
    # Ports
    "CachePort",
    "ConfigProviderPort",
    "DefinitionCodecPort",
    "IssueTrackerPort",
    # Config
    "AppConfig",
    "AsyncConfig",
    "CacheConfig",
    "TrackerConfig",
    "TransportConfig",
    # Issue tracker exceptions
    "AuthenticationError",
    "IssueTrackerError",
    "NotFoundError",
    "PermissionError",
    "RateLimitError",
    "TransientError",
    "ValidationError",
]
