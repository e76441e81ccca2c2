"""
Config Adapters - ConfigProviderPort implementations.
"""

from .environment import EnvironmentConfigProvider

__all__ = ["EnvironmentConfigProvider"]
