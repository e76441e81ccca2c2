"""
Cache Adapters - CachePort implementations.
"""

from .memory import TTLCache

__all__ = ["TTLCache"]
