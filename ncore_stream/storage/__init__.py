"""
Storage Layer.

This package handles data persistence: the configuration file, the durable
torrent state, and the in-memory search cache.
"""

from .cache import QueryCache, normalize_query_key
from .config_manager import ConfigManager
from .state import PersistedState

__all__ = ["ConfigManager", "PersistedState", "QueryCache", "normalize_query_key"]
