"""Core utilities for routegate."""

from routegate.app.core.cache import (
    CacheBackend,
    InMemoryCache,
    RedisCache,
    SQLCache,
    create_cache_backend,
)
from routegate.app.core.config import Settings, settings
from routegate.app.core.endpoints import EndpointClass, EndpointConfig
from routegate.app.core.logging import get_logger, setup_logging

__all__ = [
    "CacheBackend",
    "InMemoryCache",
    "RedisCache",
    "SQLCache",
    "create_cache_backend",
    "Settings",
    "settings",
    "EndpointClass",
    "EndpointConfig",
    "get_logger",
    "setup_logging",
]
