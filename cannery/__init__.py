"""Pre-configured canned query handles over a shared database connection."""

from __future__ import annotations

from .cache import QueryCache, make_cache_key
from .capabilities import current_settings, merge_settings
from .config import CanneryOptions, load_options
from .connections import AsyncpgConnection, ConnectionProvider, SqliteConnection
from .errors import (
    CanneryError,
    ClassLoadError,
    ConfigurationError,
    ConstructionError,
    DriverConnectionError,
)
from .factory import Cannery, QueryFactory, configure
from .models import CacheKey, CacheScope, CanneryConfiguration
from .query import CannedQuery, QueryExecutionError
from .resolver import ClassResolver, default_query_chain

__version__ = "0.1.0"

__all__ = [
    "AsyncpgConnection",
    "CacheKey",
    "CacheScope",
    "CannedQuery",
    "Cannery",
    "CanneryConfiguration",
    "CanneryError",
    "CanneryOptions",
    "ClassLoadError",
    "ClassResolver",
    "ConfigurationError",
    "ConnectionProvider",
    "ConstructionError",
    "DriverConnectionError",
    "QueryCache",
    "QueryExecutionError",
    "QueryFactory",
    "SqliteConnection",
    "configure",
    "current_settings",
    "default_query_chain",
    "load_options",
    "make_cache_key",
    "merge_settings",
]
