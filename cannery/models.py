"""Shared dataclasses used across the resolver, cache, and factory modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

QuerySettings = dict[str, Any]

AMBIENT_OPTIONS = frozenset({"verbosity", "logger"})


class CacheScope(str, Enum):
    """Where a factory's query cache lives."""

    INSTANCE = "instance"
    SHARED = "shared"


@dataclass(frozen=True, slots=True)
class CanneryConfiguration:
    """Resolved setup, fixed for the lifetime of the installed factory."""

    query_handle_type: type
    connection: Any
    fallback_chain_used: tuple[str, ...] = ()
    cache_scope: CacheScope = CacheScope.INSTANCE
    normalize_keys: bool = False
    dialect: str | None = None
    defaults: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Identity of a cached query: SQL text plus identity-relevant options."""

    sql: str
    options: tuple[tuple[str, Any], ...] = ()


__all__ = [
    "AMBIENT_OPTIONS",
    "CacheKey",
    "CacheScope",
    "CanneryConfiguration",
    "QuerySettings",
]
