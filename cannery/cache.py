"""Keyed store of constructed query handles."""

from __future__ import annotations

import logging
import re
import threading
from typing import Any, Callable, Iterator, Mapping, TypeVar

import sqlglot
from sqlglot.errors import ParseError

from .models import AMBIENT_OPTIONS, CacheKey

LOG = logging.getLogger(__name__)

T = TypeVar("T")

_WHITESPACE = re.compile(r"\s+")


def make_cache_key(
    sql: str,
    options: Mapping[str, Any] | None = None,
    *,
    normalize: bool = False,
    dialect: str | None = None,
) -> CacheKey:
    """Derive the identity of a query.

    Every option except the ambient ``verbosity`` and ``logger`` takes part,
    so two requests differing only in how loudly they log share one handle.
    With ``normalize`` the SQL is canonicalized through sqlglot, which folds
    formatting and keyword case differences into one key.
    """

    text = _normalize_sql(sql, dialect) if normalize else sql
    identity = tuple(
        sorted(
            (name, _freeze(value))
            for name, value in (options or {}).items()
            if name not in AMBIENT_OPTIONS
        )
    )
    return CacheKey(sql=text, options=identity)


def _normalize_sql(sql: str, dialect: str | None) -> str:
    try:
        statements = sqlglot.transpile(sql, read=dialect, write=dialect)
    except ParseError:
        statements = []
    if len(statements) == 1:
        return statements[0]
    return _WHITESPACE.sub(" ", sql).strip()


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return tuple(sorted((str(key), _freeze(item)) for key, item in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return tuple(sorted((_freeze(item) for item in value), key=repr))
    hash(value)
    return value


class _Slot:
    __slots__ = ("lock", "value", "filled")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.value: Any = None
        self.filled = False


class QueryCache:
    """Maps cache keys to handles, constructing each key at most once.

    The registry lock is only held to find or create a key's slot; the
    construction itself runs under that slot's lock, so unrelated keys never
    wait on each other.
    """

    def __init__(self) -> None:
        self._slots: dict[CacheKey, _Slot] = {}
        self._lock = threading.Lock()

    def get_or_create(self, key: CacheKey, factory: Callable[[], T]) -> T:
        slot = self._slots.get(key)
        if slot is not None and slot.filled:
            return slot.value
        with self._lock:
            slot = self._slots.setdefault(key, _Slot())
        with slot.lock:
            if slot.filled:
                return slot.value
            LOG.debug("Constructing query for cache", extra={"cache_key": key.sql})
            value = factory()
            slot.value = value
            slot.filled = True
            return value

    def get(self, key: CacheKey) -> Any | None:
        slot = self._slots.get(key)
        if slot is None or not slot.filled:
            return None
        return slot.value

    def keys(self) -> list[CacheKey]:
        return [key for key, slot in tuple(self._slots.items()) if slot.filled]

    def clear(self) -> None:
        """Drop every entry; eviction is always the caller's decision."""

        with self._lock:
            self._slots.clear()

    def __contains__(self, key: object) -> bool:
        slot = self._slots.get(key)  # type: ignore[arg-type]
        return slot is not None and slot.filled

    def __len__(self) -> int:
        return len(self.keys())

    def __iter__(self) -> Iterator[CacheKey]:
        return iter(self.keys())


__all__ = ["QueryCache", "make_cache_key"]
