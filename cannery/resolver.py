"""Resolve the concrete query-handle type a cannery instantiates."""

from __future__ import annotations

import importlib
import importlib.metadata as metadata
import inspect
import logging
from dataclasses import dataclass
from typing import Iterable, Sequence, Union

from .errors import ClassLoadError, ConfigurationError

LOG = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "cannery.query_types"
BUILTIN_QUERY_TYPE = "cannery.query:CannedQuery"

TypeRef = Union[str, type]


@dataclass(frozen=True, slots=True)
class Resolution:
    """Outcome of a resolve call."""

    query_type: type
    tried: tuple[str, ...]


def describe(ref: TypeRef) -> str:
    """Return a printable name for a type reference."""

    if isinstance(ref, str):
        return ref
    return f"{ref.__module__}:{ref.__qualname__}"


def load_type(ref: TypeRef) -> type:
    """Import and validate a type reference; raise ClassLoadError on failure."""

    if isinstance(ref, str):
        obj = _import_ref(ref)
    else:
        obj = ref
    if not inspect.isclass(obj):
        raise ClassLoadError(describe(ref), f"{obj!r} is not a class")
    available = getattr(obj, "is_available", None)
    if callable(available) and not available():
        raise ClassLoadError(describe(ref), "reports itself unavailable")
    return obj


def _import_ref(ref: str) -> object:
    if ":" in ref:
        module_name, _, qualname = ref.partition(":")
    else:
        module_name, _, qualname = ref.rpartition(".")
    if not module_name or not qualname:
        raise ClassLoadError(ref, "expected 'module:Name'")
    try:
        obj: object = importlib.import_module(module_name)
    except ImportError as exc:
        raise ClassLoadError(ref, str(exc)) from exc
    for part in qualname.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as exc:
            raise ClassLoadError(ref, f"module '{module_name}' has no attribute '{qualname}'") from exc
    return obj


class ClassResolver:
    """Picks the query-handle type from an explicit choice or a fallback chain."""

    def resolve(self, explicit: TypeRef | None = None, chain: Sequence[TypeRef] = ()) -> Resolution:
        if explicit is not None:
            query_type = load_type(explicit)
            LOG.info("Using explicit query type", extra={"query_type": describe(explicit)})
            return Resolution(query_type=query_type, tried=(describe(explicit),))

        tried: list[str] = []
        failures: list[str] = []
        for candidate in chain:
            name = describe(candidate)
            tried.append(name)
            try:
                query_type = load_type(candidate)
            except ClassLoadError as exc:
                LOG.debug("Query type candidate failed", extra={"query_type": name, "reason": exc.reason})
                failures.append(f"{name} ({exc.reason})")
                continue
            LOG.info("Resolved query type from fallback chain", extra={"query_type": name})
            return Resolution(query_type=query_type, tried=tuple(tried))

        if not tried:
            raise ConfigurationError("No query type given and the fallback chain is empty.")
        raise ConfigurationError("No loadable query type; tried: " + ", ".join(failures))


def default_query_chain(group: str = ENTRY_POINT_GROUP) -> tuple[str, ...]:
    """Fallback chain: installed entry points by name, then the built-in handle."""

    eps = metadata.entry_points().select(group=group)
    chain: list[str] = [entry_point.value for entry_point in sorted(eps, key=lambda ep: ep.name)]
    if BUILTIN_QUERY_TYPE not in chain:
        chain.append(BUILTIN_QUERY_TYPE)
    return tuple(chain)


def as_chain(refs: Iterable[TypeRef] | None) -> tuple[TypeRef, ...]:
    if refs is None:
        return default_query_chain()
    return tuple(refs)


__all__ = [
    "BUILTIN_QUERY_TYPE",
    "ClassResolver",
    "ENTRY_POINT_GROUP",
    "Resolution",
    "TypeRef",
    "as_chain",
    "default_query_chain",
    "describe",
    "load_type",
]
