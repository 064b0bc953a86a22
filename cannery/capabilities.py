"""Live detection of an owner's verbosity and logger settings."""

from __future__ import annotations

from typing import Any, Mapping

from .models import QuerySettings

_CAPABILITIES = ("verbosity", "logger")


def current_settings(owner: object | None) -> QuerySettings:
    """Read the owner's settings as they are right now.

    Each capability is probed with ``getattr`` on every call, so properties and
    ``__getattr__`` hooks are honoured. Missing capabilities are left out of the
    result rather than defaulted, so a verbosity of ``0`` always means the
    owner asked for silence.
    """

    settings: QuerySettings = {}
    if owner is None:
        return settings
    for name in _CAPABILITIES:
        value = getattr(owner, name, None)
        if value is not None:
            settings[name] = value
    return settings


def merge_settings(*layers: Mapping[str, Any] | None) -> QuerySettings:
    """Merge setting layers, later layers winning; ``None`` values never override."""

    merged: QuerySettings = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            if value is not None:
                merged[key] = value
    return merged


__all__ = ["current_settings", "merge_settings"]
