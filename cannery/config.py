"""Setup options for a cannery and TOML loading helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Sequence

import tomllib

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import ConfigurationError
from .models import CacheScope
from .resolver import TypeRef


class CanneryOptions(BaseModel):
    """Options recognised when a cannery is configured."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid", frozen=True)

    query_handle_type: TypeRef | None = None
    query_chain: Sequence[TypeRef] | None = None
    connection_handle: Any | None = None
    driver_type: TypeRef | None = None
    driver_params: Mapping[str, Any] | None = None
    cache_scope: CacheScope = CacheScope.INSTANCE
    normalize_keys: bool = False
    dialect: str | None = None
    defaults: Mapping[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _one_connection_mode(self) -> CanneryOptions:
        driver_mode = self.driver_type is not None or self.driver_params is not None
        if self.connection_handle is not None and driver_mode:
            raise ValueError("connection_handle and driver settings are mutually exclusive")
        if self.connection_handle is None and not driver_mode:
            raise ValueError("either connection_handle or driver settings are required")
        return self


def load_options(path: str | Path, **overrides: Any) -> CanneryOptions:
    """Read the ``[cannery]`` table of a TOML file.

    The table is validated as a whole: unknown keys and mistyped values raise
    ConfigurationError instead of being skipped.

    Keyword overrides (for instance a live ``connection_handle``) are applied
    on top of the file before validation.
    """

    try:
        with Path(path).open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file '{path}' not found.") from exc
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigurationError(f"Config file '{path}' could not be read: {exc}") from exc

    data = _parse_section(raw.get("cannery"))
    data.update(overrides)
    return build_options(**data)


def build_options(**values: Any) -> CanneryOptions:
    """Validate raw option values, reporting problems as ConfigurationError."""

    try:
        return CanneryOptions(**values)
    except ValueError as exc:
        # pydantic.ValidationError is a ValueError subclass
        raise ConfigurationError(f"Invalid cannery options: {exc}") from exc


def _parse_section(section: object) -> dict[str, Any]:
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigurationError("The [cannery] entry must be a table.")
    data = dict(section)
    chain = data.get("query_chain")
    if isinstance(chain, list):
        data["query_chain"] = tuple(chain)
    return data


__all__ = ["CanneryOptions", "build_options", "load_options"]
