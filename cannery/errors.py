"""Error taxonomy raised while configuring and using a cannery."""

from __future__ import annotations


class CanneryError(RuntimeError):
    """Base error for cannery failures."""


class ConfigurationError(CanneryError):
    """Raised when setup options are invalid, ambiguous, or unresolvable."""


class ClassLoadError(ConfigurationError):
    """Raised when an explicitly named type cannot be loaded or validated."""

    def __init__(self, target: object, reason: str) -> None:
        super().__init__(f"Could not load '{target}': {reason}")
        self.target = target
        self.reason = reason


class DriverConnectionError(CanneryError):
    """Raised when a connection driver fails to produce a connection."""

    def __init__(self, driver: object, message: str) -> None:
        super().__init__(message)
        self.driver = driver


class ConstructionError(CanneryError):
    """Raised when the query-handle type rejects a query."""

    def __init__(self, sql: str, message: str) -> None:
        super().__init__(message)
        self.sql = sql


__all__ = [
    "CanneryError",
    "ClassLoadError",
    "ConfigurationError",
    "ConstructionError",
    "DriverConnectionError",
]
