"""Built-in canned query handle."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlglot import parse
from sqlglot.errors import ParseError

LOG = logging.getLogger(__name__)


class QueryExecutionError(RuntimeError):
    """Raised when the connection fails to run a canned query."""


class CannedQuery:
    """A reusable statement bound to one connection.

    The SQL is parsed once with sqlglot when the handle is built so malformed
    text is rejected before it ever reaches the database. ``verbosity`` and
    ``logger`` may be reassigned at any time; the next ``execute`` uses them.
    """

    def __init__(self, connection: Any, sql: str, options: Mapping[str, Any] | None = None) -> None:
        statement = sql.strip()
        if not statement:
            raise ValueError("Provide SQL for the canned query.")
        self.options: dict[str, Any] = dict(options or {})
        self.dialect: str | None = self.options.get("dialect")
        try:
            expressions = [expr for expr in parse(statement, read=self.dialect) if expr is not None]
        except ParseError as exc:
            raise ValueError(f"Could not parse SQL: {exc}") from exc
        if len(expressions) != 1:
            raise ValueError(f"Expected one statement, found {len(expressions)}.")
        self.connection = connection
        self.sql = statement
        self.verbosity: int = self.options.get("verbosity", 0)
        self.logger: logging.Logger = self.options.get("logger", LOG)

    def execute(self, *params: Any) -> Any:
        if self.verbosity >= 1:
            self.logger.info("Executing canned query: %s", self.sql)
        if self.verbosity >= 2:
            self.logger.debug("Query params: %r", params)
        try:
            return self.connection.execute(self.sql, params)
        except Exception as exc:
            raise QueryExecutionError(str(exc)) from exc

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.sql!r})"


__all__ = ["CannedQuery", "QueryExecutionError"]
