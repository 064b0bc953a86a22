"""Tests for the cannery builder and query factory."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import pytest

from cannery import Cannery, CannedQuery, CanneryOptions, QueryFactory, configure
from cannery.connections import SqliteConnection
from cannery.errors import ClassLoadError, ConfigurationError, ConstructionError
from cannery.models import CacheScope

MISSING = "cannery_glycosylated.query:GlycosylatedQuery"


class _RecordingQuery:
    built: list["_RecordingQuery"] = []

    def __init__(self, connection: Any, sql: str, options: dict[str, Any]) -> None:
        if "broken" in sql:
            raise ValueError("rejected by database")
        self.connection = connection
        self.sql = sql
        self.options = options
        self.verbosity = options.get("verbosity")
        self.logger = options.get("logger")
        _RecordingQuery.built.append(self)


class _SlowQuery(_RecordingQuery):
    def __init__(self, connection: Any, sql: str, options: dict[str, Any]) -> None:
        time.sleep(0.05)
        super().__init__(connection, sql, options)


class _Owner:
    def __init__(self, verbosity: int | None = None) -> None:
        self.verbosity = verbosity


@pytest.fixture(autouse=True)
def reset_recorded() -> None:
    _RecordingQuery.built = []


def _factory(owner: object | None = None, **values: Any) -> QueryFactory:
    values.setdefault("query_handle_type", _RecordingQuery)
    values.setdefault("connection_handle", object())
    return Cannery(**values).bind(owner)


def test_sqlite_scenario_falls_back_to_plain_query() -> None:
    cannery = Cannery(
        driver_params={"type": "sqlite", "domain": "test"},
        query_chain=[MISSING, "cannery.query:CannedQuery"],
    )
    factory = cannery.bind()

    try:
        first = factory.get_query("SELECT 1")
        second = factory.get_query("SELECT 1")
        assert first is second
        assert type(first) is CannedQuery
        assert cannery.configuration.fallback_chain_used == (MISSING, "cannery.query:CannedQuery")
        assert isinstance(factory.connection, SqliteConnection)
        assert first.execute() == [(1,)]
    finally:
        factory.connection.close()


def test_default_chain_resolves_builtin_query() -> None:
    factory = Cannery(connection_handle=object()).bind()

    assert factory.query_type is CannedQuery


def test_broken_explicit_type_aborts_setup() -> None:
    with pytest.raises(ClassLoadError):
        Cannery(query_handle_type=MISSING, connection_handle=object())


@pytest.mark.parametrize(
    "values",
    [
        {},
        {"connection_handle": object(), "driver_params": {"type": "sqlite"}},
        {"connection_handle": object(), "cache_scope": "global"},
        {"connection_handle": object(), "unknown": True},
    ],
)
def test_invalid_options_raise_configuration_error(values: dict[str, Any]) -> None:
    with pytest.raises(ConfigurationError):
        Cannery(**values)


def test_build_query_always_constructs() -> None:
    factory = _factory()

    first = factory.build_query("SELECT 1")
    second = factory.build_query("SELECT 1")

    assert first is not second
    assert len(factory.cache) == 0


def test_get_query_is_idempotent_per_identity() -> None:
    factory = _factory()

    first = factory.get_query("SELECT 1", {"fetch_size": 10})
    second = factory.get_query("SELECT 1", fetch_size=10)
    other = factory.get_query("SELECT 1", {"fetch_size": 20})

    assert first is second
    assert other is not first
    assert len(_RecordingQuery.built) == 2


def test_handles_receive_connection_sql_and_settings() -> None:
    connection = object()
    factory = _factory(connection_handle=connection, dialect="sqlite", defaults={"fetch_size": 50})

    query = factory.build_query("SELECT 1", verbosity=1)

    assert query.connection is connection
    assert query.sql == "SELECT 1"
    assert query.options == {"dialect": "sqlite", "fetch_size": 50, "verbosity": 1}


def test_owner_verbosity_is_read_live() -> None:
    owner = _Owner(verbosity=2)
    factory = _factory(owner)

    loud = factory.build_query("SELECT 1")
    owner.verbosity = 0
    quiet = factory.build_query("SELECT 1")

    assert loud.verbosity == 2
    assert quiet.verbosity == 0


def test_explicit_override_beats_owner_and_defaults() -> None:
    factory = _factory(_Owner(verbosity=2), defaults={"verbosity": 1})

    assert factory.build_query("SELECT 1", verbosity=0).verbosity == 0
    assert factory.build_query("SELECT 1").verbosity == 2
    assert _factory(defaults={"verbosity": 1}).build_query("SELECT 1").verbosity == 1


def test_owner_logger_is_propagated() -> None:
    logger = logging.getLogger("cannery.tests.owner")

    class _LoggedOwner:
        def __init__(self) -> None:
            self.logger = logger

    query = _factory(_LoggedOwner()).build_query("SELECT 1")

    assert query.logger is logger
    assert "verbosity" not in query.options


def test_cached_handle_keeps_construction_settings() -> None:
    factory = _factory()

    first = factory.get_query("SELECT 1", verbosity=2)
    second = factory.get_query("SELECT 1")

    assert first is second
    assert second.verbosity is None
    assert second.verbosity == factory.build_query("SELECT 1").verbosity
    assert "verbosity" not in second.options


def test_shared_cache_does_not_leak_owner_verbosity() -> None:
    cannery = Cannery(
        query_handle_type=_RecordingQuery,
        connection_handle=object(),
        cache_scope="shared",
        defaults={"verbosity": 1},
    )
    loud = cannery.bind(_Owner(verbosity=2))
    plain = cannery.bind(object())

    first = loud.get_query("SELECT 1")
    second = plain.get_query("SELECT 1")

    assert first is second
    assert second.verbosity == 1
    assert plain.build_query("SELECT 1").verbosity == 1
    assert loud.build_query("SELECT 1").verbosity == 2


def test_descriptor_rejects_slotted_consumers() -> None:
    class _Slotted:
        __slots__ = ("verbosity",)
        queries = Cannery(query_handle_type=_RecordingQuery, connection_handle=object())

    with pytest.raises(TypeError, match="__dict__"):
        _Slotted().queries


def test_construction_failure_raises_and_leaves_cache_clean() -> None:
    factory = _factory()

    with pytest.raises(ConstructionError) as info:
        factory.get_query("SELECT broken")
    with pytest.raises(ConstructionError):
        factory.build_query("SELECT broken")

    assert info.value.sql == "SELECT broken"
    assert isinstance(info.value.__cause__, ValueError)
    assert len(factory.cache) == 0


def test_builtin_query_rejects_empty_sql() -> None:
    factory = Cannery(connection_handle=object(), query_handle_type=CannedQuery).bind()

    with pytest.raises(ConstructionError):
        factory.get_query("  ")


def test_concurrent_get_query_constructs_once() -> None:
    factory = _factory(query_handle_type=_SlowQuery)
    barrier = threading.Barrier(6)

    def _request(_: int) -> Any:
        barrier.wait()
        return factory.get_query("SELECT 1")

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(_request, range(6)))

    assert len(_RecordingQuery.built) == 1
    assert all(result is results[0] for result in results)


def test_instance_scope_gives_each_binding_its_own_cache() -> None:
    cannery = Cannery(query_handle_type=_RecordingQuery, connection_handle=object())

    first = cannery.bind()
    second = cannery.bind()

    assert first.cache is not second.cache
    assert first.get_query("SELECT 1") is not second.get_query("SELECT 1")


def test_shared_scope_injects_one_cache() -> None:
    cannery = Cannery(query_handle_type=_RecordingQuery, connection_handle=object(), cache_scope="shared")

    first = cannery.bind(_Owner(1))
    second = cannery.bind(_Owner(2))

    assert cannery.configuration.cache_scope is CacheScope.SHARED
    assert first.cache is second.cache
    assert first.get_query("SELECT 1") is second.get_query("SELECT 1")


def test_descriptor_binds_per_consumer_instance() -> None:
    class _Reports:
        queries = Cannery(query_handle_type=_RecordingQuery, connection_handle=object())

        def __init__(self, verbosity: int) -> None:
            self.verbosity = verbosity

    loud, quiet = _Reports(2), _Reports(0)

    assert isinstance(_Reports.queries, Cannery)
    assert loud.queries is loud.queries
    assert loud.queries is not quiet.queries
    assert loud.queries.owner is loud
    assert loud.queries.build_query("SELECT 1").verbosity == 2
    assert quiet.queries.build_query("SELECT 1").verbosity == 0


def test_options_object_and_overrides_are_merged() -> None:
    options = CanneryOptions(query_handle_type=_RecordingQuery, connection_handle=object())

    cannery = Cannery(options, normalize_keys=True)

    assert cannery.options.normalize_keys is True
    assert cannery.configuration.query_handle_type is _RecordingQuery


def test_normalized_keys_share_handles() -> None:
    factory = _factory(normalize_keys=True)

    assert factory.get_query("select a from t") is factory.get_query("SELECT a\n  FROM t")


def test_configure_is_fixed_after_resolution() -> None:
    configuration = configure(CanneryOptions(query_handle_type=_RecordingQuery, connection_handle="conn"))
    factory = QueryFactory(configuration)

    factory.build_query("SELECT 1")

    assert factory.configuration is configuration
    assert factory.query_type is _RecordingQuery
    assert factory.connection == "conn"
