"""Cannery builder and the query factory it hands to consumers."""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping

from .cache import QueryCache, make_cache_key
from .capabilities import current_settings, merge_settings
from .config import CanneryOptions, build_options
from .connections import ConnectionProvider
from .errors import ConstructionError
from .models import AMBIENT_OPTIONS, CacheScope, CanneryConfiguration, QuerySettings
from .resolver import ClassResolver, as_chain

LOG = logging.getLogger(__name__)


def configure(
    options: CanneryOptions,
    *,
    resolver: ClassResolver | None = None,
    provider: ConnectionProvider | None = None,
) -> CanneryConfiguration:
    """Resolve the query type and connection once; errors abort setup."""

    resolver = resolver or ClassResolver()
    provider = provider or ConnectionProvider()
    chain = () if options.query_handle_type is not None else as_chain(options.query_chain)
    resolution = resolver.resolve(options.query_handle_type, chain)
    connection = provider.resolve(
        options.connection_handle,
        options.driver_type,
        options.driver_params,
    )
    return CanneryConfiguration(
        query_handle_type=resolution.query_type,
        connection=connection,
        fallback_chain_used=resolution.tried,
        cache_scope=options.cache_scope,
        normalize_keys=options.normalize_keys,
        dialect=options.dialect,
        defaults=dict(options.defaults),
    )


class QueryFactory:
    """Builds canned queries for one owner from a fixed configuration."""

    def __init__(
        self,
        configuration: CanneryConfiguration,
        *,
        owner: object | None = None,
        cache: QueryCache | None = None,
    ) -> None:
        self._configuration = configuration
        self._owner = owner
        self._cache = cache if cache is not None else QueryCache()

    @property
    def configuration(self) -> CanneryConfiguration:
        return self._configuration

    @property
    def connection(self) -> Any:
        return self._configuration.connection

    @property
    def query_type(self) -> type:
        return self._configuration.query_handle_type

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @property
    def owner(self) -> object | None:
        return self._owner

    def build_query(self, sql: str, options: Mapping[str, Any] | None = None, **overrides: Any) -> Any:
        """Construct a new handle; never touches the cache."""

        settings = self._settings(options, overrides)
        return self._construct(sql, settings)

    def get_query(self, sql: str, options: Mapping[str, Any] | None = None, **overrides: Any) -> Any:
        """Return the cached handle for this query, constructing it on first use.

        Cached handles are shared between callers and are never modified after
        construction, so their verbosity and logger come from the configured
        defaults only. Use ``build_query`` for a handle that follows the
        owner's live settings or per-call ambient overrides.
        """

        settings = self._settings(options, overrides)
        key = make_cache_key(
            sql,
            settings,
            normalize=self._configuration.normalize_keys,
            dialect=self._configuration.dialect,
        )
        defaults = self._configuration.defaults
        shared = {name: value for name, value in settings.items() if name not in AMBIENT_OPTIONS}
        shared.update((name, defaults[name]) for name in AMBIENT_OPTIONS if defaults.get(name) is not None)
        return self._cache.get_or_create(key, lambda: self._construct(sql, shared))

    def _settings(self, options: Mapping[str, Any] | None, overrides: Mapping[str, Any]) -> QuerySettings:
        base: dict[str, Any] = {}
        if self._configuration.dialect is not None:
            base["dialect"] = self._configuration.dialect
        return merge_settings(
            base,
            self._configuration.defaults,
            current_settings(self._owner),
            options,
            overrides,
        )

    def _construct(self, sql: str, settings: QuerySettings) -> Any:
        query_type = self._configuration.query_handle_type
        try:
            return query_type(self._configuration.connection, sql, dict(settings))
        except Exception as exc:
            LOG.debug("Query construction failed", extra={"query_type": query_type.__name__})
            raise ConstructionError(sql, f"{query_type.__name__} rejected query: {exc}") from exc


class Cannery:
    """Configured source of query factories.

    Declared as a class attribute it hands each consumer instance its own
    factory, bound so the instance's live verbosity and logger flow into every
    query it builds::

        class Reports:
            verbosity = 1
            queries = Cannery(driver_params={"type": "sqlite"})

        Reports().queries.build_query("SELECT 1")

    With ``cache_scope="shared"`` every bound factory uses one cache.
    """

    def __init__(self, options: CanneryOptions | None = None, **values: Any) -> None:
        if options is None:
            options = build_options(**values)
        elif values:
            current = {name: getattr(options, name) for name in options.model_fields_set}
            options = build_options(**{**current, **values})
        self._options = options
        self._configuration = configure(options)
        self._shared_cache = QueryCache() if options.cache_scope is CacheScope.SHARED else None
        self._bind_lock = threading.Lock()
        self._name: str | None = None

    @property
    def configuration(self) -> CanneryConfiguration:
        return self._configuration

    @property
    def options(self) -> CanneryOptions:
        return self._options

    def bind(self, owner: object | None = None) -> QueryFactory:
        """Return a new factory reading live settings from ``owner``."""

        cache = self._shared_cache if self._shared_cache is not None else QueryCache()
        return QueryFactory(self._configuration, owner=owner, cache=cache)

    def __set_name__(self, owner_cls: type, name: str) -> None:
        self._name = name

    def __get__(self, instance: object | None, owner_cls: type | None = None) -> Any:
        if instance is None:
            return self
        if self._name is None:
            raise TypeError("Cannery must be assigned as a class attribute to bind instances.")
        # stored in the instance dict, which shadows this non-data descriptor afterwards
        try:
            namespace = instance.__dict__
        except AttributeError:
            raise TypeError(
                f"Cannot bind '{self._name}' on {type(instance).__name__}: instances need a __dict__ "
                "(add '__dict__' to __slots__ or call Cannery.bind())."
            ) from None
        with self._bind_lock:
            factory = namespace.get(self._name)
            if factory is None:
                factory = self.bind(instance)
                namespace[self._name] = factory
        return factory


__all__ = ["Cannery", "QueryFactory", "configure"]
