"""Dependency injection container for the token store services."""
from __future__ import annotations

from functools import lru_cache
import inspect
from typing import Any, Callable, Dict, Optional, Set, Type

from drive_tokens.application.token_service import Refresher, TokenService
from drive_tokens.config import settings as app_settings
from drive_tokens.infrastructure.connection_manager import ConnectionManager
from drive_tokens.infrastructure.schema import SchemaInitializer
from drive_tokens.infrastructure.token_storage import PostgresTokenStore

ServiceType = Type[Any]
Factory = Callable[["Container"], Any]


class Container:
    """Minimal service container supporting factories and instances."""

    def __init__(self) -> None:
        self._factories: Dict[ServiceType, Factory] = {}
        self._instances: Dict[ServiceType, Any] = {}
        self._singletons: Set[ServiceType] = set()

    def register(
        self,
        service: ServiceType,
        *,
        factory: Factory | None = None,
        instance: Any | None = None,
        singleton: bool = False,
    ) -> None:
        """Register a provider. A ``singleton`` factory runs once per container."""
        if instance is not None:
            self._instances[service] = instance
            self._factories.pop(service, None)
            return
        if factory is None:
            raise ValueError("Either factory or instance must be provided.")
        self._factories[service] = factory
        self._instances.pop(service, None)
        if singleton:
            self._singletons.add(service)
        else:
            self._singletons.discard(service)

    def resolve(self, service: ServiceType) -> Any:
        if service in self._instances:
            return self._instances[service]
        try:
            factory = self._factories[service]
        except KeyError as exc:
            raise KeyError(f"No provider registered for {service!r}") from exc
        value = factory(self)
        if service in self._singletons:
            self._instances[service] = value
        return value


def _register_defaults(container: Container, refresher: Optional[Refresher] = None) -> None:
    """Register the production service graph with the container.

    The connection manager and schema initializer are built once per container
    on first resolve, so an overridden manager also backs the schema check.
    Neither touches the database until first use.
    """
    container.register(
        ConnectionManager,
        factory=lambda _c: ConnectionManager.from_settings(app_settings),
        singleton=True,
    )
    container.register(
        SchemaInitializer,
        factory=lambda c: SchemaInitializer(c.resolve(ConnectionManager), app_settings.TOKEN_TABLE),
        singleton=True,
    )
    container.register(
        PostgresTokenStore,
        factory=lambda c: PostgresTokenStore(
            c.resolve(ConnectionManager),
            c.resolve(SchemaInitializer),
            prefix=app_settings.KV_PREFIX,
            table=app_settings.TOKEN_TABLE,
            purge_expired_on_read=app_settings.TOKEN_PURGE_EXPIRED_ON_READ,
        ),
    )
    container.register(
        TokenService,
        factory=lambda c: TokenService(c.resolve(PostgresTokenStore), refresher=refresher),
    )


def _wrap_override(provider: Any) -> Factory:
    if inspect.isfunction(provider) or inspect.ismethod(provider):
        signature = inspect.signature(provider)
        if len(signature.parameters) == 0:
            return lambda _c, fn=provider: fn()
        return lambda c, fn=provider: fn(c)
    if isinstance(provider, type):
        return lambda _c, cls=provider: cls()
    return lambda _c, value=provider: value


def build_container(
    overrides: Dict[ServiceType, Any] | None = None,
    *,
    refresher: Optional[Refresher] = None,
) -> Container:
    """Create a new container with optional dependency overrides.

    ``refresher`` is handed to the :class:`TokenService` the container builds,
    so resolved services can renew an expired access token.
    """
    container = Container()
    _register_defaults(container, refresher)

    if overrides:
        for service, provider in overrides.items():
            factory = _wrap_override(provider)
            if isinstance(provider, (type,)) or inspect.isfunction(provider) or inspect.ismethod(provider):
                container.register(service, factory=factory)
            else:
                container.register(service, instance=factory(container))

    return container


@lru_cache(maxsize=1)
def get_container() -> Container:
    """Return a cached container instance for application use."""
    return build_container()


__all__ = ["Container", "build_container", "get_container"]
