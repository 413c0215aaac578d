from unittest.mock import MagicMock

from drive_tokens.application.token_service import TokenService
from drive_tokens.domain.entities import TokenGrant, TokenPair
from drive_tokens.infrastructure.connection_manager import ConnectionManager
from drive_tokens.infrastructure.di_container import build_container
from drive_tokens.infrastructure.schema import SchemaInitializer
from drive_tokens.infrastructure.token_storage import PostgresTokenStore


def test_default_container_shares_manager_and_schema():
    container = build_container()

    first = container.resolve(PostgresTokenStore)
    second = container.resolve(PostgresTokenStore)

    assert first is not second
    assert first._manager is container.resolve(ConnectionManager)
    assert first._schema is second._schema
    assert isinstance(container.resolve(SchemaInitializer), SchemaInitializer)


def test_building_container_does_not_open_a_pool():
    container = build_container()

    assert container.resolve(ConnectionManager).closed


def test_overrides_replace_registered_services():
    fake_store = MagicMock()
    container = build_container(overrides={PostgresTokenStore: fake_store})

    assert container.resolve(PostgresTokenStore) is fake_store
    service = container.resolve(TokenService)
    assert isinstance(service, TokenService)
    assert service._repository is fake_store


def test_manager_override_reaches_schema_initializer():
    fake = MagicMock(spec=ConnectionManager)
    container = build_container(overrides={ConnectionManager: fake})

    store = container.resolve(PostgresTokenStore)

    assert store._manager is fake
    assert store._schema._manager is fake
    assert container.resolve(SchemaInitializer) is store._schema


def test_schema_initializer_is_built_once_per_container():
    first = build_container()
    second = build_container()

    assert first.resolve(SchemaInitializer) is first.resolve(SchemaInitializer)
    assert first.resolve(SchemaInitializer) is not second.resolve(SchemaInitializer)


def test_container_service_refreshes_through_supplied_refresher():
    fake_store = MagicMock()
    fake_store.get.return_value = TokenPair(access_token=None, refresh_token="ref-1")
    refresher = MagicMock(return_value=TokenGrant("acc-2", 3600, "ref-2"))
    container = build_container(overrides={PostgresTokenStore: fake_store}, refresher=refresher)

    service = container.resolve(TokenService)

    assert service.access_token() == "acc-2"
    refresher.assert_called_once_with("ref-1")
    fake_store.store.assert_called_once_with("acc-2", 3600, "ref-2")
