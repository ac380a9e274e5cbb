"""
Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database; the remote server and
the error reporter are replaced with mocks.
"""

from typing import Dict, Generator
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from collectlogs.config import DatabaseSettings
from collectlogs.core.client import ConvertMessageClient
from collectlogs.core.configuration import DatabaseConfiguration
from collectlogs.core.database import create_db_engine, create_session_factory, init_database
from collectlogs.core.metrics import MetricsCollector
from collectlogs.core.repository import ConvertMessageRepository
from collectlogs.core.settings_store import SettingsStore
from collectlogs.core.transformer import MessageTransformer

TEST_ADMIN_TOKEN = "test_admin_token_123456789abc"


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with both tables created."""
    engine = create_db_engine(DatabaseSettings(url="sqlite:///:memory:"))
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def configuration(session_factory: sessionmaker[Session]) -> DatabaseConfiguration:
    return DatabaseConfiguration(session_factory)


@pytest.fixture
def settings_store(configuration: DatabaseConfiguration) -> SettingsStore:
    return SettingsStore(configuration)


@pytest.fixture
def repository(session_factory: sessionmaker[Session]) -> ConvertMessageRepository:
    return ConvertMessageRepository(session_factory)


@pytest.fixture
def remote_client() -> Mock:
    """Stand-in for the remote server; tests set fetch_rules as needed."""
    client = Mock(spec=ConvertMessageClient)
    client.fetch_rules = AsyncMock(return_value=[])
    return client


@pytest.fixture
def error_reporter() -> Mock:
    return Mock()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def transformer(
    settings_store: SettingsStore,
    repository: ConvertMessageRepository,
    remote_client: Mock,
    error_reporter: Mock,
    metrics: MetricsCollector,
) -> MessageTransformer:
    return MessageTransformer(
        settings_store=settings_store,
        repository=repository,
        client=remote_client,
        error_reporter=error_reporter,
        metrics=metrics,
    )


@pytest.fixture
def test_client(monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    """FastAPI test client backed by an in-memory database."""
    monkeypatch.setenv("COLLECTLOGS_DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("COLLECTLOGS_SECURITY_ADMIN_TOKEN", TEST_ADMIN_TOKEN)
    monkeypatch.setenv("COLLECTLOGS_REMOTE_API_BASE_URL", "http://remote.test/")

    from collectlogs.config import reload_settings
    from collectlogs.core import (
        client as client_module,
        configuration as configuration_module,
        database as database_module,
        error_reporting as error_reporting_module,
        settings_store as settings_store_module,
        transformer as transformer_module,
    )

    def reset_globals() -> None:
        database_module.get_engine.cache_clear()
        database_module.get_session_factory.cache_clear()
        configuration_module._configuration = None
        configuration_module._tracking_id_provider = None
        settings_store_module._settings_store = None
        client_module._client = None
        error_reporting_module._error_reporter = None
        transformer_module._transformer = None

    reload_settings()
    reset_globals()

    from collectlogs.main import app

    with TestClient(app) as client:
        # No test talks to a real server
        fake_remote = Mock(spec=ConvertMessageClient)
        fake_remote.fetch_rules = AsyncMock(return_value=[])
        app.state.transformer.client = fake_remote
        app.state.transformer.error_reporter = Mock()
        yield client

    reset_globals()
    monkeypatch.undo()
    reload_settings()


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {TEST_ADMIN_TOKEN}"}
