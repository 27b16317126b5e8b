"""Pytest configuration and fixtures for Social Tracker Core tests.

This module provides fixtures for:
- Database: SQLite in-memory (foreign keys on, BigInteger compiled as INTEGER)
- HTTP client: AsyncClient for FastAPI testing
- Mocks: search provider, email sender, pipeline lock
"""

from collections.abc import AsyncGenerator, Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from tracker_core.config import Settings
from tracker_core.domain.models import Base
from tracker_core.infrastructure.email import SendResult
from tracker_core.observability import MetricsCollector
from tests.factories import FakeLock


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        mysql_url="sqlite+pysqlite:///:memory:",
        celery_broker_url="memory://",
        celery_result_backend="cache+memory://",
        redis_url="redis://localhost:6379/15",
        base_url="https://tracker.test",
        search_api_base_url="https://search.test",
        secret_key="test-secret-key-do-not-use-in-production",
        cron_secret=None,
        smtp_host=None,
    )


# -----------------------------------------------------------------------------
# Synchronous Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    from sqlalchemy.dialects import sqlite

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite (tag and tenant cascades)
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # SQLite only autoincrements INTEGER PRIMARY KEY
    original_visit = sqlite.dialect.type_compiler_cls.visit_BIGINT
    sqlite.dialect.type_compiler_cls.visit_BIGINT = lambda self, type_, **kw: "INTEGER"

    Base.metadata.create_all(bind=engine)

    sqlite.dialect.type_compiler_cls.visit_BIGINT = original_visit

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sync_session_factory(sync_engine) -> sessionmaker[Session]:
    """Create a synchronous session factory."""
    return sessionmaker(
        bind=sync_engine,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
def db_session(sync_session_factory) -> Generator[Session, None, None]:
    """Create a synchronous database session for testing."""
    session = sync_session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# -----------------------------------------------------------------------------
# FastAPI Test Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_app(test_settings, sync_engine, sync_session_factory) -> FastAPI:
    """Create a FastAPI test application with test settings and DB override."""
    from tracker_core.api.deps import get_app_settings, get_db
    from tracker_core.main import app

    app.state.settings = test_settings

    def override_get_db():
        session = sync_session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_app_settings] = lambda: test_settings

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing FastAPI endpoints.

    Note: The db_session fixture is included to ensure the test database
    is set up before the client is created.
    """
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


# -----------------------------------------------------------------------------
# Mock Fixtures for Collaborators
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_provider() -> MagicMock:
    """Search provider returning no posts and no replies."""
    provider = MagicMock()
    provider.provider_id = "arctic_shift"
    provider.fetch_items = AsyncMock(return_value=[])
    provider.fetch_replies = AsyncMock(return_value=[])
    provider.verify_source_exists = AsyncMock(return_value=True)
    return provider


@pytest.fixture
def mock_sender() -> MagicMock:
    """Email sender that always succeeds."""
    sender = MagicMock()
    sender.send.return_value = SendResult(success=True)
    return sender


@pytest.fixture
def fake_lock() -> FakeLock:
    return FakeLock()


@pytest.fixture
def metrics() -> MetricsCollector:
    """A private metrics collector per test."""
    return MetricsCollector()


# -----------------------------------------------------------------------------
# Cleanup Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    from tracker_core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
