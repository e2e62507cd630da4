"""Pytest configuration and fixtures."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.deps import get_dispatcher, get_registry
from database import Base, get_db
from main import app
from services.balance_ledger import BalanceLedger
from services.balance_snapshot_service import BalanceSnapshotService
from services.event_dispatcher import EventDispatcher
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import account, other_user, user  # noqa: F401
from tests.fixtures.mocks import MockWebhookProvider, make_registry

FIXED_NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="clock")
def clock_fixture():
    """Clock pinned to 2024-01-15 12:00 UTC."""
    return lambda: FIXED_NOW


@pytest.fixture(name="dispatcher")
def dispatcher_fixture(clock):
    """Dispatcher wired like production, with the pinned clock."""
    dispatcher = EventDispatcher()
    BalanceLedger(failure_policy="swallow", clock=clock).register(dispatcher)
    BalanceSnapshotService.register(dispatcher, clock=clock)
    return dispatcher


@pytest.fixture(name="mock_provider")
def mock_provider_fixture():
    return MockWebhookProvider(name="plaid", item_ids={"access-legacy": "item-legacy"})


@pytest.fixture(name="registry")
def registry_fixture(mock_provider):
    return make_registry(mock_provider)


@pytest.fixture(name="client")
def client_fixture(db, registry, dispatcher):
    """Create a test client with the test database, a mock registry and the pinned clock."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
