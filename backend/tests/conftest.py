"""Pytest configuration and fixtures."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from api.dependencies import get_gocardless_client, get_sync_service
from database import Base, get_db
from main import app
from services.reconciliation_service import ReconciliationService
from services.sync_service import SyncService
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    bank_account,
    connection,
    payment_account,
    user,
)
from tests.fixtures.mocks import MockGoCardlessClient, MockImporter

TEST_ENCRYPTION_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"


@pytest.fixture(autouse=True)
def encryption_key():
    """Provide a fixed field-encryption key for every test."""
    with patch("models.encrypted_types.settings") as mock_settings:
        mock_settings.ENCRYPTION_KEY = TEST_ENCRYPTION_KEY
        yield TEST_ENCRYPTION_KEY


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite engine shared by every session of a test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(name="session_factory")
def session_factory_fixture(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(name="db")
def db_fixture(session_factory):
    """Create an in-memory SQLite database for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(name="mock_gocardless_client")
def mock_gocardless_client_fixture():
    return MockGoCardlessClient()


@pytest.fixture(name="mock_importer")
def mock_importer_fixture():
    return MockImporter()


@pytest.fixture(name="client")
def client_fixture(db, session_factory, mock_gocardless_client, mock_importer):
    """Create a test client with the test database and mocked aggregator."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    def override_get_sync_service():
        return SyncService(
            importer=mock_importer,
            client=mock_gocardless_client,
            reconciliation_service=ReconciliationService(),
            session_factory=session_factory,
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gocardless_client] = lambda: mock_gocardless_client
    app.dependency_overrides[get_sync_service] = override_get_sync_service
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="auth_headers")
def auth_headers_fixture(user):
    """Headers identifying the default test user."""
    return {"X-User-Id": user.id}
