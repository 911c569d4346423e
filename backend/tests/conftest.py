"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.institutions import get_institution_service
from api.sync import get_sync_service
from api.webhooks import get_webhook_service
from database import Base, create_db_engine, get_db
from main import app
from services.institution_service import InstitutionService
from services.sync_service import SyncService
from services.token_service import TokenDecryptor
from services.webhook_service import WebhookService
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import bank_account, institution  # noqa: F401
from tests.fixtures.mocks import MockPlaidClient


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_db_engine("sqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(name="decryptor")
def decryptor_fixture():
    """Decryptor with no key, so tokens are read as plain base64."""
    return TokenDecryptor(encryption_key="")


@pytest.fixture(name="mock_plaid_client")
def mock_plaid_client_fixture():
    """An empty, configured Plaid mock."""
    return MockPlaidClient()


@pytest.fixture(name="sync_service")
def sync_service_fixture(mock_plaid_client, decryptor):
    """SyncService wired to the mock client with the refresh wait stubbed out."""
    return SyncService(client=mock_plaid_client, decryptor=decryptor, sleep=lambda seconds: None)


@pytest.fixture(name="client")
def client_fixture(db, mock_plaid_client, decryptor, sync_service):
    """Create a test client with the test database and mock Plaid client."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sync_service] = lambda: sync_service
    app.dependency_overrides[get_webhook_service] = lambda: WebhookService(sync_service=sync_service)
    app.dependency_overrides[get_institution_service] = lambda: InstitutionService(
        client=mock_plaid_client, decryptor=decryptor
    )
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
