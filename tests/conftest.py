"""Shared fixtures: in-memory SQLite, test settings, and an in-memory audit store."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.main import create_app
from app.models import audit as _audit_models  # noqa: F401
from app.models import patient as _patient_models  # noqa: F401
from app.models.database import Base
from app.services.auth import Actor, issue_token
from app.services.encryption import EncryptionService

TEST_SECRET = "unit-test-secret-that-is-at-least-32-chars"

PROVIDER = Actor(id="prov-1", email="dana.lee@example.com", first_name="Dana", last_name="Lee", role="provider")
ADMIN = Actor(id="admin-1", email="root@example.com", first_name="Ada", last_name="Min", role="admin")
PATIENT_USER = Actor(id="pat-1", email="pat@example.com", first_name="Pat", last_name="Doe", role="patient")


class MemoryAuditStore:
    def __init__(self):
        self.entries = []

    def write(self, entry):
        self.entries.append(entry)


def make_settings(**overrides):
    settings = Settings()
    settings.ENCRYPTION_KEY = TEST_SECRET
    settings.ENVIRONMENT = "test"
    settings.JWT_SECRET = "unit-test-jwt-secret"
    settings.JWT_ALGORITHM = "HS256"
    settings.LOG_LEVEL = "INFO"
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


@pytest.fixture(scope="session")
def encryption():
    return EncryptionService(TEST_SECRET)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def audit_store():
    return MemoryAuditStore()


@pytest.fixture
def app(settings, audit_store, engine):
    return create_app(settings, audit_store=audit_store, bind=engine)


@pytest.fixture
def auth_headers(settings):
    def _headers(actor):
        return {"Authorization": f"Bearer {issue_token(actor, settings)}"}

    return _headers


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def drain_audit(client, app):
    """Block until the background audit writes scheduled so far have finished."""

    def _drain():
        client.portal.call(app.state.audit_interceptor.drain)

    return _drain
