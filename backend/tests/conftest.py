import os

# Settings are read once at import time; pin them before html2png is imported.
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-html2png-test-suite")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENCRYPTION_KEY", "11" * 32)
os.environ.setdefault("REVOCATION_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("RENDER_SETTLE_MS", "0")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from html2png import models  # noqa: F401
from html2png.core.database import Base, get_db
from html2png.core.deps import get_codec, get_renderer, reset_revocation_store
from html2png.core.rate_limit import get_rate_limiter
from html2png.main import app
from html2png.services.crypto import EnvelopeCodec
from html2png.services.revocation import MemoryRevocationStore
from tests.fakes import FakeRenderer
from tests.helpers import register


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def revocations():
    return MemoryRevocationStore()


@pytest.fixture
def codec():
    return EnvelopeCodec.from_secret("22" * 32)


@pytest.fixture
def fake_renderer():
    return FakeRenderer()


@pytest.fixture
def client(session_factory, fake_renderer):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    get_rate_limiter().reset()
    reset_revocation_store()
    get_codec.cache_clear()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_renderer] = lambda: fake_renderer
    # No lifespan: the browser is never launched and the global engine is untouched.
    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        app.dependency_overrides.clear()
        get_rate_limiter().reset()


@pytest.fixture
def auth_headers(client):
    body = register(client)
    return {"Authorization": f"Bearer {body['access_token']}"}
