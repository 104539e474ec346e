"""
Shared pytest fixtures for credential lifecycle tests.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from slack_archive.credentials.encryption import TokenCipher
from slack_archive.credentials.store import CredentialStore
from slack_archive.db_base import Base
from tests.helpers import FakeClock, RecordingCache


@pytest.fixture
def encryption_key(monkeypatch):
    """Set up encryption key for testing."""
    monkeypatch.setenv("ENCRYPTION_KEY", "test-credential-encryption-key-32!")
    return "test-credential-encryption-key-32!"


@pytest.fixture
def cipher(encryption_key):
    return TokenCipher.from_env()


@pytest.fixture
def db_session():
    """Create in-memory SQLite database for testing."""
    engine = create_engine("sqlite:///:memory:")

    # Import model to register with Base
    from slack_archive.models.oauth_credential import OAuthCredential  # noqa: F401

    Base.metadata.create_all(bind=engine)

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def credential_store(db_session, cipher):
    return CredentialStore(db_session, cipher)


@pytest.fixture
def cache_clock():
    return FakeClock()


@pytest.fixture
def cache(cache_clock):
    return RecordingCache(clock=cache_clock)
