"""Test configuration and fixtures."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import ledgerly.models  # noqa: F401
from ledgerly.metadata import Base
from ledgerly.ratelimit import limiter


@pytest.fixture
def test_db():
    """Create test database."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Rate-limit counters are process-wide; start every test from zero."""
    limiter.reset()
    yield
