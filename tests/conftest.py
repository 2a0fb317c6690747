"""
Pytest fixtures for testing
"""
import pytest
from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from sqlalchemy.dialects.postgresql import JSONB
from creatorhub.infrastructure.db.session import Base
from creatorhub.infrastructure.db import models  # noqa: F401  (registers tables)


# SQLite doesn't support JSONB, remap to JSON for tests. Done at import so
# sessions on bare_engine compile the ORM models the same way.
for _table in Base.metadata.tables.values():
    for _col in _table.columns:
        if isinstance(_col.type, JSONB):
            _col.type = JSON()


@pytest.fixture
def db_engine():
    """Create in-memory SQLite engine for tests."""
    # One shared connection so TestClient worker threads see the same database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def bare_engine():
    """Empty in-memory SQLite engine; tests create only the tables they need."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def bare_session(bare_engine) -> Session:
    session = sessionmaker(bind=bare_engine)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
