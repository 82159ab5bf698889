import os

# Settings are read at import time; provide them before importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ACCESS_KEY", "test-access-key")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.main import app
from app.core.database import Base, get_db
from app.core.limiter import limiter
from app.models.stat import SYSTEM_STATS_ID, Stat
from app.models.user import User

# In-memory SQLite — StaticPool ensures one shared DB across all connections
SQLALCHEMY_DATABASE_URL = "sqlite://"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    database = TestingSessionLocal()
    try:
        yield database
    finally:
        database.close()


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable the rate limiter for all tests so rapid requests don't return 429."""
    limiter.enabled = False
    limiter.reset()
    yield
    limiter.enabled = True
    limiter.reset()


@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def system_stats(db):
    """The aggregate stats row, starting from zero."""
    stat = Stat(
        id=SYSTEM_STATS_ID,
        daily_requests=0,
        endpoints_requests=0,
        success_requests=0,
        failed_requests=0,
        banned_requests=0,
        stats_requests=0,
        endpoints={},
    )
    db.add(stat)
    db.commit()
    return stat


@pytest.fixture
def make_user(db):
    """Factory inserting a user row; returns the persisted User."""

    def _make_user(token="valid-token", **fields):
        values = {
            "req_quota": 100,
            "req_consumed": 0,
            "req_count": 0,
            "banned": False,
            "roles": ["user"],
        }
        values.update(fields)
        user = User(token=token, **values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def reload(db):
    """Re-read an instance after the app committed through its own session."""

    def _reload(instance):
        db.expire_all()
        db.refresh(instance)
        return instance

    return _reload
