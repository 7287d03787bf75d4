# tests/conftest.py

from __future__ import annotations

import os
from collections.abc import Callable, Iterator

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["NOTIFICATIONS_VIA_CELERY"] = "false"
os.environ["REALTIME_REDIS_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import todocal.models  # noqa: F401
from todocal.db import get_session, get_session_factory
from todocal.models import User
from todocal.services.change_feed import change_feed
from todocal.services.profiles import ensure_profile


@pytest.fixture()
def engine():
    """Fresh in-memory database shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine) -> Callable[[], Session]:
    return lambda: Session(engine)


@pytest.fixture()
def session(engine) -> Iterator[Session]:
    with Session(engine) as session:
        yield session


@pytest.fixture(autouse=True)
def isolated_change_feed() -> Iterator[None]:
    """Drop subscriptions and sinks a test leaves behind on the global feed."""
    subscribers = dict(change_feed._subscribers)
    sinks = list(change_feed._sinks)
    yield
    change_feed._subscribers = subscribers
    change_feed._sinks = sinks


@pytest.fixture()
def make_user(session: Session) -> Callable[[str], User]:
    """Create an active user with a profile named `username`."""

    def factory(username: str) -> User:
        user = User(email=f"{username}@example.com", hashed_password="not-a-real-hash")
        session.add(user)
        session.commit()
        session.refresh(user)
        ensure_profile(session, user, username)
        return user

    return factory


@pytest.fixture()
def client(engine) -> Iterator[TestClient]:
    from todocal.main import app

    def override_session() -> Iterator[Session]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_session_factory] = lambda: (lambda: Session(engine))
    # No context manager: startup hooks would touch the configured database
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def register(client: TestClient) -> Callable[[str], dict[str, str]]:
    """Register and log in a user through the API; returns auth headers."""

    def factory(username: str) -> dict[str, str]:
        email = f"{username}@example.com"
        response = client.post(
            "/api/v1/auth/register",
            json={"email": email, "password": "correct-horse", "username": username},
        )
        assert response.status_code == 201, response.text
        response = client.post(
            "/api/v1/auth/login",
            json={"email": email, "password": "correct-horse"},
        )
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return factory
