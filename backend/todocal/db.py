from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Annotated

from fastapi import Depends
from sqlmodel import Session, SQLModel, create_engine

from todocal.core.config import settings


def _build_engine():
    connect_args = {}
    if settings.DATABASE_URL.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(settings.DATABASE_URL, connect_args=connect_args)


engine = _build_engine()

SessionFactory = Callable[[], Session]


def init_db() -> None:
    """Create database tables in environments without migrations."""
    # Import models so their tables are registered on the metadata
    import todocal.models  # noqa: F401

    SQLModel.metadata.create_all(bind=engine)


def open_session() -> Session:
    """Session for code running outside a request (websocket sessions, jobs)."""
    return Session(engine)


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


def get_session_factory() -> SessionFactory:
    return open_session


SessionDep = Annotated[Session, Depends(get_session)]
