"""Database engine and session factory shared by the service and its tests."""
from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from libs.env import get_database_url


def _connect_args(url: str) -> dict:
    # SQLite connections are shared between the request thread pool and tests.
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


DB_URL = get_database_url(env_var="PARTYSTREAM_DATABASE_URL")

engine = create_engine(DB_URL, future=True, connect_args=_connect_args(DB_URL))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def rebind(url: str) -> None:
    """Point the module level engine and session factory at ``url``."""

    global engine, DB_URL
    engine.dispose()
    DB_URL = url
    engine = create_engine(url, future=True, connect_args=_connect_args(url))
    SessionLocal.configure(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
