"""
Database session management using SQLModel.
Provides the engine factory and the per-request session dependency.
"""

from typing import Generator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, create_engine

from taskboard.core.config import Settings


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def register_sqlite_functions(engine: Engine) -> Engine:
    """
    Replace SQLite's ASCII-only ``lower()`` with Python's on every new connection,
    so case-insensitive search folds non-ASCII titles the same way PostgreSQL does.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)

    return engine


def build_engine(settings: Settings) -> Engine:
    """
    Create the database engine for the configured store.
    Every connection is bounded by ``STORE_TIMEOUT_SECONDS``.
    """
    timeout = settings.STORE_TIMEOUT_SECONDS
    if settings.is_sqlite:
        engine = create_engine(
            settings.SQLALCHEMY_DATABASE_URI,
            echo=settings.DEBUG,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )
        return register_sqlite_functions(engine)

    # pool_pre_ping ensures connections are alive before using them
    return create_engine(
        settings.SQLALCHEMY_DATABASE_URI,
        echo=settings.DEBUG,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_timeout=timeout,
        connect_args={
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        },
    )


def get_session(request: Request) -> Generator[Session, None, None]:
    """
    Dependency that provides a database session for FastAPI routes.

    Yields:
        Database session bound to the application's engine
    """
    with Session(request.app.state.engine) as session:
        yield session
