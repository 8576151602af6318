from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from hrflow.core.config import settings

T = TypeVar("T")

Base = declarative_base()


def build_engine(database_url: str, isolation_level: Optional[str] = None):
    """
    Builds an engine for PostgreSQL or SQLite.
    The isolation level is only forced when configured; otherwise the store's default applies.
    """
    kwargs = {}
    if isolation_level:
        kwargs["isolation_level"] = isolation_level

    if database_url.startswith("postgresql"):
        return create_engine(database_url, pool_pre_ping=True, **kwargs)

    # SQLite configuration for local development/testing
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False, "timeout": settings.db_lock_timeout_seconds},
        **kwargs,
    )


engine = build_engine(settings.database_url, settings.db_isolation_level)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    """
    Session Provider: Provides a database session per request.
    Transaction management is handled explicitly in the Service Layer.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def read_session(session_factory: Callable[[], Session] = SessionLocal) -> Iterator[Session]:
    """Short-lived session for read paths; nothing is committed."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def execute_transaction(
    callback: Callable[[Session], T],
    session_factory: Callable[[], Session] = SessionLocal,
) -> T:
    """
    Runs ``callback`` inside a single database transaction.

    Every statement issued through the session handed to the callback commits
    together when the callback returns, or rolls back together when it raises.
    """
    db = session_factory()
    try:
        with db.begin():
            return callback(db)
    finally:
        db.close()


def init_db(bind=None):
    """
    Registers all domain models and initializes the database schema.
    This should be called during the application startup lifespan.
    """
    # Import all models to ensure they are registered with Base.metadata before create_all
    from hrflow.models import (  # noqa: F401
        user, employee, appraisal, onboarding, leave, notification
    )
    Base.metadata.create_all(bind=bind or engine)
