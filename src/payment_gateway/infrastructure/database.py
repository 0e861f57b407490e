"""Database connection and session management for the transaction store."""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from payment_gateway.config import settings

# Base class for all ORM models
Base = declarative_base()


def create_db_engine(database_url: str | None = None, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine.

    Args:
        database_url: Database URL. If None, uses settings.database_url
        echo: Log SQL statements

    Returns:
        Configured SQLAlchemy engine
    """
    url = database_url or settings.database_url
    kwargs: dict = {"pool_pre_ping": True, "echo": echo}

    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            # One shared connection, otherwise every session sees an empty database
            kwargs["poolclass"] = StaticPool
    else:
        kwargs.update(pool_size=10, max_overflow=20, pool_recycle=3600)

    return create_engine(url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with session_scope(SessionLocal) as session:
            session.query(PaymentTransactionModel).filter_by(reference="ref_123").first()

    Automatically commits on success, rolls back on exception.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """Create all tables. Production deployments should use migrations instead."""
    from payment_gateway.infrastructure import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
