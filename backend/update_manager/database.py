"""Database engine, session factory and transient-error retry."""
from __future__ import annotations

import functools
import logging
import time
from typing import Callable, TypeVar

from sqlalchemy import create_engine, text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import settings
from .domain_errors import DomainError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """Yield a request-scoped session; roll back anything left uncommitted."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def ensure_database_reachable() -> None:
    """Fail startup loudly when the store cannot be reached."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except OperationalError as exc:
        raise RuntimeError(f"Database is unreachable at startup: {exc}") from exc


def is_transient_store_error(exc: Exception) -> bool:
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def store_retry(func: Callable[..., T]) -> Callable[..., T]:
    """Retry a use case on transient store errors.

    The wrapped use case must take its session as the ``db`` keyword; the
    session is rolled back before each new attempt so the whole transaction
    is replayed. Exhausted retries surface as ``internal``.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        db: Session | None = kwargs.get("db")
        attempts = max(settings.DB_RETRY_ATTEMPTS, 1)
        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except DBAPIError as exc:
                if not is_transient_store_error(exc):
                    raise
                if db is not None:
                    db.rollback()
                if attempt >= attempts:
                    logger.exception("store.retry_exhausted op=%s attempts=%s", func.__name__, attempts)
                    raise DomainError(
                        code="internal",
                        http_status=500,
                        message="Store unavailable",
                    ) from exc
                logger.warning("store.transient_error op=%s attempt=%s", func.__name__, attempt)
                time.sleep(settings.DB_RETRY_BACKOFF_MS * attempt / 1000.0)
        raise AssertionError("unreachable")

    return wrapper
