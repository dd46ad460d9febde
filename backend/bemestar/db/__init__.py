from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from bemestar.db.connection import engine, get_database_url
from bemestar.domain.errors import StoreUnavailable

logger = logging.getLogger("bemestar.db")


@contextmanager
def db_connection() -> Iterator[Connection]:
    with engine.begin() as conn:
        yield conn


def get_db() -> Iterator[Connection]:
    """FastAPI dependency: one transaction per request, committed on success."""
    try:
        ctx = engine.begin()
        conn = ctx.__enter__()
    except SQLAlchemyError as exc:
        logger.warning("Database connection failed: %s", exc)
        raise StoreUnavailable("connect", type(exc).__name__) from exc

    try:
        yield conn
    except BaseException as exc:
        ctx.__exit__(type(exc), exc, exc.__traceback__)
        raise
    else:
        ctx.__exit__(None, None, None)


def get_engine():
    return engine


__all__ = [
    "db_connection",
    "engine",
    "get_database_url",
    "get_db",
    "get_engine",
]
