from __future__ import annotations

import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

DEFAULT_DATABASE_URL = "sqlite:///./bemestar.db"


def get_database_url() -> str:
    url = (os.getenv("DATABASE_URL") or "").strip()
    return url or DEFAULT_DATABASE_URL


def normalize_database_url(database_url: str) -> str:
    database_url = (database_url or "").strip()

    if database_url.startswith(("http://", "https://")):
        # Hosted Postgres dashboards hand out the REST URL next to the DSN.
        raise RuntimeError(
            "DATABASE_URL looks like an HTTP URL. "
            "Use a PostgreSQL DSN like `postgresql+psycopg://<user>:<password>@<host>:5432/<db>`."
        )

    for prefix in ("postgresql://", "postgres://"):
        if database_url.startswith(prefix):
            return "postgresql+psycopg://" + database_url[len(prefix) :]
    return database_url


def create_db_engine(database_url: str | None = None) -> Engine:
    url = normalize_database_url(database_url or get_database_url())
    connect_args: dict[str, object] = {}
    engine_kwargs: dict[str, object] = {
        "pool_pre_ping": True,
        "connect_args": connect_args,
    }

    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    else:
        connect_timeout = int(os.getenv("DB_CONNECT_TIMEOUT", "5") or "5")
        if connect_timeout > 0:
            connect_args["connect_timeout"] = connect_timeout
        application_name = (os.getenv("DB_APPLICATION_NAME") or "bemestar-backend").strip()
        if application_name:
            connect_args["application_name"] = application_name
        pool_recycle = int(os.getenv("DB_POOL_RECYCLE", "1800") or "1800")
        if pool_recycle > 0:
            engine_kwargs["pool_recycle"] = pool_recycle

    return create_engine(url, **engine_kwargs)


engine = create_db_engine()
