from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Connection

MIGRATIONS_DIR = Path(__file__).resolve().parent / "sql"

logger = logging.getLogger("bemestar.migrations")

_SQLITE_REWRITES = (
    ("SERIAL PRIMARY KEY", "INTEGER PRIMARY KEY AUTOINCREMENT"),
    ("TIMESTAMPTZ", "TIMESTAMP"),
    ("DOUBLE PRECISION", "REAL"),
)


def _ensure_schema_migrations(conn: Connection) -> None:
    conn.execute(
        text(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version TEXT PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
    )


def _split_sql(sql: str) -> list[str]:
    return [stmt.strip() for stmt in sql.split(";") if stmt.strip()]


def _for_dialect(conn: Connection, sql: str) -> str:
    if conn.dialect.name != "sqlite":
        return sql
    for source, target in _SQLITE_REWRITES:
        sql = sql.replace(source, target)
    return sql


def _load(suffix: str) -> list[Path]:
    return sorted(MIGRATIONS_DIR.glob(f"*{suffix}"))


def applied_versions(conn: Connection) -> list[str]:
    _ensure_schema_migrations(conn)
    return list(conn.execute(text("SELECT version FROM schema_migrations ORDER BY version")).scalars())


def migrate_up(conn: Connection) -> list[str]:
    applied = set(applied_versions(conn))
    newly_applied: list[str] = []
    for path in _load(".up.sql"):
        version = path.name.split("_", 1)[0]
        if version in applied:
            continue
        for stmt in _split_sql(_for_dialect(conn, path.read_text(encoding="utf-8"))):
            conn.execute(text(stmt))
        conn.execute(
            text("INSERT INTO schema_migrations (version) VALUES (:version)"),
            {"version": version},
        )
        logger.info("migration applied version=%s file=%s", version, path.name)
        newly_applied.append(version)
    return newly_applied


def migrate_down(conn: Connection) -> str | None:
    applied = applied_versions(conn)
    if not applied:
        return None
    version = applied[-1]
    candidates = [p for p in _load(".down.sql") if p.name.startswith(version)]
    if not candidates:
        raise RuntimeError(f"Missing down migration for version {version}")
    for stmt in _split_sql(_for_dialect(conn, candidates[0].read_text(encoding="utf-8"))):
        conn.execute(text(stmt))
    conn.execute(text("DELETE FROM schema_migrations WHERE version = :version"), {"version": version})
    logger.info("migration rolled back version=%s", version)
    return version
