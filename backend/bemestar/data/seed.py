from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Connection

from bemestar.db.repository import to_db_timestamp

SEED_PATH = Path(__file__).resolve().parent / "seed.json"

# Children before parents so a plain DELETE never trips a constraint.
SEED_TABLES = (
    "reports",
    "mood_entries",
    "supervisor_companies",
    "admin_users",
    "profiles",
)

logger = logging.getLogger("bemestar.seed")


@lru_cache(maxsize=1)
def load_seed() -> dict[str, Any]:
    with SEED_PATH.open(encoding="utf-8-sig") as f:
        return json.load(f)


def _at(now: datetime, days_ago: int, hour: int = 9) -> datetime:
    moment = (now - timedelta(days=int(days_ago))).replace(hour=int(hour), minute=0, second=0, microsecond=0)
    return min(moment, now.replace(microsecond=0))


def build_seed_rows(seed: dict[str, Any], *, now: datetime | None = None) -> dict[str, list[dict[str, Any]]]:
    """Expand relative ``days_ago`` offsets into concrete rows anchored at ``now``."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    companies = {c["id"]: c.get("name") for c in seed.get("companies", [])}
    profiles = seed.get("profiles", [])
    company_of = {p["id"]: p.get("company_id") for p in profiles}

    profile_rows = [
        {
            "id": p["id"],
            "name": p.get("name"),
            "role": p.get("role") or "employee",
            "company_id": p.get("company_id"),
            "company_name": companies.get(p.get("company_id")),
            "created_at": to_db_timestamp(now - timedelta(days=180)),
        }
        for p in profiles
    ]
    admin_rows = [
        {"user_id": user_id, "created_at": to_db_timestamp(now - timedelta(days=180))}
        for user_id in seed.get("admins", [])
    ]
    supervisor_rows = [
        {
            "user_id": row["user_id"],
            "company_id": row["company_id"],
            "created_at": to_db_timestamp(_at(now, row.get("days_ago", 0))),
        }
        for row in seed.get("supervisor_companies", [])
    ]

    entry_rows = []
    for index, row in enumerate(seed.get("mood_entries", []), start=1):
        created_at = _at(now, row.get("days_ago", 0), row.get("hour", 9))
        entry_rows.append(
            {
                "id": f"seed-{index:04d}",
                "user_id": row["user_id"],
                "company_id": company_of.get(row["user_id"]),
                "score": row.get("score"),
                "day": created_at.date().isoformat(),
                "created_at": to_db_timestamp(created_at),
                "note": row.get("note"),
                "mental_state": row.get("mental_state"),
                "sleep_quality": row.get("sleep_quality"),
                "work_demand": row.get("work_demand"),
                "fatigue_level": row.get("fatigue_level"),
            }
        )

    return {
        "profiles": profile_rows,
        "admin_users": admin_rows,
        "supervisor_companies": supervisor_rows,
        "mood_entries": entry_rows,
    }


def wipe(conn: Connection) -> None:
    for table in SEED_TABLES:
        conn.execute(text(f"DELETE FROM {table}"))


def apply_seed(conn: Connection, *, force: bool = False, now: datetime | None = None) -> dict[str, int] | None:
    """Insert the demo data set; returns per-table counts, or None when skipped."""
    if force:
        wipe(conn)
    else:
        existing = conn.execute(text("SELECT COUNT(*) FROM profiles")).scalar() or 0
        if existing:
            logger.info("seed skipped: profiles already exist")
            return None

    rows = build_seed_rows(load_seed(), now=now)
    if rows["profiles"]:
        conn.execute(
            text(
                """
                INSERT INTO profiles (id, name, role, company_id, company_name, created_at)
                VALUES (:id, :name, :role, :company_id, :company_name, :created_at)
                """
            ),
            rows["profiles"],
        )
    if rows["admin_users"]:
        conn.execute(
            text("INSERT INTO admin_users (user_id, created_at) VALUES (:user_id, :created_at)"),
            rows["admin_users"],
        )
    if rows["supervisor_companies"]:
        conn.execute(
            text(
                """
                INSERT INTO supervisor_companies (user_id, company_id, created_at)
                VALUES (:user_id, :company_id, :created_at)
                """
            ),
            rows["supervisor_companies"],
        )
    if rows["mood_entries"]:
        conn.execute(
            text(
                """
                INSERT INTO mood_entries
                  (id, user_id, company_id, score, day, created_at, note, mental_state,
                   sleep_quality, work_demand, fatigue_level)
                VALUES
                  (:id, :user_id, :company_id, :score, :day, :created_at, :note, :mental_state,
                   :sleep_quality, :work_demand, :fatigue_level)
                """
            ),
            rows["mood_entries"],
        )

    counts = {table: len(items) for table, items in rows.items()}
    logger.info("seed applied %s", " ".join(f"{k}={v}" for k, v in counts.items()))
    return counts
