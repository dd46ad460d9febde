from __future__ import annotations

import functools
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, TypeVar
from uuid import uuid4

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from bemestar.domain.errors import StoreUnavailable
from bemestar.domain.models import EmployeeSummary, MoodEntry, Profile, UNKNOWN_NAME

logger = logging.getLogger("bemestar.store")

PROFILE_BATCH_SIZE = 100

_MOOD_COLUMNS = (
    "id, user_id, company_id, score, day, created_at, note, mental_state, "
    "sleep_quality, work_demand, fatigue_level"
)

F = TypeVar("F", bound=Callable[..., Any])


def store_operation(operation: str) -> Callable[[F], F]:
    """Translate driver failures into StoreUnavailable tagged with the operation."""

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return fn(*args, **kwargs)
            except SQLAlchemyError as exc:
                logger.warning("store.%s failed error=%s", operation, type(exc).__name__)
                raise StoreUnavailable(operation, type(exc).__name__) from exc

        return wrapper  # type: ignore[return-value]

    return decorator


def to_db_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat(sep=" ")


def parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_day(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value.strip()) >= 10:
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not number.is_integer():
        return None
    return int(number)


def _to_profile(row: Any) -> Profile:
    return Profile(
        id=str(row["id"]),
        name=row.get("name"),
        role=row.get("role"),
        company_id=row.get("company_id"),
        company_name=row.get("company_name"),
    )


def _to_mood_entry(row: Any) -> MoodEntry:
    return MoodEntry(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        company_id=row.get("company_id"),
        score=_optional_int(row.get("score")),
        created_at=parse_timestamp(row.get("created_at")),
        day=parse_day(row.get("day")),
        note=row.get("note"),
        mental_state=row.get("mental_state"),
        sleep_quality=_optional_int(row.get("sleep_quality")),
        work_demand=_optional_int(row.get("work_demand")),
        fatigue_level=_optional_int(row.get("fatigue_level")),
    )


def _chunk(values: list[str], size: int) -> Iterable[list[str]]:
    for i in range(0, len(values), size):
        yield values[i : i + size]


# -- identity -----------------------------------------------------------------


@store_operation("is_admin_user")
def is_admin_user(conn: Connection, user_id: str) -> bool:
    row = conn.execute(
        text("SELECT user_id FROM admin_users WHERE user_id = :user_id"),
        {"user_id": user_id},
    ).first()
    return row is not None


@store_operation("fetch_profile")
def fetch_profile(conn: Connection, user_id: str) -> Profile | None:
    row = conn.execute(
        text(
            """
            SELECT id, name, role, company_id, company_name
            FROM profiles
            WHERE id = :user_id
            """
        ),
        {"user_id": user_id},
    ).mappings().first()
    if not row:
        return None
    return _to_profile(row)


@store_operation("fetch_profiles_by_ids")
def fetch_profiles_by_ids(conn: Connection, user_ids: Iterable[str]) -> dict[str, Profile]:
    ids = sorted({uid for uid in user_ids if uid})
    profiles: dict[str, Profile] = {}
    if not ids:
        return profiles
    stmt = text(
        """
        SELECT id, name, role, company_id, company_name
        FROM profiles
        WHERE id IN :ids
        """
    ).bindparams(bindparam("ids", expanding=True))
    for batch in _chunk(ids, PROFILE_BATCH_SIZE):
        for row in conn.execute(stmt, {"ids": batch}).mappings():
            profile = _to_profile(row)
            profiles[profile.id] = profile
    return profiles


@store_operation("fetch_latest_supervisor_company")
def fetch_latest_supervisor_company(conn: Connection, user_id: str) -> str | None:
    row = conn.execute(
        text(
            """
            SELECT company_id
            FROM supervisor_companies
            WHERE user_id = :user_id
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """
        ),
        {"user_id": user_id},
    ).first()
    if not row or not row[0]:
        return None
    return str(row[0])


# -- mood entries ---------------------------------------------------------------


@store_operation("fetch_mood_entries")
def fetch_mood_entries(
    conn: Connection,
    *,
    company_id: str | None,
    since: datetime | None = None,
    until: datetime | None = None,
    score: int | None = None,
    user_id: str | None = None,
    newest_first: bool = False,
    limit: int | None = None,
) -> list[MoodEntry]:
    """Column-filtered read of mood_entries.

    company_id=None means "no company filter"; only admin-scoped callers may
    pass it. since/until bound created_at as [since, until).
    """
    clauses: list[str] = []
    params: dict[str, Any] = {}
    if company_id is not None:
        clauses.append("company_id = :company_id")
        params["company_id"] = company_id
    if since is not None:
        clauses.append("created_at >= :since")
        params["since"] = to_db_timestamp(since)
    if until is not None:
        clauses.append("created_at < :until")
        params["until"] = to_db_timestamp(until)
    if score is not None:
        clauses.append("score = :score")
        params["score"] = score
    if user_id is not None:
        clauses.append("user_id = :user_id")
        params["user_id"] = user_id

    sql = f"SELECT {_MOOD_COLUMNS} FROM mood_entries"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY created_at DESC, id DESC" if newest_first else " ORDER BY created_at ASC, id ASC"
    if limit is not None:
        sql += " LIMIT :limit"
        params["limit"] = max(1, int(limit))

    rows = conn.execute(text(sql), params).mappings()
    return [_to_mood_entry(row) for row in rows]


def _count_in_range(
    conn: Connection,
    relation: str,
    *,
    company_id: str | None,
    since: datetime | None,
    until: datetime | None,
) -> int:
    clauses: list[str] = []
    params: dict[str, Any] = {}
    if company_id is not None:
        clauses.append("company_id = :company_id")
        params["company_id"] = company_id
    if since is not None:
        clauses.append("created_at >= :since")
        params["since"] = to_db_timestamp(since)
    if until is not None:
        clauses.append("created_at < :until")
        params["until"] = to_db_timestamp(until)
    sql = f"SELECT COUNT(*) FROM {relation}"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    return int(conn.execute(text(sql), params).scalar() or 0)


@store_operation("count_mood_entries")
def count_mood_entries(
    conn: Connection,
    *,
    company_id: str | None,
    since: datetime | None = None,
    until: datetime | None = None,
) -> int:
    return _count_in_range(conn, "mood_entries", company_id=company_id, since=since, until=until)


@store_operation("count_recent_critical_alerts")
def count_recent_critical_alerts(
    conn: Connection,
    *,
    company_id: str | None,
    since: datetime | None = None,
    until: datetime | None = None,
) -> int:
    return _count_in_range(conn, "v_recent_critical_alerts", company_id=company_id, since=since, until=until)


# -- roster ---------------------------------------------------------------------


def _like_pattern(query: str) -> str:
    escaped = query.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _select_roster(
    conn: Connection,
    *,
    company_id: str | None,
    name_query: str | None = None,
    limit: int | None = None,
) -> list[EmployeeSummary]:
    params: dict[str, Any] = {}
    clauses = ["p.role IN ('employee', 'manager')"]
    if company_id is not None:
        clauses.append("p.company_id = :company_id")
        params["company_id"] = company_id
    if name_query is not None:
        clauses.append("LOWER(COALESCE(p.name, '')) LIKE :name_pattern ESCAPE '\\'")
        params["name_pattern"] = _like_pattern(name_query)
    sql = f"""
        SELECT p.id AS user_id, p.name AS name, p.company_id AS company_id,
               COUNT(m.id) AS entries, MAX(m.created_at) AS last_entry_at
        FROM profiles p
        LEFT JOIN mood_entries m ON m.user_id = p.id
        WHERE {" AND ".join(clauses)}
        GROUP BY p.id, p.name, p.company_id
        ORDER BY entries DESC, p.name ASC
        """
    if limit is not None:
        sql += " LIMIT :limit"
        params["limit"] = max(1, int(limit))
    rows = conn.execute(text(sql), params).mappings()
    return [
        EmployeeSummary(
            user_id=str(row["user_id"]),
            name=(row.get("name") or "").strip() or UNKNOWN_NAME,
            company_id=row.get("company_id"),
            entries=int(row.get("entries") or 0),
            last_entry_at=parse_timestamp(row.get("last_entry_at")),
        )
        for row in rows
    ]


@store_operation("fetch_employee_roster")
def fetch_employee_roster(conn: Connection, *, company_id: str | None) -> list[EmployeeSummary]:
    return _select_roster(conn, company_id=company_id)


@store_operation("search_employees")
def search_employees(conn: Connection, query: str, *, company_id: str | None, limit: int = 3) -> list[EmployeeSummary]:
    """Case-insensitive substring match on the display name."""
    return _select_roster(conn, company_id=company_id, name_query=query, limit=limit)


# -- report log -----------------------------------------------------------------

_REPORT_COLUMNS = (
    "id, cycle_key, cycle_label, company_id, employees_analyzed, critical_alerts, "
    "burnout_avg_7d, ai_summary, created_by, created_at"
)


def _to_report(row: Any) -> dict[str, Any]:
    created_at = parse_timestamp(row.get("created_at"))
    return {
        "id": str(row["id"]),
        "cycle_key": row["cycle_key"],
        "cycle_label": row["cycle_label"],
        "company_id": row.get("company_id"),
        "employees_analyzed": int(row.get("employees_analyzed") or 0),
        "critical_alerts": int(row.get("critical_alerts") or 0),
        "burnout_avg_7d": float(row.get("burnout_avg_7d") or 0.0),
        "ai_summary": row.get("ai_summary"),
        "created_by": row["created_by"],
        "created_at": created_at.isoformat() if created_at else None,
    }


@store_operation("insert_report")
def insert_report(
    conn: Connection,
    *,
    cycle_key: str,
    cycle_label: str,
    company_id: str | None,
    employees_analyzed: int,
    critical_alerts: int,
    burnout_avg_7d: float,
    ai_summary: str | None,
    created_by: str,
    created_at: datetime | None = None,
) -> dict[str, Any]:
    report_id = str(uuid4())
    conn.execute(
        text(
            """
            INSERT INTO reports
              (id, cycle_key, cycle_label, company_id, employees_analyzed, critical_alerts,
               burnout_avg_7d, ai_summary, created_by, created_at)
            VALUES
              (:id, :cycle_key, :cycle_label, :company_id, :employees_analyzed, :critical_alerts,
               :burnout_avg_7d, :ai_summary, :created_by, :created_at)
            """
        ),
        {
            "id": report_id,
            "cycle_key": cycle_key,
            "cycle_label": cycle_label,
            "company_id": company_id,
            "employees_analyzed": employees_analyzed,
            "critical_alerts": critical_alerts,
            "burnout_avg_7d": burnout_avg_7d,
            "ai_summary": ai_summary,
            "created_by": created_by,
            "created_at": to_db_timestamp(created_at or datetime.now(timezone.utc)),
        },
    )
    row = conn.execute(
        text(f"SELECT {_REPORT_COLUMNS} FROM reports WHERE id = :id"),
        {"id": report_id},
    ).mappings().one()
    return _to_report(row)


@store_operation("fetch_reports")
def fetch_reports(conn: Connection, *, company_id: str | None, limit: int = 50) -> list[dict[str, Any]]:
    params: dict[str, Any] = {"limit": max(1, int(limit))}
    where = ""
    if company_id is not None:
        where = "WHERE company_id = :company_id"
        params["company_id"] = company_id
    rows = conn.execute(
        text(
            f"""
            SELECT {_REPORT_COLUMNS}
            FROM reports
            {where}
            ORDER BY created_at DESC, id DESC
            LIMIT :limit
            """
        ),
        params,
    ).mappings()
    return [_to_report(row) for row in rows]


@store_operation("delete_report")
def delete_report(conn: Connection, report_id: str, *, company_id: str | None) -> bool:
    params: dict[str, Any] = {"id": report_id}
    sql = "DELETE FROM reports WHERE id = :id"
    if company_id is not None:
        sql += " AND company_id = :company_id"
        params["company_id"] = company_id
    result = conn.execute(text(sql), params)
    return (result.rowcount or 0) > 0


@store_operation("delete_all_reports")
def delete_all_reports(conn: Connection, *, company_id: str | None) -> int:
    if company_id is None:
        result = conn.execute(text("DELETE FROM reports"))
    else:
        result = conn.execute(
            text("DELETE FROM reports WHERE company_id = :company_id"),
            {"company_id": company_id},
        )
    return int(result.rowcount or 0)
