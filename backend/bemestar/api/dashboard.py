from __future__ import annotations

from datetime import date, datetime, time, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.engine import Connection, Engine

from bemestar.api.deps import get_scope
from bemestar.api.payloads import (
    alert_payload,
    burnout_payload,
    daily_payload,
    employee_payload,
    entry_payload,
    scope_payload,
)
from bemestar.db import get_db, get_engine
from bemestar.domain.aggregation import (
    ALERT_SEARCH_LIMIT,
    DEFAULT_ALERT_DAYS,
    DEFAULT_ALERT_LIMIT,
    EMPLOYEE_ENTRY_LIMIT,
    EMPLOYEE_SEARCH_LIMIT,
    MAX_ALERT_LIMIT,
    TimeWindow,
    fetch_burnout_summary,
    fetch_critical_alerts,
    fetch_daily_aggregates,
    fetch_employee_entries,
    fetch_roster,
    find_critical_alerts,
    find_employees,
    unread_count,
    utcnow,
)
from bemestar.domain.dashboard import load_dashboard
from bemestar.domain.models import AlertSessionState, Scope
from bemestar.domain.risk import classify_risk, risk_meta, weighted_average
from bemestar.settings import settings

router = APIRouter(prefix="/v1", tags=["dashboard"])


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


@router.get("/scope")
def get_scope_api(scope: Scope = Depends(get_scope)) -> dict:
    return scope_payload(scope)


@router.get("/dashboard")
def dashboard_api(
    days: int | None = Query(default=None, ge=1, le=366),
    alert_days: int | None = Query(default=None, ge=1, le=366),
    alert_limit: int | None = Query(default=None, ge=1, le=MAX_ALERT_LIMIT),
    read: list[str] | None = Query(default=None),
    resolved: list[str] | None = Query(default=None),
    scope: Scope = Depends(get_scope),
    engine: Engine = Depends(get_engine),
) -> dict:
    days = days or settings.dashboard_daily_days
    snapshot = load_dashboard(
        engine,
        scope,
        days=days,
        alert_days=alert_days or settings.dashboard_alert_days,
        alert_limit=alert_limit or settings.dashboard_alert_limit,
        session=AlertSessionState.from_lists(read, resolved),
    )
    return {
        "scope": scope_payload(scope),
        "days": days,
        "risk": {
            "level": snapshot.risk_level.value,
            "avg_score": snapshot.risk_average,
            "meta": snapshot.risk_meta(),
        },
        "daily": [daily_payload(agg) for agg in snapshot.daily],
        "burnout": burnout_payload(snapshot.burnout),
        "critical_alerts": [alert_payload(alert) for alert in snapshot.critical_alerts],
        "unread_alerts": snapshot.unread_alerts,
        "employees": [employee_payload(employee) for employee in snapshot.roster],
        "employees_total": len(snapshot.roster),
        "tracking_count": snapshot.tracking_count,
        "errors": snapshot.errors,
    }


@router.get("/aggregates/daily")
def daily_aggregates_api(
    start: date | None = None,
    end: date | None = None,
    days: int | None = Query(default=None, ge=1, le=366),
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> dict:
    if start is not None:
        try:
            window = TimeWindow.between(_day_start(start), _day_start(end) if end else utcnow())
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
    else:
        window = TimeWindow.trailing(days or settings.dashboard_daily_days)

    aggregates = fetch_daily_aggregates(conn, scope, window)
    avg, total = weighted_average(aggregates)
    level = classify_risk(avg, total)
    return {
        "start": window.start.isoformat(),
        "end": window.end.isoformat() if window.end else None,
        "daily": [daily_payload(agg) for agg in aggregates],
        "risk": {"level": level.value, "avg_score": avg, "entries": total, "meta": risk_meta(level, avg)},
    }


@router.get("/aggregates/burnout")
def burnout_api(
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> dict:
    return burnout_payload(fetch_burnout_summary(conn, scope))


@router.get("/alerts/critical")
def critical_alerts_api(
    days: int = Query(default=DEFAULT_ALERT_DAYS, ge=1, le=366),
    limit: int = Query(default=DEFAULT_ALERT_LIMIT, ge=1, le=MAX_ALERT_LIMIT),
    read: list[str] | None = Query(default=None),
    resolved: list[str] | None = Query(default=None),
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> dict:
    alerts = fetch_critical_alerts(
        conn,
        scope,
        days=days,
        limit=limit,
        session=AlertSessionState.from_lists(read, resolved),
    )
    return {
        "alerts": [alert_payload(alert) for alert in alerts],
        "unread": unread_count(alerts),
    }


@router.get("/alerts/search")
def search_alerts_api(
    q: str = Query(min_length=1, max_length=100),
    limit: int = Query(default=ALERT_SEARCH_LIMIT, ge=1, le=20),
    read: list[str] | None = Query(default=None),
    resolved: list[str] | None = Query(default=None),
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> dict:
    alerts = find_critical_alerts(
        conn,
        scope,
        q,
        limit=limit,
        session=AlertSessionState.from_lists(read, resolved),
    )
    return {"alerts": [alert_payload(alert) for alert in alerts]}


@router.get("/employees/search")
def search_employees_api(
    q: str = Query(min_length=1, max_length=100),
    limit: int = Query(default=EMPLOYEE_SEARCH_LIMIT, ge=1, le=20),
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> dict:
    return {"employees": [employee_payload(employee) for employee in find_employees(conn, scope, q, limit=limit)]}


@router.get("/employees")
def employees_api(
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> dict:
    roster = fetch_roster(conn, scope)
    return {
        "employees": [employee_payload(employee) for employee in roster],
        "tracking_count": sum(1 for employee in roster if employee.entries > 0),
    }


@router.get("/employees/{user_id}/entries")
def employee_entries_api(
    user_id: str,
    limit: int = Query(default=EMPLOYEE_ENTRY_LIMIT, ge=1, le=MAX_ALERT_LIMIT),
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> dict:
    entries = fetch_employee_entries(conn, scope, user_id, limit=limit)
    if entries is None:
        raise HTTPException(status_code=404, detail="employee not found")
    return {"user_id": user_id, "entries": [entry_payload(entry) for entry in entries]}
