from __future__ import annotations

from datetime import date, datetime
from typing import Any

from bemestar.domain.models import (
    BurnoutSummary,
    CriticalAlert,
    DailyAggregate,
    EmployeeSummary,
    MoodEntry,
    Scope,
)
from bemestar.domain.risk import burnout_meta, classify_burnout, classify_daily


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def scope_payload(scope: Scope) -> dict[str, Any]:
    return {
        "caller_id": scope.caller_id,
        "is_admin": scope.is_admin,
        "role": scope.role,
        "effective_company_id": scope.effective_company_id,
        "is_empty": scope.is_empty,
        "label": scope.label,
    }


def daily_payload(aggregate: DailyAggregate) -> dict[str, Any]:
    return {
        "day": aggregate.day.isoformat(),
        "avg_score": round(aggregate.avg_score, 4),
        "entry_count": aggregate.entry_count,
        "risk": classify_daily(aggregate).value,
    }


def burnout_payload(summary: BurnoutSummary) -> dict[str, Any]:
    level = classify_burnout(summary)
    return {
        "avg_score_7d": round(summary.avg_score_7d, 4),
        "entries_7d": summary.entries_7d,
        "critical_count": summary.critical_count,
        "count_1_2": summary.count_1_2,
        "count_3": summary.count_3,
        "count_4_5": summary.count_4_5,
        "has_data": summary.has_data,
        "level": level.value,
        "meta": burnout_meta(level),
    }


def alert_payload(alert: CriticalAlert) -> dict[str, Any]:
    return {
        "entry_id": alert.entry_id,
        "user_id": alert.user_id,
        "name": alert.name,
        "score": alert.score,
        "day": _iso(alert.day),
        "created_at": _iso(alert.created_at),
        "read": alert.read,
        "resolved": alert.resolved,
    }


def employee_payload(employee: EmployeeSummary) -> dict[str, Any]:
    return {
        "user_id": employee.user_id,
        "name": employee.name,
        "company_id": employee.company_id,
        "entries": employee.entries,
        "last_entry_at": _iso(employee.last_entry_at),
    }


def entry_payload(entry: MoodEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "company_id": entry.company_id,
        "score": entry.score,
        "day": _iso(entry.day),
        "created_at": _iso(entry.created_at),
        "note": entry.note,
        "mental_state": entry.mental_state,
        "sleep_quality": entry.sleep_quality,
        "work_demand": entry.work_demand,
        "fatigue_level": entry.fatigue_level,
    }
