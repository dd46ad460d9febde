from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from typing import Iterable

from sqlalchemy.engine import Connection

from bemestar.db.repository import (
    count_mood_entries,
    count_recent_critical_alerts,
    fetch_employee_roster,
    fetch_mood_entries,
    fetch_profile,
    fetch_profiles_by_ids,
    search_employees,
)
from bemestar.domain.models import (
    CRITICAL_SCORE,
    MAX_SCORE,
    MIN_SCORE,
    UNKNOWN_NAME,
    AlertSessionState,
    BurnoutSummary,
    CriticalAlert,
    DailyAggregate,
    EmployeeSummary,
    MoodEntry,
    Profile,
    Scope,
)

logger = logging.getLogger("bemestar.aggregation")

BURNOUT_WINDOW_DAYS = 7
DEFAULT_ALERT_DAYS = 7
DEFAULT_ALERT_LIMIT = 10
MAX_ALERT_LIMIT = 100
EMPLOYEE_ENTRY_LIMIT = 50
EMPLOYEE_SEARCH_LIMIT = 3
ALERT_SEARCH_LIMIT = 5


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TimeWindow:
    """Half-open [start, end) interval over created_at."""

    start: datetime
    end: datetime | None = None

    @classmethod
    def trailing(cls, days: int, *, now: datetime | None = None) -> "TimeWindow":
        now = now or utcnow()
        return cls(start=now - timedelta(days=max(1, int(days))), end=None)

    @classmethod
    def between(cls, start: datetime, end: datetime) -> "TimeWindow":
        if end <= start:
            raise ValueError("window end must be after start")
        return cls(start=start, end=end)


@dataclass(frozen=True)
class AggregateBundle:
    daily: list[DailyAggregate]
    burnout: BurnoutSummary
    critical_alerts: list[CriticalAlert]


# -- pure computations ----------------------------------------------------------


def valid_score(entry: MoodEntry) -> int | None:
    score = entry.score
    if score is None or isinstance(score, bool):
        return None
    if MIN_SCORE <= score <= MAX_SCORE:
        return int(score)
    return None


def entry_day(entry: MoodEntry) -> date | None:
    if entry.day is not None:
        return entry.day
    if entry.created_at is not None:
        return entry.created_at.astimezone(timezone.utc).date()
    return None


def daily_aggregates(entries: Iterable[MoodEntry]) -> list[DailyAggregate]:
    totals: dict[date, list[int]] = defaultdict(lambda: [0, 0])
    for entry in entries:
        score = valid_score(entry)
        day = entry_day(entry)
        if score is None or day is None:
            continue
        bucket = totals[day]
        bucket[0] += score
        bucket[1] += 1
    return [
        DailyAggregate(day=day, avg_score=total / count, entry_count=count)
        for day, (total, count) in sorted(totals.items())
        if count > 0
    ]


def burnout_summary(
    entries: Iterable[MoodEntry],
    *,
    now: datetime | None = None,
    window_days: int = BURNOUT_WINDOW_DAYS,
) -> BurnoutSummary:
    now = now or utcnow()
    since = now - timedelta(days=window_days)
    scores: list[int] = []
    for entry in entries:
        if entry.created_at is None or not since <= entry.created_at < now:
            continue
        score = valid_score(entry)
        if score is not None:
            scores.append(score)
    if not scores:
        return BurnoutSummary.no_data()
    return BurnoutSummary(
        avg_score_7d=sum(scores) / len(scores),
        entries_7d=len(scores),
        critical_count=sum(1 for s in scores if s == CRITICAL_SCORE),
        count_1_2=sum(1 for s in scores if s in (1, 2)),
        count_3=sum(1 for s in scores if s == 3),
        count_4_5=sum(1 for s in scores if s in (4, 5)),
        has_data=True,
    )


def month_key(value: date | datetime) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def partition_by_month(entries: Iterable[MoodEntry]) -> dict[str, list[MoodEntry]]:
    months: dict[str, list[MoodEntry]] = defaultdict(list)
    for entry in entries:
        day = entry_day(entry)
        if day is None:
            continue
        months[month_key(day)].append(entry)
    return dict(sorted(months.items()))


def build_critical_alerts(entries: Iterable[MoodEntry], profiles: dict[str, Profile]) -> list[CriticalAlert]:
    alerts: list[CriticalAlert] = []
    for entry in entries:
        if valid_score(entry) != CRITICAL_SCORE:
            continue
        profile = profiles.get(entry.user_id)
        name = ((profile.name if profile else None) or "").strip() or UNKNOWN_NAME
        alerts.append(
            CriticalAlert(
                entry_id=entry.id,
                user_id=entry.user_id,
                name=name,
                score=CRITICAL_SCORE,
                day=entry_day(entry),
                created_at=entry.created_at,
            )
        )
    return alerts


def annotate_alerts(alerts: Iterable[CriticalAlert], session: AlertSessionState | None) -> list[CriticalAlert]:
    if session is None:
        return list(alerts)
    return [
        replace(
            alert,
            read=alert.entry_id in session.read_ids,
            resolved=alert.entry_id in session.resolved_ids,
        )
        for alert in alerts
    ]


def unread_count(alerts: Iterable[CriticalAlert]) -> int:
    return sum(1 for alert in alerts if not alert.read and not alert.resolved)


# -- scoped store reads ---------------------------------------------------------


def fetch_scoped_entries(
    conn: Connection,
    scope: Scope,
    window: TimeWindow,
    *,
    score: int | None = None,
    newest_first: bool = False,
    limit: int | None = None,
) -> list[MoodEntry]:
    if scope.is_empty:
        return []
    return fetch_mood_entries(
        conn,
        company_id=scope.company_filter,
        since=window.start,
        until=window.end,
        score=score,
        newest_first=newest_first,
        limit=limit,
    )


def fetch_daily_aggregates(conn: Connection, scope: Scope, window: TimeWindow) -> list[DailyAggregate]:
    aggregates = daily_aggregates(fetch_scoped_entries(conn, scope, window))
    logger.debug("aggregation.daily scope=%s days=%s", scope.label, len(aggregates))
    return aggregates


def fetch_burnout_summary(conn: Connection, scope: Scope, *, now: datetime | None = None) -> BurnoutSummary:
    now = now or utcnow()
    window = TimeWindow(start=now - timedelta(days=BURNOUT_WINDOW_DAYS), end=now)
    entries = fetch_scoped_entries(conn, scope, window)
    return burnout_summary(entries, now=now)


def fetch_critical_alerts(
    conn: Connection,
    scope: Scope,
    *,
    days: int = DEFAULT_ALERT_DAYS,
    limit: int = DEFAULT_ALERT_LIMIT,
    now: datetime | None = None,
    session: AlertSessionState | None = None,
) -> list[CriticalAlert]:
    limit = max(1, min(MAX_ALERT_LIMIT, int(limit)))
    window = TimeWindow.trailing(days, now=now)
    entries = fetch_scoped_entries(conn, scope, window, score=CRITICAL_SCORE, newest_first=True, limit=limit)
    if not entries:
        return []
    profiles = fetch_profiles_by_ids(conn, (e.user_id for e in entries))
    return annotate_alerts(build_critical_alerts(entries, profiles), session)


def fetch_roster(conn: Connection, scope: Scope) -> list[EmployeeSummary]:
    if scope.is_empty:
        return []
    return fetch_employee_roster(conn, company_id=scope.company_filter)


def find_employees(conn: Connection, scope: Scope, query: str, *, limit: int = EMPLOYEE_SEARCH_LIMIT) -> list[EmployeeSummary]:
    if scope.is_empty or not (query or "").strip():
        return []
    return search_employees(conn, query, company_id=scope.company_filter, limit=limit)


def find_critical_alerts(
    conn: Connection,
    scope: Scope,
    query: str,
    *,
    days: int = DEFAULT_ALERT_DAYS,
    limit: int = ALERT_SEARCH_LIMIT,
    now: datetime | None = None,
    session: AlertSessionState | None = None,
) -> list[CriticalAlert]:
    """Recent critical alerts whose employee name contains the query."""
    needle = (query or "").strip().casefold()
    if scope.is_empty or not needle:
        return []
    alerts = fetch_critical_alerts(conn, scope, days=days, limit=MAX_ALERT_LIMIT, now=now, session=session)
    return [alert for alert in alerts if needle in alert.name.casefold()][: max(1, int(limit))]


def fetch_employee_entries(
    conn: Connection,
    scope: Scope,
    user_id: str,
    *,
    limit: int = EMPLOYEE_ENTRY_LIMIT,
) -> list[MoodEntry] | None:
    """Newest entries for one employee, or None when the employee is outside the scope."""
    if scope.is_empty:
        return None
    profile = fetch_profile(conn, user_id)
    if profile is None:
        return None
    if not scope.is_admin and profile.company_id != scope.effective_company_id:
        return None
    return fetch_mood_entries(
        conn,
        company_id=scope.company_filter,
        user_id=user_id,
        newest_first=True,
        limit=max(1, min(MAX_ALERT_LIMIT, int(limit))),
    )


def month_has_data(conn: Connection, scope: Scope, start: datetime, end: datetime) -> bool:
    """Either source alone can under-report, so both are consulted before saying no."""
    if scope.is_empty:
        return False
    company_id = scope.company_filter
    if count_recent_critical_alerts(conn, company_id=company_id, since=start, until=end) > 0:
        return True
    return count_mood_entries(conn, company_id=company_id, since=start, until=end) > 0


def aggregate(
    conn: Connection,
    scope: Scope,
    window: TimeWindow,
    *,
    alert_days: int = DEFAULT_ALERT_DAYS,
    alert_limit: int = DEFAULT_ALERT_LIMIT,
    now: datetime | None = None,
) -> AggregateBundle:
    now = now or utcnow()
    return AggregateBundle(
        daily=fetch_daily_aggregates(conn, scope, window),
        burnout=fetch_burnout_summary(conn, scope, now=now),
        critical_alerts=fetch_critical_alerts(conn, scope, days=alert_days, limit=alert_limit, now=now),
    )
