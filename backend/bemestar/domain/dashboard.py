from __future__ import annotations

import contextvars
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from bemestar.domain.aggregation import (
    DEFAULT_ALERT_DAYS,
    DEFAULT_ALERT_LIMIT,
    TimeWindow,
    fetch_burnout_summary,
    fetch_critical_alerts,
    fetch_daily_aggregates,
    fetch_roster,
    unread_count,
    utcnow,
)
from bemestar.domain.errors import StoreUnavailable
from bemestar.domain.models import (
    AlertSessionState,
    BurnoutSummary,
    CriticalAlert,
    DailyAggregate,
    EmployeeSummary,
    Scope,
)
from bemestar.domain.risk import (
    BurnoutLevel,
    RiskLevel,
    burnout_meta,
    classify_burnout,
    classify_risk,
    risk_meta,
    weighted_average,
)

logger = logging.getLogger("bemestar.aggregation")

DEFAULT_DAILY_DAYS = 30


@dataclass
class DashboardSnapshot:
    scope: Scope
    daily: list[DailyAggregate] = field(default_factory=list)
    burnout: BurnoutSummary = field(default_factory=BurnoutSummary.no_data)
    critical_alerts: list[CriticalAlert] = field(default_factory=list)
    roster: list[EmployeeSummary] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def tracking_count(self) -> int:
        return sum(1 for employee in self.roster if employee.entries > 0)

    @property
    def unread_alerts(self) -> int:
        return unread_count(self.critical_alerts)

    @property
    def risk_average(self) -> float | None:
        avg, _ = weighted_average(self.daily)
        return avg

    @property
    def risk_level(self) -> RiskLevel:
        avg, total = weighted_average(self.daily)
        return classify_risk(avg, total)

    @property
    def burnout_level(self) -> BurnoutLevel:
        return classify_burnout(self.burnout)

    def risk_meta(self) -> dict[str, str]:
        return risk_meta(self.risk_level, self.risk_average)

    def burnout_meta(self) -> dict[str, str]:
        return burnout_meta(self.burnout_level)


def _run_branch(engine: Engine, loader: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    try:
        conn = engine.connect()
    except SQLAlchemyError as exc:
        raise StoreUnavailable("connect", type(exc).__name__) from exc
    with conn:
        return loader(conn, *args, **kwargs)


def load_dashboard(
    engine: Engine,
    scope: Scope,
    *,
    days: int = DEFAULT_DAILY_DAYS,
    alert_days: int = DEFAULT_ALERT_DAYS,
    alert_limit: int = DEFAULT_ALERT_LIMIT,
    now: datetime | None = None,
    session: AlertSessionState | None = None,
) -> DashboardSnapshot:
    """Load the four dashboard branches concurrently for an already resolved scope.

    Each branch gets its own connection and a copy of the logging context.
    A branch that fails with StoreUnavailable is reported in ``errors`` and
    keeps its empty default; the other branches are unaffected.
    """
    now = now or utcnow()
    snapshot = DashboardSnapshot(scope=scope)
    if scope.is_empty:
        logger.info("dashboard.load scope=%s empty", scope.label)
        return snapshot

    window = TimeWindow.trailing(days, now=now)
    jobs: dict[str, tuple[Callable[..., Any], tuple[Any, ...], dict[str, Any]]] = {
        "daily": (fetch_daily_aggregates, (scope, window), {}),
        "burnout": (fetch_burnout_summary, (scope,), {"now": now}),
        "alerts": (
            fetch_critical_alerts,
            (scope,),
            {"days": alert_days, "limit": alert_limit, "now": now, "session": session},
        ),
        "roster": (fetch_roster, (scope,), {}),
    }

    results: dict[str, Any] = {}
    with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix="dashboard") as executor:
        futures = {
            executor.submit(contextvars.copy_context().run, _run_branch, engine, loader, *args, **kwargs): name
            for name, (loader, args, kwargs) in jobs.items()
        }
        for future in as_completed(futures):
            name = futures[future]
            try:
                results[name] = future.result()
            except StoreUnavailable as exc:
                logger.warning("dashboard.branch failed branch=%s operation=%s", name, exc.operation)
                snapshot.errors[name] = f"store_unavailable:{exc.operation}"

    snapshot.daily = results.get("daily", snapshot.daily)
    snapshot.burnout = results.get("burnout", snapshot.burnout)
    snapshot.critical_alerts = results.get("alerts", snapshot.critical_alerts)
    snapshot.roster = results.get("roster", snapshot.roster)

    logger.info(
        "dashboard.load scope=%s days=%s daily=%s alerts=%s roster=%s errors=%s",
        scope.label,
        days,
        len(snapshot.daily),
        len(snapshot.critical_alerts),
        len(snapshot.roster),
        ",".join(sorted(snapshot.errors)) or "-",
    )
    return snapshot
