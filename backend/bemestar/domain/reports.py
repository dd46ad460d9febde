from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.engine import Connection

from bemestar.db.repository import (
    count_recent_critical_alerts,
    delete_all_reports,
    delete_report,
    fetch_reports,
    insert_report,
)
from bemestar.domain.advisory import request_actions, summarize_actions
from bemestar.domain.aggregation import (
    TimeWindow,
    daily_aggregates,
    fetch_burnout_summary,
    fetch_roster,
    fetch_scoped_entries,
    month_has_data,
    partition_by_month,
    utcnow,
    valid_score,
)
from bemestar.domain.errors import AdvisoryUnavailable
from bemestar.domain.models import DailyAggregate, MoodEntry, Scope
from bemestar.domain.risk import RiskLevel, classify_risk, weighted_average
from bemestar.settings import settings

logger = logging.getLogger("bemestar.reports")

MONTH_NAMES = (
    "Janeiro",
    "Fevereiro",
    "Março",
    "Abril",
    "Maio",
    "Junho",
    "Julho",
    "Agosto",
    "Setembro",
    "Outubro",
    "Novembro",
    "Dezembro",
)

REPORT_LIST_LIMIT = 50
PREVIEW_DAYS = 7
WORST_DAYS = 3

_CYCLE_KEY_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


@dataclass(frozen=True)
class Cycle:
    key: str
    year: int
    month: int

    @property
    def label(self) -> str:
        return f"{MONTH_NAMES[self.month - 1]} {self.year}"

    @property
    def start(self) -> datetime:
        return datetime(self.year, self.month, 1, tzinfo=timezone.utc)

    @property
    def end(self) -> datetime:
        if self.month == 12:
            return datetime(self.year + 1, 1, 1, tzinfo=timezone.utc)
        return datetime(self.year, self.month + 1, 1, tzinfo=timezone.utc)

    @property
    def window(self) -> TimeWindow:
        return TimeWindow.between(self.start, self.end)


def parse_cycle(cycle_key: str) -> Cycle:
    key = (cycle_key or "").strip()
    match = _CYCLE_KEY_RE.match(key)
    if not match:
        raise ValueError(f"invalid cycle key {cycle_key!r}; expected YYYY-MM")
    return Cycle(key=key, year=int(match.group(1)), month=int(match.group(2)))


@dataclass
class CycleMetrics:
    cycle_key: str
    cycle_label: str
    employees_analyzed: int = 0
    critical_alerts: int = 0
    burnout_avg_7d: float = 0.0
    cycle_avg: float | None = None
    cycle_risk: RiskLevel = RiskLevel.NO_DATA
    ai_summary: str | None = None
    has_data: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["cycle_risk"] = self.cycle_risk.value
        return data


@dataclass
class PreviewInsights:
    last7: list[DailyAggregate] = field(default_factory=list)
    mood_donut: dict[str, int] | None = None
    critical_alerts: int = 0
    worst_days: list[DailyAggregate] = field(default_factory=list)


# -- pure helpers -----------------------------------------------------------------


def mood_donut(entries: list[MoodEntry]) -> dict[str, int] | None:
    happy = ok = sad = 0
    for entry in entries:
        score = valid_score(entry)
        if score is None:
            continue
        if score >= 4:
            happy += 1
        elif score == 3:
            ok += 1
        else:
            sad += 1
    if happy + ok + sad == 0:
        return None
    return {"happy": happy, "ok": ok, "sad": sad}


def worst_days(aggregates: list[DailyAggregate], *, limit: int = WORST_DAYS) -> list[DailyAggregate]:
    return sorted(aggregates, key=lambda agg: (agg.avg_score, agg.day))[:limit]


def _burnout_reference(cycle: Cycle, now: datetime) -> datetime:
    return min(cycle.end, now)


def fetch_cycle_entries(conn: Connection, scope: Scope, cycle: Cycle) -> list[MoodEntry]:
    """Entries created inside the cycle whose own day also falls in the cycle month."""
    return partition_by_month(fetch_scoped_entries(conn, scope, cycle.window)).get(cycle.key, [])


# -- cycle reads ------------------------------------------------------------------


def fetch_cycle_metrics(
    conn: Connection,
    scope: Scope,
    cycle_key: str,
    *,
    now: datetime | None = None,
) -> CycleMetrics:
    cycle = parse_cycle(cycle_key)
    metrics = CycleMetrics(cycle_key=cycle.key, cycle_label=cycle.label)
    if not month_has_data(conn, scope, cycle.start, cycle.end):
        logger.info("reports.metrics scope=%s cycle=%s has_data=false", scope.label, cycle.key)
        return metrics

    entries = fetch_cycle_entries(conn, scope, cycle)
    daily = daily_aggregates(entries)
    cycle_avg, total = weighted_average(daily)
    burnout = fetch_burnout_summary(conn, scope, now=_burnout_reference(cycle, now or utcnow()))

    metrics.has_data = True
    metrics.employees_analyzed = len(fetch_roster(conn, scope))
    metrics.critical_alerts = count_recent_critical_alerts(
        conn,
        company_id=scope.company_filter,
        since=cycle.start,
        until=cycle.end,
    )
    metrics.burnout_avg_7d = burnout.avg_score_7d if burnout.has_data else 0.0
    metrics.cycle_avg = cycle_avg
    metrics.cycle_risk = classify_risk(cycle_avg, total)
    logger.info(
        "reports.metrics scope=%s cycle=%s has_data=true employees=%s alerts=%s risk=%s",
        scope.label,
        cycle.key,
        metrics.employees_analyzed,
        metrics.critical_alerts,
        metrics.cycle_risk.value,
    )
    return metrics


def fetch_preview_insights(conn: Connection, scope: Scope, cycle_key: str) -> PreviewInsights:
    cycle = parse_cycle(cycle_key)
    if not month_has_data(conn, scope, cycle.start, cycle.end):
        return PreviewInsights()

    entries = fetch_cycle_entries(conn, scope, cycle)
    daily = daily_aggregates(entries)
    return PreviewInsights(
        last7=daily[-PREVIEW_DAYS:],
        mood_donut=mood_donut(entries),
        critical_alerts=count_recent_critical_alerts(
            conn,
            company_id=scope.company_filter,
            since=cycle.start,
            until=cycle.end,
        ),
        worst_days=worst_days(daily),
    )


# -- executive summary ----------------------------------------------------------


def build_summary_prompt(metrics: CycleMetrics) -> str:
    cycle_avg = f"{metrics.cycle_avg:.2f}" if metrics.cycle_avg is not None else "sem dados"
    return (
        "Você é um especialista em riscos psicossociais no trabalho.\n"
        "Gere um resumo executivo (no máximo 3 bullets) para um relatório mensal.\n\n"
        "Dados do ciclo:\n"
        f"- Ciclo: {metrics.cycle_label}\n"
        f"- Funcionários analisados: {metrics.employees_analyzed}\n"
        f"- Alertas críticos: {metrics.critical_alerts}\n"
        f"- Burnout médio 7d: {metrics.burnout_avg_7d:.2f}\n"
        f"- Média do ciclo: {cycle_avg}\n\n"
        "Regras:\n"
        "- Português (BR)\n"
        "- Direto, estilo gestor\n"
        "- Inclua 1 recomendação prática"
    )


def generate_ai_summary(metrics: CycleMetrics, *, allow_mock: bool | None = None) -> str | None:
    if not metrics.has_data:
        return None
    allow_mock = settings.advisory_allow_mock if allow_mock is None else allow_mock
    try:
        actions, _ = request_actions(build_summary_prompt(metrics), [], allow_mock=allow_mock)
    except AdvisoryUnavailable as exc:
        logger.warning("reports.summary unavailable cycle=%s reason=%s", metrics.cycle_key, exc.reason)
        return None
    return summarize_actions(actions)


# -- report log -------------------------------------------------------------------


def create_report(
    conn: Connection,
    scope: Scope,
    cycle_key: str,
    *,
    include_ai_summary: bool = False,
    now: datetime | None = None,
    allow_mock: bool | None = None,
) -> dict[str, Any]:
    if scope.is_empty or not scope.caller_id:
        raise ValueError("caller has no company to report on")

    metrics = fetch_cycle_metrics(conn, scope, cycle_key, now=now)
    if include_ai_summary:
        metrics.ai_summary = generate_ai_summary(metrics, allow_mock=allow_mock)

    report = insert_report(
        conn,
        cycle_key=metrics.cycle_key,
        cycle_label=metrics.cycle_label,
        company_id=scope.company_filter,
        employees_analyzed=metrics.employees_analyzed,
        critical_alerts=metrics.critical_alerts,
        burnout_avg_7d=metrics.burnout_avg_7d,
        ai_summary=metrics.ai_summary,
        created_by=scope.caller_id,
        created_at=now,
    )
    logger.info("reports.create id=%s cycle=%s scope=%s", report["id"], metrics.cycle_key, scope.label)
    return report


def list_reports(conn: Connection, scope: Scope, *, limit: int = REPORT_LIST_LIMIT) -> list[dict[str, Any]]:
    if scope.is_empty:
        return []
    return fetch_reports(conn, company_id=scope.company_filter, limit=limit)


def remove_report(conn: Connection, scope: Scope, report_id: str) -> bool:
    if scope.is_empty:
        return False
    removed = delete_report(conn, report_id, company_id=scope.company_filter)
    logger.info("reports.delete id=%s removed=%s scope=%s", report_id, removed, scope.label)
    return removed


def remove_all_reports(conn: Connection, scope: Scope) -> int:
    if scope.is_empty:
        return 0
    removed = delete_all_reports(conn, company_id=scope.company_filter)
    logger.info("reports.delete_all removed=%s scope=%s", removed, scope.label)
    return removed
