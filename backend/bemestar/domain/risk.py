from __future__ import annotations

import math
from enum import Enum
from typing import Iterable

from bemestar.domain.models import BurnoutSummary, DailyAggregate

# Lower mood average means higher risk for both scales. Upper bounds are inclusive.
RISK_HIGH_MAX = 2.0
RISK_MODERATE_MAX = 3.0

BURNOUT_HIGH_MAX = 2.0
BURNOUT_MODERATE_MAX = 3.0


class RiskLevel(str, Enum):
    NO_DATA = "no_data"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"

    @property
    def severity(self) -> int:
        return _RISK_SEVERITY[self]


_RISK_SEVERITY = {
    RiskLevel.NO_DATA: 0,
    RiskLevel.LOW: 1,
    RiskLevel.MODERATE: 2,
    RiskLevel.HIGH: 3,
}


class BurnoutLevel(str, Enum):
    NO_DATA = "no_data"
    NONE = "none"
    MODERATE = "moderate"
    HIGH = "high"


_RISK_META = {
    RiskLevel.HIGH: ("Alto", "RISCO"),
    RiskLevel.MODERATE: ("Moderado", "ATENÇÃO"),
    RiskLevel.LOW: ("Baixo", "OK"),
    RiskLevel.NO_DATA: ("Sem dados", "—"),
}

_BURNOUT_META = {
    BurnoutLevel.HIGH: ("Alto risco", "ALERTA"),
    BurnoutLevel.MODERATE: ("Médio risco", "ATENÇÃO"),
    BurnoutLevel.NONE: ("Sem risco", "OK"),
    BurnoutLevel.NO_DATA: ("Sem dados", "SEM DADOS"),
}


def _usable(avg: float | None) -> bool:
    return avg is not None and math.isfinite(avg)


def classify_risk(avg: float | None, entry_count: int) -> RiskLevel:
    if entry_count <= 0 or not _usable(avg):
        return RiskLevel.NO_DATA
    if avg <= RISK_HIGH_MAX:
        return RiskLevel.HIGH
    if avg <= RISK_MODERATE_MAX:
        return RiskLevel.MODERATE
    return RiskLevel.LOW


def classify_daily(aggregate: DailyAggregate) -> RiskLevel:
    return classify_risk(aggregate.avg_score, aggregate.entry_count)


def weighted_average(aggregates: Iterable[DailyAggregate]) -> tuple[float | None, int]:
    """Mean of daily averages weighted by each day's entry count."""
    total_entries = 0
    weighted_sum = 0.0
    for agg in aggregates:
        if agg.entry_count <= 0:
            continue
        total_entries += agg.entry_count
        weighted_sum += agg.avg_score * agg.entry_count
    if total_entries <= 0:
        return None, 0
    return weighted_sum / total_entries, total_entries


def classify_cycle(aggregates: Iterable[DailyAggregate]) -> RiskLevel:
    avg, total = weighted_average(aggregates)
    return classify_risk(avg, total)


def classify_burnout(summary: BurnoutSummary) -> BurnoutLevel:
    if not summary.has_data or summary.entries_7d <= 0 or not _usable(summary.avg_score_7d):
        return BurnoutLevel.NO_DATA
    if summary.avg_score_7d <= BURNOUT_HIGH_MAX:
        return BurnoutLevel.HIGH
    if summary.avg_score_7d <= BURNOUT_MODERATE_MAX:
        return BurnoutLevel.MODERATE
    return BurnoutLevel.NONE


def risk_meta(level: RiskLevel, avg: float | None = None) -> dict[str, str]:
    label, tag = _RISK_META[level]
    if level is RiskLevel.NO_DATA or not _usable(avg):
        hint = "Sem registros"
    elif level is RiskLevel.HIGH:
        hint = f"Média ≤ {RISK_HIGH_MAX:.1f} (atual: {avg:.2f})"
    elif level is RiskLevel.MODERATE:
        hint = f"Média entre {RISK_HIGH_MAX:.1f} e {RISK_MODERATE_MAX:.1f} (atual: {avg:.2f})"
    else:
        hint = f"Média > {RISK_MODERATE_MAX:.1f} (atual: {avg:.2f})"
    return {"label": label, "tag": tag, "hint": hint}


def burnout_meta(level: BurnoutLevel) -> dict[str, str]:
    label, tag = _BURNOUT_META[level]
    return {"label": label, "tag": tag}
