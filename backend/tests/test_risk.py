import math
import sys
import unittest
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from bemestar.domain.models import BurnoutSummary, DailyAggregate  # noqa: E402
from bemestar.domain.risk import (  # noqa: E402
    BurnoutLevel,
    RiskLevel,
    burnout_meta,
    classify_burnout,
    classify_cycle,
    classify_risk,
    risk_meta,
    weighted_average,
)


def _summary(avg: float, entries: int = 5) -> BurnoutSummary:
    return BurnoutSummary(
        avg_score_7d=avg,
        entries_7d=entries,
        critical_count=0,
        count_1_2=0,
        count_3=0,
        count_4_5=0,
        has_data=entries > 0,
    )


class ClassifyRiskTests(unittest.TestCase):
    def test_threshold_boundaries(self) -> None:
        self.assertEqual(classify_risk(1.0, 3), RiskLevel.HIGH)
        self.assertEqual(classify_risk(2.0, 3), RiskLevel.HIGH)
        self.assertEqual(classify_risk(2.01, 3), RiskLevel.MODERATE)
        self.assertEqual(classify_risk(3.0, 3), RiskLevel.MODERATE)
        self.assertEqual(classify_risk(3.01, 3), RiskLevel.LOW)
        self.assertEqual(classify_risk(5.0, 3), RiskLevel.LOW)

    def test_no_entries_or_unusable_average_is_no_data(self) -> None:
        self.assertEqual(classify_risk(1.0, 0), RiskLevel.NO_DATA)
        self.assertEqual(classify_risk(None, 4), RiskLevel.NO_DATA)
        self.assertEqual(classify_risk(math.nan, 4), RiskLevel.NO_DATA)
        self.assertEqual(classify_risk(math.inf, 4), RiskLevel.NO_DATA)

    def test_lower_average_is_never_less_severe(self) -> None:
        grid = [1 + step * 0.05 for step in range(81)]
        severities = [classify_risk(avg, 1).severity for avg in grid]
        for lower, higher in zip(severities, severities[1:]):
            self.assertGreaterEqual(lower, higher)

    def test_weighted_average_weights_by_entry_count(self) -> None:
        aggregates = [
            DailyAggregate(day=date(2026, 2, 10), avg_score=1.0, entry_count=1),
            DailyAggregate(day=date(2026, 2, 11), avg_score=5.0, entry_count=3),
            DailyAggregate(day=date(2026, 2, 12), avg_score=2.0, entry_count=0),
        ]

        avg, total = weighted_average(aggregates)

        self.assertEqual(total, 4)
        self.assertAlmostEqual(avg, 4.0)
        self.assertEqual(classify_cycle(aggregates), RiskLevel.LOW)

    def test_cycle_without_aggregates_is_no_data(self) -> None:
        self.assertEqual(weighted_average([]), (None, 0))
        self.assertEqual(classify_cycle([]), RiskLevel.NO_DATA)

    def test_risk_meta_hint_shows_two_decimals(self) -> None:
        meta = risk_meta(RiskLevel.MODERATE, 2.456)

        self.assertEqual(meta["label"], "Moderado")
        self.assertEqual(meta["tag"], "ATENÇÃO")
        self.assertIn("2.46", meta["hint"])
        self.assertEqual(risk_meta(RiskLevel.NO_DATA)["hint"], "Sem registros")


class ClassifyBurnoutTests(unittest.TestCase):
    def test_levels(self) -> None:
        self.assertEqual(classify_burnout(_summary(1.5)), BurnoutLevel.HIGH)
        self.assertEqual(classify_burnout(_summary(2.0)), BurnoutLevel.HIGH)
        self.assertEqual(classify_burnout(_summary(2.5)), BurnoutLevel.MODERATE)
        self.assertEqual(classify_burnout(_summary(4.2)), BurnoutLevel.NONE)

    def test_no_data_sentinel(self) -> None:
        self.assertEqual(classify_burnout(BurnoutSummary.no_data()), BurnoutLevel.NO_DATA)
        self.assertEqual(classify_burnout(_summary(1.0, entries=0)), BurnoutLevel.NO_DATA)

    def test_display_meta(self) -> None:
        self.assertEqual(burnout_meta(BurnoutLevel.HIGH), {"label": "Alto risco", "tag": "ALERTA"})
        self.assertEqual(burnout_meta(BurnoutLevel.NO_DATA), {"label": "Sem dados", "tag": "SEM DADOS"})


if __name__ == "__main__":
    unittest.main()
