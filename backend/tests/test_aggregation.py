import unittest
from datetime import date, datetime, timedelta, timezone

from support import NOW, StoreTestCase

from bemestar.domain.aggregation import (
    TimeWindow,
    aggregate,
    burnout_summary,
    daily_aggregates,
    fetch_burnout_summary,
    fetch_critical_alerts,
    fetch_daily_aggregates,
    fetch_employee_entries,
    fetch_roster,
    find_critical_alerts,
    find_employees,
    month_has_data,
    partition_by_month,
    unread_count,
)
from bemestar.domain.models import AlertSessionState, MoodEntry, Scope
from bemestar.domain.risk import BurnoutLevel, RiskLevel, classify_burnout, classify_daily

ADMIN = Scope(is_admin=True, role="admin", effective_company_id=None, caller_id="root")
C1 = Scope(is_admin=False, role="manager", effective_company_id="c1", caller_id="mgr")
C2 = Scope(is_admin=False, role="manager", effective_company_id="c2", caller_id="mgr2")
EMPTY = Scope(is_admin=False, role="employee", effective_company_id=None, caller_id="lost")

FEB = TimeWindow.between(
    datetime(2026, 2, 1, tzinfo=timezone.utc),
    datetime(2026, 3, 1, tzinfo=timezone.utc),
)


def _entry(entry_id, score, created_at, day=None):
    return MoodEntry(
        id=entry_id,
        user_id="u",
        company_id="c1",
        score=score,
        created_at=created_at,
        day=day,
    )


class PureAggregationTests(unittest.TestCase):
    def test_out_of_domain_scores_are_ignored(self) -> None:
        at = datetime(2026, 2, 10, 9, tzinfo=timezone.utc)
        entries = [_entry("a", 0, at), _entry("b", 6, at), _entry("c", None, at), _entry("d", 4, at)]

        result = daily_aggregates(entries)

        self.assertEqual(len(result), 1)
        self.assertEqual(result[0].entry_count, 1)
        self.assertEqual(result[0].avg_score, 4.0)

    def test_days_are_sorted_and_empty_days_omitted(self) -> None:
        entries = [
            _entry("a", 2, datetime(2026, 2, 12, 9, tzinfo=timezone.utc)),
            _entry("b", 4, datetime(2026, 2, 10, 9, tzinfo=timezone.utc)),
            _entry("c", 0, datetime(2026, 2, 11, 9, tzinfo=timezone.utc)),
        ]

        days = [agg.day for agg in daily_aggregates(entries)]

        self.assertEqual(days, [date(2026, 2, 10), date(2026, 2, 12)])

    def test_explicit_day_wins_over_created_at(self) -> None:
        entries = [_entry("a", 3, datetime(2026, 2, 11, 1, tzinfo=timezone.utc), day=date(2026, 2, 10))]

        self.assertEqual(daily_aggregates(entries)[0].day, date(2026, 2, 10))

    def test_burnout_summary_counts_buckets(self) -> None:
        entries = [
            _entry(str(i), score, NOW - timedelta(days=1))
            for i, score in enumerate([1, 1, 2, 3, 4, 5])
        ]
        entries.append(_entry("old", 1, NOW - timedelta(days=8)))

        summary = burnout_summary(entries, now=NOW)

        self.assertTrue(summary.has_data)
        self.assertEqual(summary.entries_7d, 6)
        self.assertEqual(summary.critical_count, 2)
        self.assertEqual(summary.count_1_2, 3)
        self.assertEqual(summary.count_3, 1)
        self.assertEqual(summary.count_4_5, 2)
        self.assertAlmostEqual(summary.avg_score_7d, 16 / 6)

    def test_burnout_summary_excludes_entries_after_reference(self) -> None:
        entries = [
            _entry("in", 2, NOW - timedelta(days=1)),
            _entry("at", 1, NOW),
            _entry("later", 1, NOW + timedelta(hours=3)),
        ]

        summary = burnout_summary(entries, now=NOW)

        self.assertEqual(summary.entries_7d, 1)
        self.assertAlmostEqual(summary.avg_score_7d, 2.0)

    def test_burnout_summary_without_entries_is_no_data(self) -> None:
        summary = burnout_summary([], now=NOW)

        self.assertFalse(summary.has_data)
        self.assertEqual(classify_burnout(summary), BurnoutLevel.NO_DATA)

    def test_partition_by_month(self) -> None:
        entries = [
            _entry("a", 3, datetime(2026, 1, 31, 23, tzinfo=timezone.utc)),
            _entry("b", 3, datetime(2026, 2, 1, 0, tzinfo=timezone.utc)),
        ]

        months = partition_by_month(entries)

        self.assertEqual(list(months), ["2026-01", "2026-02"])

    def test_window_rejects_inverted_bounds(self) -> None:
        with self.assertRaises(ValueError):
            TimeWindow.between(NOW, NOW - timedelta(days=1))


class ScopedAggregationTests(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.add_profile("a1", company_id="c1", name="Ana")
        self.add_profile("a2", company_id="c1", name="  ")
        self.add_profile("b1", company_id="c2", name="Bruno")
        self.add_profile("loose", company_id=None, name="Solto")

    def test_single_day_example_is_moderate(self) -> None:
        at = datetime(2026, 2, 10, 10, tzinfo=timezone.utc)
        for minute, score in enumerate([1, 2, 3, 4, 5]):
            self.add_entry("a1", score=score, created_at=at + timedelta(minutes=minute))

        with self.engine.begin() as conn:
            result = fetch_daily_aggregates(conn, C1, FEB)

        self.assertEqual(len(result), 1)
        self.assertEqual(result[0].day, date(2026, 2, 10))
        self.assertEqual(result[0].avg_score, 3.0)
        self.assertEqual(result[0].entry_count, 5)
        self.assertEqual(classify_daily(result[0]), RiskLevel.MODERATE)

    def test_company_isolation_and_admin_visibility(self) -> None:
        at = datetime(2026, 2, 10, 10, tzinfo=timezone.utc)
        self.add_entry("a1", score=1, created_at=at)
        self.add_entry("b1", score=5, created_at=at)
        self.add_entry("loose", score=3, created_at=at)

        with self.engine.begin() as conn:
            c1 = fetch_daily_aggregates(conn, C1, FEB)
            c2 = fetch_daily_aggregates(conn, C2, FEB)
            everyone = fetch_daily_aggregates(conn, ADMIN, FEB)

        self.assertEqual([(a.avg_score, a.entry_count) for a in c1], [(1.0, 1)])
        self.assertEqual([(a.avg_score, a.entry_count) for a in c2], [(5.0, 1)])
        self.assertEqual([(a.avg_score, a.entry_count) for a in everyone], [(3.0, 3)])

    def test_empty_scope_never_widens(self) -> None:
        self.add_entry("loose", score=2, created_at=NOW - timedelta(hours=1))

        with self.engine.begin() as conn:
            bundle = aggregate(conn, EMPTY, TimeWindow.trailing(30, now=NOW), now=NOW)
            roster = fetch_roster(conn, EMPTY)
            has_data = month_has_data(conn, EMPTY, FEB.start, FEB.end)

        self.assertEqual(bundle.daily, [])
        self.assertFalse(bundle.burnout.has_data)
        self.assertEqual(bundle.critical_alerts, [])
        self.assertEqual(roster, [])
        self.assertFalse(has_data)

    def test_aggregation_is_idempotent(self) -> None:
        self.add_entry("a1", score=2, created_at=NOW - timedelta(days=2))
        self.add_entry("a2", score=4, created_at=NOW - timedelta(days=1))

        with self.engine.begin() as conn:
            first = aggregate(conn, C1, TimeWindow.trailing(30, now=NOW), now=NOW)
            second = aggregate(conn, C1, TimeWindow.trailing(30, now=NOW), now=NOW)

        self.assertEqual(first, second)

    def test_empty_seven_day_window_is_no_data(self) -> None:
        self.add_entry("a1", score=1, created_at=NOW - timedelta(days=10))

        with self.engine.begin() as conn:
            summary = fetch_burnout_summary(conn, C1, now=NOW)

        self.assertFalse(summary.has_data)
        self.assertEqual(classify_burnout(summary), BurnoutLevel.NO_DATA)

    def test_critical_alerts_newest_first_with_names_and_session(self) -> None:
        older = self.add_entry("a1", score=1, created_at=NOW - timedelta(days=3))
        newer = self.add_entry("a2", score=1, created_at=NOW - timedelta(days=1))
        self.add_entry("a1", score=2, created_at=NOW - timedelta(hours=2))
        self.add_entry("a1", score=1, created_at=NOW - timedelta(days=9))
        self.add_entry("b1", score=1, created_at=NOW - timedelta(days=1))

        session = AlertSessionState.from_lists(read=[older], resolved=[])
        with self.engine.begin() as conn:
            alerts = fetch_critical_alerts(conn, C1, days=7, limit=10, now=NOW, session=session)

        self.assertEqual([a.entry_id for a in alerts], [newer, older])
        self.assertEqual(alerts[0].name, "unknown")
        self.assertEqual(alerts[1].name, "Ana")
        self.assertTrue(alerts[1].read)
        self.assertEqual(unread_count(alerts), 1)

    def test_critical_alerts_respect_limit(self) -> None:
        for hours in range(5):
            self.add_entry("a1", score=1, created_at=NOW - timedelta(hours=hours + 1))

        with self.engine.begin() as conn:
            alerts = fetch_critical_alerts(conn, C1, days=7, limit=2, now=NOW)

        self.assertEqual(len(alerts), 2)

    def test_roster_orders_by_entries_then_name(self) -> None:
        self.add_entry("a1", score=3, created_at=NOW - timedelta(days=1))
        self.add_entry("a1", score=3, created_at=NOW - timedelta(days=2))

        with self.engine.begin() as conn:
            roster = fetch_roster(conn, C1)

        self.assertEqual([(e.user_id, e.entries) for e in roster], [("a1", 2), ("a2", 0)])
        self.assertEqual(roster[1].name, "unknown")

    def test_month_has_data_checks_both_sources(self) -> None:
        self.add_entry("a1", score=4, created_at=datetime(2026, 2, 3, tzinfo=timezone.utc))

        with self.engine.begin() as conn:
            self.assertTrue(month_has_data(conn, C1, FEB.start, FEB.end))
            self.assertFalse(month_has_data(conn, C2, FEB.start, FEB.end))

    def test_employee_entries_stay_inside_scope(self) -> None:
        self.add_entry("a1", score=3, created_at=NOW - timedelta(days=1))
        self.add_entry("b1", score=3, created_at=NOW - timedelta(days=1))

        with self.engine.begin() as conn:
            own = fetch_employee_entries(conn, C1, "a1")
            foreign = fetch_employee_entries(conn, C1, "b1")
            admin_view = fetch_employee_entries(conn, ADMIN, "b1")

        self.assertEqual(len(own), 1)
        self.assertIsNone(foreign)
        self.assertEqual(len(admin_view), 1)

    def test_employee_search_is_scoped_and_literal(self) -> None:
        self.add_profile("b2", company_id="c2", name="Anabela")
        self.add_profile("a3", company_id="c1", name="50% Ana")

        with self.engine.begin() as conn:
            own = find_employees(conn, C1, "ANA")
            everyone = find_employees(conn, ADMIN, "ana", limit=10)
            percent = find_employees(conn, C1, "%")
            empty = find_employees(conn, EMPTY, "ana")
            blank = find_employees(conn, C1, "   ")

        self.assertEqual(sorted(e.user_id for e in own), ["a1", "a3"])
        self.assertEqual(sorted(e.user_id for e in everyone), ["a1", "a3", "b2"])
        self.assertEqual([e.user_id for e in percent], ["a3"])
        self.assertEqual(empty, [])
        self.assertEqual(blank, [])

    def test_alert_search_matches_employee_name(self) -> None:
        ana = self.add_entry("a1", score=1, created_at=NOW - timedelta(days=1))
        self.add_entry("a2", score=1, created_at=NOW - timedelta(days=1))
        self.add_entry("b1", score=1, created_at=NOW - timedelta(days=1))

        with self.engine.begin() as conn:
            found = find_critical_alerts(conn, C1, "an", now=NOW)
            foreign = find_critical_alerts(conn, C1, "bruno", now=NOW)

        self.assertEqual([a.entry_id for a in found], [ana])
        self.assertEqual(foreign, [])


if __name__ == "__main__":
    unittest.main()
