import unicodedata
import unittest
from datetime import datetime, timedelta, timezone

from support import NOW, StoreTestCase

from bemestar.domain.advisory_notes import (
    clamp_text,
    fetch_note_candidates,
    has_harassment_keyword,
    rank_notes,
    select_advisory_notes,
)
from bemestar.domain.models import MoodEntry, Scope

T0 = datetime(2026, 2, 10, 8, tzinfo=timezone.utc)
T1 = T0 + timedelta(hours=1)
T2 = T0 + timedelta(hours=2)


def _entry(entry_id, score, note, created_at, mental_state=None):
    return MoodEntry(
        id=entry_id,
        user_id=f"user-{entry_id}",
        company_id="c1",
        score=score,
        created_at=created_at,
        note=note,
        mental_state=mental_state,
    )


class RankNotesTests(unittest.TestCase):
    def test_critical_then_keyword_then_recency(self) -> None:
        entries = [
            _entry("x", 3, "a", T1),
            _entry("y", 1, "assédio issue", T0),
            _entry("z", 1, "b", T2),
        ]

        ranked = rank_notes(entries)

        self.assertEqual([e.note for e in ranked], ["assédio issue", "b", "a"])

    def test_keyword_match_ignores_case(self) -> None:
        self.assertTrue(has_harassment_keyword("Relato de ASSÉDIO moral"))
        self.assertFalse(has_harassment_keyword("assedio sem acento"))
        self.assertFalse(has_harassment_keyword(None))

    def test_keyword_match_survives_decomposed_accents(self) -> None:
        decomposed = unicodedata.normalize("NFD", "sofri assédio")

        self.assertNotEqual(decomposed, "sofri assédio")
        self.assertTrue(has_harassment_keyword(decomposed))

    def test_blank_notes_are_dropped_and_list_is_capped(self) -> None:
        entries = [_entry(str(i), 3, f"nota {i}", T0 + timedelta(minutes=i)) for i in range(40)]
        entries.append(_entry("blank", 1, "   ", T2))
        entries.append(_entry("none", 1, None, T2))

        ranked = rank_notes(entries, max_notes=30)

        self.assertEqual(len(ranked), 30)
        self.assertEqual(ranked[0].note, "nota 39")
        self.assertNotIn("blank", [e.id for e in ranked])

    def test_entries_without_timestamp_sort_last_within_tier(self) -> None:
        ranked = rank_notes([_entry("old", 2, "sem data", None), _entry("new", 2, "com data", T0)])

        self.assertEqual([e.id for e in ranked], ["new", "old"])


class SelectAdvisoryNotesTests(unittest.TestCase):
    def test_clamps_note_and_mental_state(self) -> None:
        long_text = "x" * 300
        notes = select_advisory_notes([_entry("a", 2, long_text, T0, mental_state=long_text)], max_chars=220)

        self.assertEqual(len(notes), 1)
        self.assertEqual(notes[0].note, "x" * 220 + "…")
        self.assertEqual(notes[0].mental_state, "x" * 220 + "…")
        self.assertEqual(notes[0].to_payload()["user_id"], "user-a")

    def test_clamp_text_keeps_short_values(self) -> None:
        self.assertEqual(clamp_text("  curto  ", 220), "curto")
        self.assertEqual(clamp_text(None, 220), "")


class FetchNoteCandidatesTests(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.add_profile("a1", company_id="c1")
        self.add_profile("b1", company_id="c2")

    def test_candidates_follow_scope_and_window(self) -> None:
        self.add_entry("a1", score=2, note="dentro", created_at=NOW - timedelta(days=1))
        self.add_entry("a1", score=1, note="antigo", created_at=NOW - timedelta(days=9))
        self.add_entry("b1", score=1, note="outra empresa", created_at=NOW - timedelta(days=1))
        scope = Scope(is_admin=False, role="manager", effective_company_id="c1", caller_id="m")

        with self.engine.begin() as conn:
            entries = fetch_note_candidates(conn, scope, days=7, now=NOW)

        self.assertEqual([e.note for e in entries], ["dentro"])

    def test_empty_scope_has_no_candidates(self) -> None:
        self.add_entry("a1", score=1, note="qualquer", created_at=NOW - timedelta(days=1))
        scope = Scope(is_admin=False, role="employee", effective_company_id=None, caller_id="x")

        with self.engine.begin() as conn:
            self.assertEqual(fetch_note_candidates(conn, scope, now=NOW), [])


if __name__ == "__main__":
    unittest.main()
