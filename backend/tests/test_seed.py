import unittest

from sqlalchemy import text

from support import NOW, StoreTestCase

from bemestar.data.seed import apply_seed, build_seed_rows, load_seed
from bemestar.domain.scope import resolve_scope


class SeedTests(StoreTestCase):
    def test_apply_counts_and_skip(self) -> None:
        with self.engine.begin() as conn:
            counts = apply_seed(conn, now=NOW)
            skipped = apply_seed(conn, now=NOW)

        self.assertEqual(
            counts,
            {"profiles": 11, "admin_users": 1, "supervisor_companies": 2, "mood_entries": 18},
        )
        self.assertIsNone(skipped)

    def test_force_replaces_rows(self) -> None:
        with self.engine.begin() as conn:
            apply_seed(conn, now=NOW)
            apply_seed(conn, force=True, now=NOW)
            total = conn.execute(text("SELECT COUNT(*) FROM mood_entries")).scalar()

        self.assertEqual(total, 18)

    def test_seeded_supervisor_follows_newest_company(self) -> None:
        with self.engine.begin() as conn:
            apply_seed(conn, now=NOW)
            scope = resolve_scope(conn, "u-sup-1")
            admin = resolve_scope(conn, "u-admin")

        self.assertEqual(scope.effective_company_id, "c-aurora")
        self.assertTrue(admin.is_admin)

    def test_entries_never_land_in_the_future(self) -> None:
        rows = build_seed_rows(load_seed(), now=NOW)

        self.assertTrue(all(row["created_at"] <= "2026-02-12 12:00:00+00:00" for row in rows["mood_entries"]))
        self.assertEqual(rows["mood_entries"][0]["id"], "seed-0001")


if __name__ == "__main__":
    unittest.main()
