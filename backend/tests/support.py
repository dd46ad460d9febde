import sys
import tempfile
import unittest
from datetime import date, datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from sqlalchemy import text  # noqa: E402

from bemestar.db.connection import create_db_engine  # noqa: E402
from bemestar.db.migrations import migrate_up  # noqa: E402
from bemestar.db.repository import to_db_timestamp  # noqa: E402

NOW = datetime(2026, 2, 12, 12, 0, tzinfo=timezone.utc)

_UNSET = object()


class StoreTestCase(unittest.TestCase):
    """Each test gets a fresh SQLite file migrated with the real schema."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.engine = create_db_engine(f"sqlite:///{Path(self._tmp.name) / 'test.db'}")
        with self.engine.begin() as conn:
            migrate_up(conn)
        self._entry_seq = 0
        self._profiles: dict[str, str | None] = {}

    def tearDown(self) -> None:
        self.engine.dispose()
        self._tmp.cleanup()

    def add_profile(
        self,
        user_id: str,
        *,
        role: str = "employee",
        company_id: str | None = None,
        name: str | None = _UNSET,
        admin: bool = False,
    ) -> None:
        self._profiles[user_id] = company_id
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT INTO profiles (id, name, role, company_id) "
                    "VALUES (:id, :name, :role, :company_id)"
                ),
                {
                    "id": user_id,
                    "name": f"Name {user_id}" if name is _UNSET else name,
                    "role": role,
                    "company_id": company_id,
                },
            )
            if admin:
                conn.execute(text("INSERT INTO admin_users (user_id) VALUES (:id)"), {"id": user_id})

    def add_supervision(self, user_id: str, company_id: str, created_at: datetime) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT INTO supervisor_companies (user_id, company_id, created_at) "
                    "VALUES (:user_id, :company_id, :created_at)"
                ),
                {"user_id": user_id, "company_id": company_id, "created_at": to_db_timestamp(created_at)},
            )

    def add_entry(
        self,
        user_id: str,
        *,
        score: int | None,
        created_at: datetime,
        company_id: str | None = _UNSET,
        note: str | None = None,
        mental_state: str | None = None,
        day: date | None = None,
        work_demand: int | None = None,
        fatigue_level: int | None = None,
        sleep_quality: int | None = None,
    ) -> str:
        self._entry_seq += 1
        entry_id = f"e{self._entry_seq:03d}"
        if company_id is _UNSET:
            company_id = self._profiles.get(user_id)
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO mood_entries
                      (id, user_id, company_id, score, day, created_at, note, mental_state,
                       sleep_quality, work_demand, fatigue_level)
                    VALUES
                      (:id, :user_id, :company_id, :score, :day, :created_at, :note, :mental_state,
                       :sleep_quality, :work_demand, :fatigue_level)
                    """
                ),
                {
                    "id": entry_id,
                    "user_id": user_id,
                    "company_id": company_id,
                    "score": score,
                    "day": (day or created_at.astimezone(timezone.utc).date()).isoformat(),
                    "created_at": to_db_timestamp(created_at),
                    "note": note,
                    "mental_state": mental_state,
                    "sleep_quality": sleep_quality,
                    "work_demand": work_demand,
                    "fatigue_level": fatigue_level,
                },
            )
        return entry_id
