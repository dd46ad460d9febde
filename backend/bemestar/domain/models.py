from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal

Role = Literal["admin", "supervisor", "manager", "employee"]

ROLES: tuple[str, ...] = ("admin", "supervisor", "manager", "employee")

UNKNOWN_NAME = "unknown"

MIN_SCORE = 1
MAX_SCORE = 5
CRITICAL_SCORE = 1


@dataclass(frozen=True)
class Profile:
    id: str
    name: str | None
    role: str | None
    company_id: str | None = None
    company_name: str | None = None


@dataclass(frozen=True)
class Scope:
    """Visibility boundary for one request.

    Admins see every company. Everybody else sees exactly one company; when no
    company can be resolved the scope is empty and every aggregation must come
    back empty instead of widening to global visibility.
    """

    is_admin: bool
    role: str | None
    effective_company_id: str | None
    caller_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.is_admin and not self.effective_company_id

    @property
    def company_filter(self) -> str | None:
        if self.is_admin:
            return None
        return self.effective_company_id

    @property
    def label(self) -> str:
        if self.is_admin:
            return "admin"
        if self.effective_company_id:
            return f"company:{self.effective_company_id}"
        return "empty"


@dataclass(frozen=True)
class MoodEntry:
    id: str
    user_id: str
    company_id: str | None
    score: int | None
    created_at: datetime | None
    day: date | None = None
    note: str | None = None
    mental_state: str | None = None
    sleep_quality: int | None = None
    work_demand: int | None = None
    fatigue_level: int | None = None


@dataclass(frozen=True)
class DailyAggregate:
    day: date
    avg_score: float
    entry_count: int


@dataclass(frozen=True)
class BurnoutSummary:
    avg_score_7d: float
    entries_7d: int
    critical_count: int
    count_1_2: int
    count_3: int
    count_4_5: int
    has_data: bool

    @classmethod
    def no_data(cls) -> "BurnoutSummary":
        return cls(
            avg_score_7d=0.0,
            entries_7d=0,
            critical_count=0,
            count_1_2=0,
            count_3=0,
            count_4_5=0,
            has_data=False,
        )


@dataclass(frozen=True)
class CriticalAlert:
    entry_id: str
    user_id: str
    name: str
    score: int
    day: date | None
    created_at: datetime | None
    read: bool = False
    resolved: bool = False


@dataclass(frozen=True)
class EmployeeSummary:
    user_id: str
    name: str
    company_id: str | None
    entries: int
    last_entry_at: datetime | None


@dataclass(frozen=True)
class AdvisoryNote:
    user_id: str
    day: date | None
    score: int | None
    note: str
    mental_state: str
    work_demand: int | None
    fatigue_level: int | None
    sleep_quality: int | None

    def to_payload(self) -> dict[str, object]:
        return {
            "user_id": self.user_id,
            "day": self.day.isoformat() if self.day else None,
            "score": self.score,
            "note": self.note,
            "mental_state": self.mental_state,
            "work_demand": self.work_demand,
            "fatigue_level": self.fatigue_level,
            "sleep_quality": self.sleep_quality,
        }


@dataclass(frozen=True)
class AlertSessionState:
    """Read/resolved alert ids owned by the caller's session, never stored here."""

    read_ids: frozenset[str] = field(default_factory=frozenset)
    resolved_ids: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_lists(cls, read: list[str] | None = None, resolved: list[str] | None = None) -> "AlertSessionState":
        return cls(read_ids=frozenset(read or ()), resolved_ids=frozenset(resolved or ()))
