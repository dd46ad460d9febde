from __future__ import annotations

import unicodedata
from datetime import datetime, timedelta, timezone
from typing import Iterable

from sqlalchemy.engine import Connection

from bemestar.db.repository import fetch_mood_entries
from bemestar.domain.models import CRITICAL_SCORE, AdvisoryNote, MoodEntry, Scope

HARASSMENT_KEYWORDS = ("assédio",)
MAX_NOTES = 30
NOTE_MAX_CHARS = 220
FETCH_LIMIT = 80
ELLIPSIS = "…"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def clamp_text(value: object, max_chars: int = NOTE_MAX_CHARS) -> str:
    text = str(value if value is not None else "").strip()
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + ELLIPSIS


def has_harassment_keyword(note: str | None) -> bool:
    lowered = unicodedata.normalize("NFC", note or "").casefold()
    return any(unicodedata.normalize("NFC", keyword).casefold() in lowered for keyword in HARASSMENT_KEYWORDS)


def _sort_key(entry: MoodEntry) -> tuple[int, int, datetime]:
    return (
        1 if entry.score == CRITICAL_SCORE else 0,
        1 if has_harassment_keyword(entry.note) else 0,
        entry.created_at or _EPOCH,
    )


def rank_notes(entries: Iterable[MoodEntry], *, max_notes: int = MAX_NOTES) -> list[MoodEntry]:
    """Critical scores first, then harassment mentions, then most recent."""
    with_notes = [e for e in entries if (e.note or "").strip()]
    with_notes.sort(key=_sort_key, reverse=True)
    return with_notes[: max(0, max_notes)]


def select_advisory_notes(
    entries: Iterable[MoodEntry],
    *,
    max_notes: int = MAX_NOTES,
    max_chars: int = NOTE_MAX_CHARS,
) -> list[AdvisoryNote]:
    return [
        AdvisoryNote(
            user_id=entry.user_id,
            day=entry.day,
            score=entry.score,
            note=clamp_text(entry.note, max_chars),
            mental_state=clamp_text(entry.mental_state, max_chars),
            work_demand=entry.work_demand,
            fatigue_level=entry.fatigue_level,
            sleep_quality=entry.sleep_quality,
        )
        for entry in rank_notes(entries, max_notes=max_notes)
    ]


def fetch_note_candidates(
    conn: Connection,
    scope: Scope,
    *,
    days: int = 7,
    fetch_limit: int = FETCH_LIMIT,
    now: datetime | None = None,
) -> list[MoodEntry]:
    if scope.is_empty:
        return []
    now = now or datetime.now(timezone.utc)
    return fetch_mood_entries(
        conn,
        company_id=scope.company_filter,
        since=now - timedelta(days=max(1, days)),
        newest_first=True,
        limit=fetch_limit,
    )
