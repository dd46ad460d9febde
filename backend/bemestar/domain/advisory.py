from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from sqlalchemy.engine import Connection

from bemestar.domain.advisory_notes import fetch_note_candidates, select_advisory_notes
from bemestar.domain.ai_response import ActionItem, advisory_json_schema, normalize_actions
from bemestar.domain.errors import AdvisoryUnavailable
from bemestar.domain.models import AdvisoryNote, Scope
from bemestar.integrations.bedrock import (
    BedrockDependencyError,
    BedrockError,
    BedrockInvokeResult,
    BedrockNotConfiguredError,
    BedrockQuotaError,
    BedrockTimeoutError,
    invoke_text,
)
from bemestar.settings import settings

logger = logging.getLogger("bemestar.advisory")

DEFAULT_PROMPT = "Gerar ações prioritárias para reduzir risco psicossocial"

SYSTEM_PROMPT = (
    "Você é especialista em saúde ocupacional.\n"
    "Use obrigatoriamente os textos de recent_notes (notas dos últimos window_days dias).\n"
    'Se aparecer "assédio", inclua ação específica.\n'
    "Responda SOMENTE JSON válido conforme o schema abaixo, com no máximo 5 ações.\n"
    "priority deve ser Alta, Média ou Baixa.\n"
)


@dataclass(frozen=True)
class AdvisoryResult:
    status: Literal["ok", "unavailable"]
    actions: list[ActionItem] = field(default_factory=list)
    notes_used: int = 0
    provider: str | None = None
    model_id: str | None = None
    reason: str | None = None


def build_system_prompt() -> str:
    schema = json.dumps(advisory_json_schema(), ensure_ascii=False)
    return f"{SYSTEM_PROMPT}\n[Schema]\n{schema}"


def build_user_prompt(prompt: str, notes: list[AdvisoryNote], *, window_days: int = 7) -> str:
    payload = {
        "prompt": prompt,
        "window_days": window_days,
        "recent_notes": [note.to_payload() for note in notes],
    }
    return json.dumps(payload, ensure_ascii=False)


def _unavailable_reason(exc: BedrockError) -> str:
    if isinstance(exc, BedrockQuotaError):
        return "quota"
    if isinstance(exc, BedrockTimeoutError):
        return "timeout"
    if isinstance(exc, (BedrockNotConfiguredError, BedrockDependencyError)):
        return "not_configured"
    return "engine_error"


def request_actions(
    prompt: str,
    notes: list[AdvisoryNote],
    *,
    window_days: int = 7,
    allow_mock: bool = False,
) -> tuple[list[ActionItem], BedrockInvokeResult]:
    """One blocking engine round trip; engine failures become AdvisoryUnavailable."""
    try:
        result = invoke_text(
            build_user_prompt(prompt, notes, window_days=window_days),
            system_prompt=build_system_prompt(),
            allow_mock=allow_mock,
        )
    except BedrockError as exc:
        raise AdvisoryUnavailable(_unavailable_reason(exc), str(exc)) from exc
    return normalize_actions(result.text), result


def generate_advisory(
    conn: Connection,
    scope: Scope,
    *,
    prompt: str | None = None,
    days: int | None = None,
    now: datetime | None = None,
    allow_mock: bool | None = None,
) -> AdvisoryResult:
    prompt = (prompt or "").strip() or DEFAULT_PROMPT
    days = days or settings.advisory_window_days
    allow_mock = settings.advisory_allow_mock if allow_mock is None else allow_mock

    entries = fetch_note_candidates(
        conn,
        scope,
        days=days,
        fetch_limit=settings.advisory_fetch_limit,
        now=now,
    )
    notes = select_advisory_notes(
        entries,
        max_notes=settings.advisory_max_notes,
        max_chars=settings.advisory_note_max_chars,
    )

    try:
        actions, result = request_actions(prompt, notes, window_days=days, allow_mock=allow_mock)
    except AdvisoryUnavailable as exc:
        logger.warning(
            "advisory.generate status=unavailable reason=%s notes_used=%s detail=%s",
            exc.reason,
            len(notes),
            exc,
        )
        return AdvisoryResult(status="unavailable", notes_used=len(notes), reason=exc.reason)

    logger.info(
        "advisory.generate status=ok provider=%s notes_used=%s actions=%s",
        result.provider,
        len(notes),
        len(actions),
    )
    return AdvisoryResult(
        status="ok",
        actions=actions,
        notes_used=len(notes),
        provider=result.provider,
        model_id=result.model_id,
    )


def summarize_actions(actions: list[ActionItem], *, limit: int = 3) -> str | None:
    bullets: list[str] = []
    for action in actions[:limit]:
        title = action.title.strip()
        why = action.why.strip()
        if not title and not why:
            continue
        bullets.append(f"• {title} — {why}" if why else f"• {title}")
    return "\n".join(bullets) or None
