from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.engine import Connection

from bemestar.api.deps import get_scope
from bemestar.db import get_db
from bemestar.domain.advisory import AdvisoryResult, generate_advisory
from bemestar.domain.ai_response import ActionItem
from bemestar.domain.models import Scope

router = APIRouter(prefix="/v1", tags=["advisory"])


class AdvisoryRequest(BaseModel):
    prompt: str | None = Field(default=None, max_length=2000)
    days: int | None = Field(default=None, ge=1, le=90)


class AdvisoryResponse(BaseModel):
    status: str
    actions: list[ActionItem]
    notes_used: int
    provider: str | None = None
    model_id: str | None = None
    reason: str | None = None


@router.post("/advisory", response_model=AdvisoryResponse)
def advisory_api(
    req: AdvisoryRequest | None = None,
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> AdvisoryResponse:
    req = req or AdvisoryRequest()
    result = generate_advisory(conn, scope, prompt=req.prompt, days=req.days)
    return _to_advisory_response(result)


def _to_advisory_response(result: AdvisoryResult) -> AdvisoryResponse:
    return AdvisoryResponse(
        status=result.status,
        actions=result.actions,
        notes_used=result.notes_used,
        provider=result.provider,
        model_id=result.model_id,
        reason=result.reason,
    )
