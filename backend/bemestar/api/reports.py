from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.engine import Connection

from bemestar.api.deps import get_scope
from bemestar.api.payloads import daily_payload
from bemestar.db import get_db
from bemestar.domain.models import Scope
from bemestar.domain.reports import (
    REPORT_LIST_LIMIT,
    PreviewInsights,
    create_report,
    fetch_cycle_metrics,
    fetch_preview_insights,
    list_reports,
    remove_all_reports,
    remove_report,
)

router = APIRouter(prefix="/v1/reports", tags=["reports"])


class ReportCreateRequest(BaseModel):
    cycle_key: str = Field(min_length=7, max_length=7)
    include_ai_summary: bool = False


@router.get("/cycles/{cycle_key}")
def cycle_metrics_api(
    cycle_key: str,
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> dict:
    try:
        metrics = fetch_cycle_metrics(conn, scope, cycle_key)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return metrics.to_dict()


@router.get("/cycles/{cycle_key}/preview")
def cycle_preview_api(
    cycle_key: str,
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> dict:
    try:
        insights = fetch_preview_insights(conn, scope, cycle_key)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _preview_payload(insights)


@router.post("", status_code=201)
def create_report_api(
    req: ReportCreateRequest,
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> dict:
    try:
        return create_report(conn, scope, req.cycle_key, include_ai_summary=req.include_ai_summary)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("")
def list_reports_api(
    limit: int = Query(default=REPORT_LIST_LIMIT, ge=1, le=REPORT_LIST_LIMIT),
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> list[dict]:
    return list_reports(conn, scope, limit=limit)


@router.delete("/{report_id}")
def delete_report_api(
    report_id: str,
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> dict:
    if not remove_report(conn, scope, report_id):
        raise HTTPException(status_code=404, detail="report not found")
    return {"deleted": 1}


@router.delete("")
def delete_all_reports_api(
    scope: Scope = Depends(get_scope),
    conn: Connection = Depends(get_db),
) -> dict:
    return {"deleted": remove_all_reports(conn, scope)}


def _preview_payload(insights: PreviewInsights) -> dict:
    return {
        "last7": [daily_payload(agg) for agg in insights.last7],
        "mood_donut": insights.mood_donut,
        "critical_alerts": insights.critical_alerts,
        "worst_days": [daily_payload(agg) for agg in insights.worst_days],
    }
