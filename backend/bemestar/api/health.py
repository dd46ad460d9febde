from fastapi import APIRouter
from sqlalchemy.exc import SQLAlchemyError

from bemestar.db import db_connection
from bemestar.db.migrations import applied_versions

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str | None]:
    """Liveness plus the newest applied schema migration."""
    try:
        with db_connection() as conn:
            versions = applied_versions(conn)
    except SQLAlchemyError as exc:
        return {"status": "degraded", "database": "error", "error": type(exc).__name__}
    return {"status": "ok", "database": "ok", "schema": versions[-1] if versions else None}
