from __future__ import annotations

from fastapi import Depends
from sqlalchemy.engine import Connection
from starlette.concurrency import run_in_threadpool

from bemestar.auth import get_current_caller
from bemestar.db import get_db
from bemestar.domain.models import Scope
from bemestar.domain.scope import resolve_scope
from bemestar.logging_config import scope_label_var


async def get_scope(
    caller_id: str = Depends(get_current_caller),
    conn: Connection = Depends(get_db),
) -> Scope:
    # Async so the scope label lands in the request context that handlers inherit.
    scope = await run_in_threadpool(resolve_scope, conn, caller_id)
    scope_label_var.set(scope.label)
    return scope
