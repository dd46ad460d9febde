from __future__ import annotations

import logging

from sqlalchemy.engine import Connection

from bemestar.db.repository import fetch_latest_supervisor_company, fetch_profile, is_admin_user
from bemestar.domain.errors import NotAuthenticated, ProfileMissing
from bemestar.domain.models import Scope

logger = logging.getLogger("bemestar.scope")


def resolve_scope(conn: Connection, caller_id: str | None) -> Scope:
    """Work out which company boundary a caller's queries run under.

    Admin capability comes from the admin_users registry, not from the
    profile role. Supervisors follow their newest company assignment;
    managers and employees use the company on their profile. A non-admin
    without a company gets an empty scope rather than an error.
    """
    caller_id = (caller_id or "").strip()
    if not caller_id:
        raise NotAuthenticated("missing caller identity")

    is_admin = is_admin_user(conn, caller_id)
    profile = fetch_profile(conn, caller_id)
    if profile is None:
        raise ProfileMissing(caller_id)

    role = (profile.role or "").strip().lower() or None

    if is_admin:
        scope = Scope(is_admin=True, role=role, effective_company_id=None, caller_id=caller_id)
    elif role == "supervisor":
        company_id = fetch_latest_supervisor_company(conn, caller_id)
        scope = Scope(is_admin=False, role=role, effective_company_id=company_id, caller_id=caller_id)
    else:
        scope = Scope(is_admin=False, role=role, effective_company_id=profile.company_id or None, caller_id=caller_id)

    if scope.is_empty:
        logger.warning("scope.resolve caller=%s role=%s result=empty", caller_id, role)
    else:
        logger.info("scope.resolve caller=%s role=%s result=%s", caller_id, role, scope.label)
    return scope
