"""
api/routes/v1/audit.py -- Read side of the security audit trail.

Routes:
  GET /api/v1/audit/logs?limit=50&action=LOGIN_FAILED -- newest entries first

Requires a valid admin session. The trail is append-only; there are no write
or delete routes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import AuditLogRow
from audit.models import AuditAction
from audit.store import AuditStore
from auth.dependencies import get_current_session
from auth.models import Session

router = APIRouter()


@router.get("/audit/logs", response_model=list[AuditLogRow])
def list_audit_logs(
    request: Request,
    limit: int = Query(default=50, ge=1, le=500),
    action: Optional[AuditAction] = Query(default=None),
    session: Session = Depends(get_current_session),
) -> list[AuditLogRow]:
    """Return recent authentication audit entries."""
    store: AuditStore = request.app.state.audit_store
    return [AuditLogRow.from_entry(e) for e in store.list_recent(limit=limit, action=action)]
