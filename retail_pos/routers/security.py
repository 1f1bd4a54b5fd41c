from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, Query

from retail_pos.auth import Principal, require_permission
from retail_pos.config import settings
from retail_pos.dependencies import get_audit_log
from retail_pos.models import Permission, utcnow
from retail_pos.schemas import AuditEntryOut, AuthEventOut, SignInPageOut
from retail_pos.services.audit_service import AuditLog

router = APIRouter(prefix='/security', tags=['security'])
security_view = require_permission(Permission.MANAGER_APPROVAL)


@router.get('/sign-ins', response_model=SignInPageOut)
def sign_ins(
    success: bool | None = Query(None),
    username: str | None = Query(None),
    limit: int | None = Query(None, ge=0),
    audit: AuditLog = Depends(get_audit_log),
    _: Principal = Depends(security_view),
):
    limit = settings.audit_page_size if limit is None else limit
    events = audit.recent_auth_events(success=success, username=username, limit=limit)
    return SignInPageOut(
        events=[AuthEventOut.model_validate(event) for event in events],
        failed_last_24h=audit.failed_sign_ins_since(utcnow() - timedelta(hours=24)),
    )


@router.get('/audit', response_model=list[AuditEntryOut])
def audit_entries(
    action: str | None = Query(None),
    actor: str | None = Query(None),
    limit: int | None = Query(None, ge=0),
    audit: AuditLog = Depends(get_audit_log),
    _: Principal = Depends(security_view),
):
    limit = settings.audit_page_size if limit is None else limit
    rows = audit.recent_entries(action=action, actor_principal_id=actor, limit=limit)
    return [AuditEntryOut.model_validate(entry) for entry in rows]
