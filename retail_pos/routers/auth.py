from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from retail_pos.auth import Principal, accessible_modules, get_current_principal
from retail_pos.config import settings
from retail_pos.dependencies import get_audit_log, get_client_ip, get_directory
from retail_pos.models import ErrorCode
from retail_pos.schemas import LoginIn, LoginOut, PrincipalOut
from retail_pos.security.csrf import verify_csrf
from retail_pos.security.sessions import token_from_request
from retail_pos.services.audit_service import AuditLog
from retail_pos.services.user_directory_service import INVALID_CREDENTIALS_MESSAGE, UserDirectory

router = APIRouter(tags=['auth'])


def principal_out(principal: Principal) -> PrincipalOut:
    return PrincipalOut(
        id=principal.id,
        username=principal.username,
        display_name=principal.display_name,
        role=principal.role,
        permissions=sorted(principal.permissions, key=lambda permission: permission.value),
        modules=[module.value for module in accessible_modules(principal)],
    )


@router.post('/login', response_model=LoginOut)
def login_submit(
    payload: LoginIn,
    request: Request,
    response: Response,
    directory: UserDirectory = Depends(get_directory),
    audit: AuditLog = Depends(get_audit_log),
    _: None = Depends(verify_csrf),
):
    username = payload.username.strip()
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    outcome = directory.authenticate(username, payload.password)
    if not outcome.ok:
        audit.log_auth_event(
            attempted_username=username,
            success=False,
            failure_reason=outcome.failure_reason,
            principal_id=outcome.user_id,
            ip=ip,
            user_agent=user_agent,
        )
        raise HTTPException(
            status_code=401,
            detail={'code': ErrorCode.INVALID_CREDENTIALS.value, 'message': INVALID_CREDENTIALS_MESSAGE},
        )

    principal = outcome.principal
    token = request.app.state.sessions.create(principal.id, ip=ip, user_agent=user_agent)
    audit.log_auth_event(
        attempted_username=username,
        success=True,
        principal_id=principal.id,
        ip=ip,
        user_agent=user_agent,
    )
    audit.log_audit(
        actor_principal_id=principal.id,
        action='AUTH_LOGIN',
        ip=ip,
        metadata={'username': username},
    )

    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return LoginOut(
        token=token,
        csrf_token=getattr(request.state, 'csrf_token', ''),
        principal=principal_out(principal),
    )


@router.post('/logout', status_code=204)
def logout(
    request: Request,
    audit: AuditLog = Depends(get_audit_log),
    _: None = Depends(verify_csrf),
):
    principal = getattr(request.state, 'principal', None)
    token = token_from_request(request)
    if token:
        request.app.state.sessions.revoke(token)

    audit.log_audit(
        actor_principal_id=principal.id if principal else None,
        action='AUTH_LOGOUT',
        ip=get_client_ip(request),
        metadata={},
    )
    response = Response(status_code=204)
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/me', response_model=PrincipalOut)
def me(principal: Principal = Depends(get_current_principal)):
    return principal_out(principal)
