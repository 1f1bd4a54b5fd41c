from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from retail_pos.auth import Principal
from retail_pos.config import settings
from retail_pos.models import utcnow

AUTH_EXEMPT_PATHS = {'/login', '/health', '/docs', '/openapi.json'}


@dataclass
class WebSession:
    session_token: str
    principal_id: str
    ip: str | None
    user_agent: str | None
    created_at: datetime
    expires_at: datetime
    last_seen_at: datetime | None = None
    revoked_at: datetime | None = None


def _session_expiry(now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(minutes=settings.session_ttl_minutes)


class SessionRegistry:
    """Opaque session tokens held in process memory; lost on restart."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, WebSession] = {}

    def create(self, principal_id: str, *, ip: str | None, user_agent: str | None) -> str:
        self.purge_expired()
        token = secrets.token_urlsafe(48)
        now = utcnow()
        with self._lock:
            self._sessions[token] = WebSession(
                session_token=token,
                principal_id=principal_id,
                ip=ip,
                user_agent=user_agent,
                created_at=now,
                expires_at=_session_expiry(now),
            )
        return token

    def revoke(self, token: str) -> None:
        with self._lock:
            session = self._sessions.get(token)
            if not session or session.revoked_at is not None:
                return
            session.revoked_at = utcnow()

    def resolve(self, token: str | None) -> str | None:
        if not token:
            return None
        now = utcnow()
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.revoked_at is not None or session.expires_at <= now:
                return None
            session.last_seen_at = now
            session.expires_at = _session_expiry(now)
            return session.principal_id

    def purge_expired(self) -> int:
        now = utcnow()
        with self._lock:
            stale = [
                token
                for token, session in self._sessions.items()
                if session.revoked_at is not None or session.expires_at <= now
            ]
            for token in stale:
                del self._sessions[token]
        return len(stale)


def token_from_request(request: Request) -> str | None:
    authorization = request.headers.get('authorization', '')
    scheme, _, credentials = authorization.partition(' ')
    if scheme.lower() == 'bearer' and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.session_cookie_name)


def load_principal(request: Request) -> Principal | None:
    principal_id = request.app.state.sessions.resolve(token_from_request(request))
    if principal_id is None:
        return None
    return request.app.state.directory.principal_for(principal_id)


def install_auth_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        request.state.principal = load_principal(request)

        if request.url.path not in AUTH_EXEMPT_PATHS and request.state.principal is None:
            return JSONResponse({'detail': 'Not authenticated'}, status_code=401)

        response = await call_next(request)
        return response
