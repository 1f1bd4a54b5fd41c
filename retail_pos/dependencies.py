from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, Query, Request

from retail_pos.models import ErrorCode, Result, utcnow
from retail_pos.services.audit_service import AuditLog
from retail_pos.services.cart_service import CartRegistry
from retail_pos.services.entity_store import EntityStore
from retail_pos.services.user_directory_service import UserDirectory

ERROR_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CART_CLOSED: 409,
    ErrorCode.DUPLICATE_ID: 409,
    ErrorCode.INVALID_CREDENTIALS: 401,
    ErrorCode.NOT_AUTHENTICATED: 401,
}


def get_store(request: Request) -> EntityStore:
    return request.app.state.store


def get_directory(request: Request) -> UserDirectory:
    return request.app.state.directory


def get_carts(request: Request) -> CartRegistry:
    return request.app.state.carts


def get_audit_log(request: Request) -> AuditLog:
    return request.app.state.audit


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def unwrap(result: Result):
    """Return the result value or raise the matching HTTP error."""
    if result.ok:
        return result.value
    raise HTTPException(
        status_code=ERROR_STATUS.get(result.error, 400),
        detail={'code': result.error.value, 'message': result.detail},
    )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_window(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    days: int = Query(30, ge=1, le=366),
) -> tuple[datetime, datetime]:
    """Half-open reporting window; defaults to the trailing ``days`` ending now."""
    end = _as_utc(end) if end else utcnow()
    start = _as_utc(start) if start else end - timedelta(days=days)
    if end < start:
        raise HTTPException(
            status_code=400,
            detail={'code': ErrorCode.INVALID_VALUE.value, 'message': 'end must be on or after start'},
        )
    return start, end
