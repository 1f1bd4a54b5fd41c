from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from retail_pos.auth import Principal, require_permission
from retail_pos.config import settings
from retail_pos.dependencies import get_store, get_window
from retail_pos.models import ErrorCode, Permission
from retail_pos.services.analytics_service import (
    all_branches_analytics,
    branch_analytics,
    sales_overview,
    summarize_branches,
)
from retail_pos.services.entity_store import EntityStore

router = APIRouter(prefix='/analytics', tags=['analytics'])
reports_access = require_permission(Permission.REPORTS_VIEW)
branch_access = require_permission(Permission.REPORTS_VIEW, Permission.MANAGER_APPROVAL)


@router.get('/overview')
def overview(
    top: int | None = Query(None, ge=0),
    window: tuple[datetime, datetime] = Depends(get_window),
    store: EntityStore = Depends(get_store),
    _: Principal = Depends(reports_access),
):
    start, end = window
    return sales_overview(store.ledger.list_all(), start, end, top_limit=top, tz=settings.local_timezone)


@router.get('/branches')
def branches(
    top: int | None = Query(None, ge=0),
    window: tuple[datetime, datetime] = Depends(get_window),
    store: EntityStore = Depends(get_store),
    _: Principal = Depends(branch_access),
):
    start, end = window
    return all_branches_analytics(store, start, end, top_limit=top)


@router.get('/branches/{store_id}')
def branch_detail(
    store_id: str,
    top: int | None = Query(None, ge=0),
    window: tuple[datetime, datetime] = Depends(get_window),
    store: EntityStore = Depends(get_store),
    _: Principal = Depends(branch_access),
):
    start, end = window
    report = branch_analytics(store, store_id, start, end, top_limit=top)
    if report is None:
        raise HTTPException(
            status_code=404,
            detail={'code': ErrorCode.NOT_FOUND.value, 'message': f'StoreLocation {store_id} not found'},
        )
    return report


@router.get('/dashboard')
def dashboard(
    window: tuple[datetime, datetime] = Depends(get_window),
    store: EntityStore = Depends(get_store),
    _: Principal = Depends(branch_access),
):
    start, end = window
    reports = all_branches_analytics(store, start, end)
    return {
        'overview': sales_overview(store.ledger.list_all(), start, end, tz=settings.local_timezone),
        'branches': summarize_branches(reports, store.store_locations.list_all(), store.ledger.in_window(start, end)),
    }
