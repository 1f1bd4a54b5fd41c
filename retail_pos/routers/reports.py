from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends

from retail_pos.auth import Principal, require_permission
from retail_pos.config import settings
from retail_pos.dependencies import get_store, get_window
from retail_pos.models import Permission
from retail_pos.services.entity_store import EntityStore
from retail_pos.services.report_service import (
    ReportKind,
    build_customer_report,
    build_employee_report,
    build_financial_report,
    build_inventory_report,
    build_sales_report,
)

router = APIRouter(prefix='/reports', tags=['reports'])
reports_access = require_permission(Permission.REPORTS_VIEW)


@router.get('/{kind}')
def report(
    kind: ReportKind,
    window: tuple[datetime, datetime] = Depends(get_window),
    store: EntityStore = Depends(get_store),
    _: Principal = Depends(reports_access),
):
    start, end = window
    transactions = store.ledger.list_all()
    if kind == ReportKind.SALES:
        return build_sales_report(transactions, start=start, end=end, tz=settings.local_timezone)
    if kind == ReportKind.INVENTORY:
        return build_inventory_report(store.products.list_all(), store.categories.list_all())
    if kind == ReportKind.CUSTOMER:
        return build_customer_report(store.customers.list_all(), transactions)
    if kind == ReportKind.EMPLOYEE:
        return build_employee_report(transactions, start=start, end=end)
    return build_financial_report(transactions, start=start, end=end)
