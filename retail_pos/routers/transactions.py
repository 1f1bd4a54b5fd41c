from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from retail_pos.auth import Principal, require_permission
from retail_pos.dependencies import get_audit_log, get_client_ip, get_store, get_window
from retail_pos.models import ErrorCode, PaymentMethod, Permission, TransactionStatus
from retail_pos.schemas import TransactionOut, TransactionPageOut
from retail_pos.services.audit_service import AuditLog
from retail_pos.services.entity_store import EntityStore
from retail_pos.services.report_service import (
    TransactionSort,
    filter_transactions,
    transaction_stats,
    transactions_to_csv,
)

router = APIRouter(prefix='/transactions', tags=['transactions'])
reports_access = require_permission(Permission.REPORTS_VIEW)


def _filtered(
    store: EntityStore,
    window: tuple[datetime, datetime],
    q: str | None,
    status: TransactionStatus | None,
    payment_method: PaymentMethod | None,
    sort_by: TransactionSort,
):
    start, end = window
    return filter_transactions(
        store.ledger.list_all(),
        store.customers.list_all(),
        start=start,
        end=end,
        query=q,
        status=status,
        payment_method=payment_method,
        sort_by=sort_by,
    )


@router.get('', response_model=TransactionPageOut)
def list_transactions(
    q: str | None = Query(None),
    status: TransactionStatus | None = Query(None),
    payment_method: PaymentMethod | None = Query(None),
    sort_by: TransactionSort = Query(TransactionSort.TIMESTAMP),
    window: tuple[datetime, datetime] = Depends(get_window),
    store: EntityStore = Depends(get_store),
    _: Principal = Depends(reports_access),
):
    rows = _filtered(store, window, q, status, payment_method, sort_by)
    stats = transaction_stats(rows)
    return TransactionPageOut(
        transactions=[TransactionOut.model_validate(txn) for txn in rows],
        total_transactions=stats.total_transactions,
        total_revenue=stats.total_revenue,
        average_transaction=stats.average_transaction,
        completed=stats.completed,
        refunded=stats.refunded,
        voided=stats.voided,
    )


@router.get('/export.csv')
def export_csv(
    request: Request,
    q: str | None = Query(None),
    status: TransactionStatus | None = Query(None),
    payment_method: PaymentMethod | None = Query(None),
    sort_by: TransactionSort = Query(TransactionSort.TIMESTAMP),
    window: tuple[datetime, datetime] = Depends(get_window),
    store: EntityStore = Depends(get_store),
    audit: AuditLog = Depends(get_audit_log),
    principal: Principal = Depends(reports_access),
):
    rows = _filtered(store, window, q, status, payment_method, sort_by)
    content = transactions_to_csv(rows, store.customers.list_all())

    audit.log_audit(
        actor_principal_id=principal.id,
        action='TRANSACTIONS_EXPORTED_CSV',
        ip=get_client_ip(request),
        metadata={'rows': len(rows)},
    )
    start, end = window
    return StreamingResponse(
        iter([content]),
        media_type='text/csv',
        headers={
            'Content-Disposition': (
                f'attachment; filename=transactions-{start.date().isoformat()}-{end.date().isoformat()}.csv'
            )
        },
    )


@router.get('/{transaction_id}', response_model=TransactionOut)
def get_transaction(
    transaction_id: str,
    store: EntityStore = Depends(get_store),
    _: Principal = Depends(reports_access),
):
    transaction = store.ledger.get(transaction_id)
    if transaction is None:
        raise HTTPException(
            status_code=404,
            detail={'code': ErrorCode.NOT_FOUND.value, 'message': f'Transaction {transaction_id} not found'},
        )
    return TransactionOut.model_validate(transaction)
