from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from retail_pos.auth import Principal, require_permission
from retail_pos.dependencies import get_audit_log, get_client_ip, get_store, unwrap
from retail_pos.models import Address, Customer, ErrorCode, LoyaltyCard, Permission
from retail_pos.schemas import CustomerIn, CustomerOut, CustomerPatch, CustomerSpendOut
from retail_pos.security.csrf import verify_csrf
from retail_pos.services.analytics_service import customer_spend_summary
from retail_pos.services.audit_service import AuditLog
from retail_pos.services.entity_store import EntityStore

router = APIRouter(prefix='/customers', tags=['customers'], dependencies=[Depends(verify_csrf)])
customer_view = require_permission(Permission.CUSTOMER_VIEW)
customer_edit = require_permission(Permission.CUSTOMER_EDIT)
NULLABLE_FIELDS = frozenset({'preferred_payment_method', 'notes'})


def _as_entities(values: dict) -> dict:
    values = {key: value for key, value in values.items() if value is not None or key in NULLABLE_FIELDS}
    if values.get('loyalty_card') is not None:
        values['loyalty_card'] = LoyaltyCard(**values['loyalty_card'])
    if values.get('address') is not None:
        values['address'] = Address(**values['address'])
    return values


def _customer_out(customer: Customer, store: EntityStore) -> CustomerOut:
    out = CustomerOut.model_validate(customer)
    spend = customer_spend_summary(customer.id, store.ledger.for_customer(customer.id))
    out.spend = CustomerSpendOut.model_validate(spend)
    return out


@router.get('', response_model=list[CustomerOut])
def search_customers(
    q: str | None = Query(None),
    limit: int | None = Query(None, ge=0),
    store: EntityStore = Depends(get_store),
    _: Principal = Depends(customer_view),
):
    return [CustomerOut.model_validate(customer) for customer in store.customers.search(q, limit=limit)]


@router.get('/{customer_id}', response_model=CustomerOut)
def get_customer(
    customer_id: str,
    store: EntityStore = Depends(get_store),
    _: Principal = Depends(customer_view),
):
    customer = store.customers.get(customer_id)
    if customer is None:
        raise HTTPException(
            status_code=404,
            detail={'code': ErrorCode.NOT_FOUND.value, 'message': f'Customer {customer_id} not found'},
        )
    return _customer_out(customer, store)


@router.post('', response_model=CustomerOut, status_code=201)
def create_customer(
    payload: CustomerIn,
    request: Request,
    store: EntityStore = Depends(get_store),
    audit: AuditLog = Depends(get_audit_log),
    principal: Principal = Depends(customer_edit),
):
    customer = unwrap(store.customers.create(Customer(**_as_entities(payload.model_dump()))))
    audit.log_audit(
        actor_principal_id=principal.id,
        action='CUSTOMER_CREATED',
        ip=get_client_ip(request),
        metadata={'customer_id': customer.id},
    )
    return _customer_out(customer, store)


@router.patch('/{customer_id}', response_model=CustomerOut)
def update_customer(
    customer_id: str,
    payload: CustomerPatch,
    request: Request,
    store: EntityStore = Depends(get_store),
    audit: AuditLog = Depends(get_audit_log),
    principal: Principal = Depends(customer_edit),
):
    changes = _as_entities(payload.model_dump(exclude_unset=True))
    customer = unwrap(store.customers.update(customer_id, **changes))
    audit.log_audit(
        actor_principal_id=principal.id,
        action='CUSTOMER_UPDATED',
        ip=get_client_ip(request),
        metadata={'customer_id': customer_id, 'fields': sorted(changes)},
    )
    return _customer_out(customer, store)


@router.delete('/{customer_id}', status_code=204)
def delete_customer(
    customer_id: str,
    request: Request,
    store: EntityStore = Depends(get_store),
    audit: AuditLog = Depends(get_audit_log),
    principal: Principal = Depends(customer_edit),
):
    unwrap(store.customers.delete(customer_id))
    audit.log_audit(
        actor_principal_id=principal.id,
        action='CUSTOMER_DELETED',
        ip=get_client_ip(request),
        metadata={'customer_id': customer_id},
    )
