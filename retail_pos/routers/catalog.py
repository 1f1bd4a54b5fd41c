from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from retail_pos.auth import Principal, require_permission
from retail_pos.dependencies import get_audit_log, get_client_ip, get_store, unwrap
from retail_pos.models import ErrorCode, Permission, Product
from retail_pos.schemas import CategoryOut, ProductIn, ProductOut, ProductPatch
from retail_pos.security.csrf import verify_csrf
from retail_pos.services.audit_service import AuditLog
from retail_pos.services.entity_store import EntityStore

router = APIRouter(prefix='/catalog', tags=['catalog'], dependencies=[Depends(verify_csrf)])
inventory_view = require_permission(Permission.INVENTORY_VIEW)
inventory_edit = require_permission(Permission.INVENTORY_EDIT)
NULLABLE_FIELDS = frozenset({'category_id', 'tax_rate'})


def _product_or_404(store: EntityStore, product_id: str) -> Product:
    product = store.products.get(product_id)
    if product is None:
        raise HTTPException(
            status_code=404,
            detail={'code': ErrorCode.NOT_FOUND.value, 'message': f'Product {product_id} not found'},
        )
    return product


@router.get('/categories', response_model=list[CategoryOut])
def list_categories(
    store: EntityStore = Depends(get_store),
    _: Principal = Depends(inventory_view),
):
    return store.categories.list_all()


@router.get('/products', response_model=list[ProductOut])
def search_products(
    q: str | None = Query(None),
    limit: int | None = Query(None, ge=0),
    low_stock: bool = Query(False),
    store: EntityStore = Depends(get_store),
    _: Principal = Depends(inventory_view),
):
    if low_stock:
        return [product for product in store.products.list_all() if product.is_low_stock]
    return store.products.search(q, limit=limit)


@router.get('/products/{product_id}', response_model=ProductOut)
def get_product(
    product_id: str,
    store: EntityStore = Depends(get_store),
    _: Principal = Depends(inventory_view),
):
    return _product_or_404(store, product_id)


@router.post('/products', response_model=ProductOut, status_code=201)
def create_product(
    payload: ProductIn,
    request: Request,
    store: EntityStore = Depends(get_store),
    audit: AuditLog = Depends(get_audit_log),
    principal: Principal = Depends(inventory_edit),
):
    product = unwrap(store.products.create(Product(**payload.model_dump())))
    audit.log_audit(
        actor_principal_id=principal.id,
        action='PRODUCT_CREATED',
        ip=get_client_ip(request),
        metadata={'product_id': product.id, 'sku': product.sku},
    )
    return product


@router.patch('/products/{product_id}', response_model=ProductOut)
def update_product(
    product_id: str,
    payload: ProductPatch,
    request: Request,
    store: EntityStore = Depends(get_store),
    audit: AuditLog = Depends(get_audit_log),
    principal: Principal = Depends(inventory_edit),
):
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_FIELDS
    }
    product = unwrap(store.products.update(product_id, **changes))
    audit.log_audit(
        actor_principal_id=principal.id,
        action='PRODUCT_UPDATED',
        ip=get_client_ip(request),
        metadata={'product_id': product_id, 'fields': sorted(changes)},
    )
    return product


@router.delete('/products/{product_id}', status_code=204)
def delete_product(
    product_id: str,
    request: Request,
    store: EntityStore = Depends(get_store),
    audit: AuditLog = Depends(get_audit_log),
    principal: Principal = Depends(inventory_edit),
):
    unwrap(store.products.delete(product_id))
    audit.log_audit(
        actor_principal_id=principal.id,
        action='PRODUCT_DELETED',
        ip=get_client_ip(request),
        metadata={'product_id': product_id},
    )
