from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from retail_pos.auth import Principal, require_permission
from retail_pos.config import settings
from retail_pos.dependencies import get_audit_log, get_carts, get_client_ip, get_directory, get_store, unwrap
from retail_pos.models import ErrorCode, Permission, Product
from retail_pos.schemas import (
    AddItemIn,
    AttachCustomerIn,
    CartOut,
    CartItemOut,
    CartTotalsOut,
    CheckoutIn,
    DiscountIn,
    QuantityIn,
    TransactionOut,
)
from retail_pos.security.csrf import verify_csrf
from retail_pos.services.audit_service import AuditLog
from retail_pos.services.cart_service import Cart, CartRegistry
from retail_pos.services.entity_store import EntityStore
from retail_pos.services.post_checkout_service import apply_post_checkout
from retail_pos.services.user_directory_service import UserDirectory

router = APIRouter(prefix='/pos', tags=['pos'], dependencies=[Depends(verify_csrf)])
pos_access = require_permission(Permission.POS_OPERATE)


def _not_found(message: str) -> HTTPException:
    return HTTPException(status_code=404, detail={'code': ErrorCode.NOT_FOUND.value, 'message': message})


def _cart_or_404(carts: CartRegistry, cart_id: str, principal: Principal) -> Cart:
    cart = carts.get(cart_id, principal.id)
    if cart is None:
        raise _not_found(f'Cart {cart_id} not found')
    return cart


def _cart_out(cart: Cart) -> CartOut:
    return CartOut(
        id=cart.id,
        state=cart.state.value,
        items=[CartItemOut.model_validate(item) for item in cart.items],
        customer_id=cart.customer.id if cart.customer else None,
        totals=CartTotalsOut.model_validate(cart.compute_totals().rounded()),
        transaction_id=cart.transaction.id if cart.transaction else None,
    )


def _find_product(store: EntityStore, payload: AddItemIn) -> Product:
    if payload.product_id:
        product = store.products.get(payload.product_id)
        if product is None:
            raise _not_found(f'Product {payload.product_id} not found')
        return product
    if payload.barcode:
        product = store.products.find_by_barcode(payload.barcode)
        if product is not None:
            return product
        raise _not_found(f'No product with barcode {payload.barcode}')
    raise HTTPException(
        status_code=400,
        detail={'code': ErrorCode.INVALID_VALUE.value, 'message': 'product_id or barcode is required'},
    )


@router.post('/carts', response_model=CartOut, status_code=201)
def open_cart(
    carts: CartRegistry = Depends(get_carts),
    principal: Principal = Depends(pos_access),
):
    return _cart_out(carts.open(principal.id, tax_rate=settings.tax_rate))


@router.get('/carts/{cart_id}', response_model=CartOut)
def get_cart(
    cart_id: str,
    carts: CartRegistry = Depends(get_carts),
    principal: Principal = Depends(pos_access),
):
    return _cart_out(_cart_or_404(carts, cart_id, principal))


@router.post('/carts/{cart_id}/items', response_model=CartOut)
def add_item(
    cart_id: str,
    payload: AddItemIn,
    store: EntityStore = Depends(get_store),
    carts: CartRegistry = Depends(get_carts),
    principal: Principal = Depends(pos_access),
):
    cart = _cart_or_404(carts, cart_id, principal)
    unwrap(cart.add_item(_find_product(store, payload)))
    return _cart_out(cart)


@router.patch('/carts/{cart_id}/items/{item_id}', response_model=CartOut)
def set_quantity(
    cart_id: str,
    item_id: str,
    payload: QuantityIn,
    carts: CartRegistry = Depends(get_carts),
    principal: Principal = Depends(pos_access),
):
    cart = _cart_or_404(carts, cart_id, principal)
    unwrap(cart.set_quantity(item_id, payload.quantity))
    return _cart_out(cart)


@router.delete('/carts/{cart_id}/items/{item_id}', response_model=CartOut)
def remove_item(
    cart_id: str,
    item_id: str,
    carts: CartRegistry = Depends(get_carts),
    principal: Principal = Depends(pos_access),
):
    cart = _cart_or_404(carts, cart_id, principal)
    unwrap(cart.remove_item(item_id))
    return _cart_out(cart)


@router.put('/carts/{cart_id}/items/{item_id}/discount', response_model=CartOut)
def set_discount(
    cart_id: str,
    item_id: str,
    payload: DiscountIn,
    carts: CartRegistry = Depends(get_carts),
    principal: Principal = Depends(require_permission(Permission.POS_OPERATE, Permission.PRICE_OVERRIDE)),
):
    cart = _cart_or_404(carts, cart_id, principal)
    unwrap(cart.set_discount(item_id, payload.amount))
    return _cart_out(cart)


@router.put('/carts/{cart_id}/customer', response_model=CartOut)
def attach_customer(
    cart_id: str,
    payload: AttachCustomerIn,
    store: EntityStore = Depends(get_store),
    carts: CartRegistry = Depends(get_carts),
    principal: Principal = Depends(pos_access),
):
    cart = _cart_or_404(carts, cart_id, principal)
    customer = None
    if payload.customer_id is not None:
        customer = store.customers.get(payload.customer_id)
        if customer is None:
            raise _not_found(f'Customer {payload.customer_id} not found')
    unwrap(cart.attach_customer(customer))
    return _cart_out(cart)


@router.post('/carts/{cart_id}/payment', response_model=CartOut)
def begin_payment(
    cart_id: str,
    carts: CartRegistry = Depends(get_carts),
    principal: Principal = Depends(pos_access),
):
    cart = _cart_or_404(carts, cart_id, principal)
    unwrap(cart.begin_payment())
    return _cart_out(cart)


@router.post('/carts/{cart_id}/clear', response_model=CartOut)
def clear_cart(
    cart_id: str,
    carts: CartRegistry = Depends(get_carts),
    principal: Principal = Depends(pos_access),
):
    cart = _cart_or_404(carts, cart_id, principal)
    unwrap(cart.clear())
    return _cart_out(cart)


@router.post('/carts/{cart_id}/checkout', response_model=TransactionOut)
def checkout(
    cart_id: str,
    payload: CheckoutIn,
    request: Request,
    store: EntityStore = Depends(get_store),
    carts: CartRegistry = Depends(get_carts),
    directory: UserDirectory = Depends(get_directory),
    audit: AuditLog = Depends(get_audit_log),
    principal: Principal = Depends(pos_access),
):
    cart = _cart_or_404(carts, cart_id, principal)
    location = store.current_store
    transaction = unwrap(
        cart.checkout(
            store.ledger,
            payment_method=payload.payment_method,
            cashier=directory.get(principal.id),
            store_id=location.id if location else None,
            tendered_amount=payload.tendered_amount,
            card_last4=payload.card_last4,
            auth_code=payload.auth_code,
            gift_card_number=payload.gift_card_number,
            mobile_payment_type=payload.mobile_payment_type,
        )
    )
    if settings.apply_post_checkout_hooks:
        apply_post_checkout(store, transaction, points_per_unit=settings.loyalty_points_per_currency_unit)

    audit.log_audit(
        actor_principal_id=principal.id,
        action='POS_CHECKOUT',
        ip=get_client_ip(request),
        metadata={'transaction_id': transaction.id, 'total': str(transaction.total)},
    )
    return TransactionOut.model_validate(transaction)
