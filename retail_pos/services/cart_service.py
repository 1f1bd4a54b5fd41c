from __future__ import annotations

import dataclasses
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from retail_pos.config import settings
from retail_pos.models import (
    ZERO,
    CartItem,
    Customer,
    ErrorCode,
    MobilePaymentType,
    PaymentDetails,
    PaymentMethod,
    Product,
    Result,
    Transaction,
    TransactionStatus,
    User,
    to_cents,
    utcnow,
)
from retail_pos.services.entity_store import Ledger

logger = logging.getLogger(__name__)


class CartState(str, Enum):
    EMPTY = 'EMPTY'
    BUILDING = 'BUILDING'
    AWAITING_PAYMENT = 'AWAITING_PAYMENT'
    COMPLETED = 'COMPLETED'


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal

    def rounded(self) -> CartTotals:
        # Tax is rounded half-up to cents and the total is rebuilt from the rounded parts.
        subtotal = to_cents(self.subtotal)
        discount = to_cents(self.discount)
        tax = to_cents(self.tax)
        return CartTotals(subtotal=subtotal, discount=discount, tax=tax, total=subtotal - discount + tax)


def compute_totals(items: list[CartItem] | tuple[CartItem, ...], tax_rate: Decimal) -> CartTotals:
    subtotal = sum((item.total_price for item in items), Decimal('0'))
    discount = sum((item.discount for item in items), Decimal('0'))
    tax = tax_rate * (subtotal - discount)
    return CartTotals(subtotal=subtotal, discount=discount, tax=tax, total=subtotal - discount + tax)


def change_due(tendered_amount: Decimal, total: Decimal) -> Decimal:
    return to_cents(max(ZERO, tendered_amount - total))


class Cart:
    """A pending sale for one cashier.

    Moves EMPTY -> BUILDING -> AWAITING_PAYMENT -> COMPLETED. Clearing, or removing
    the last line, returns a building cart to EMPTY. A completed cart rejects every
    further mutation; start a new cart for the next sale.

    Every mutation holds the cart's own lock, so a double-submitted checkout
    appends at most one transaction.
    """

    def __init__(self, *, cart_id: str | None = None, tax_rate: Decimal | None = None) -> None:
        self.id = cart_id or uuid.uuid4().hex
        self.tax_rate = settings.tax_rate if tax_rate is None else tax_rate
        self.items: list[CartItem] = []
        self.customer: Customer | None = None
        self.state = CartState.EMPTY
        self.transaction: Transaction | None = None
        self.created_at = utcnow()
        self.updated_at = self.created_at
        self._lock = threading.RLock()

    def _closed(self) -> Result:
        return Result.failure(ErrorCode.CART_CLOSED, 'Cart is already checked out; start a new cart')

    def _after_change(self) -> None:
        self.state = CartState.BUILDING if self.items else CartState.EMPTY
        self.updated_at = utcnow()

    def _find(self, item_id: str) -> int | None:
        for index, item in enumerate(self.items):
            if item.id == item_id:
                return index
        return None

    def add_item(self, product: Product) -> Result[CartItem]:
        with self._lock:
            if self.state == CartState.COMPLETED:
                return self._closed()

            for index, item in enumerate(self.items):
                if item.product_id == product.id:
                    updated = dataclasses.replace(item, quantity=item.quantity + 1)
                    self.items[index] = updated
                    self._after_change()
                    return Result.success(updated)

            item = CartItem(
                id=f'cart-{uuid.uuid4().hex[:12]}-{product.id}',
                product_id=product.id,
                sku=product.sku,
                name=product.name,
                quantity=1,
                unit_price=product.unit_price,
                category_id=product.category_id,
                cost_price=product.cost_price,
            )
            self.items.append(item)
            self._after_change()
            return Result.success(item)

    def set_quantity(self, item_id: str, quantity: int) -> Result[CartItem]:
        with self._lock:
            if self.state == CartState.COMPLETED:
                return self._closed()
            index = self._find(item_id)
            if index is None:
                return Result.failure(ErrorCode.NOT_FOUND, f'Cart item {item_id} not found')

            if quantity <= 0:
                removed = self.items.pop(index)
                self._after_change()
                return Result.success(removed)

            current = self.items[index]
            # A lowered quantity must not leave a discount larger than the line.
            discount = min(current.discount, current.unit_price * quantity)
            updated = dataclasses.replace(current, quantity=quantity, discount=discount)
            self.items[index] = updated
            self._after_change()
            return Result.success(updated)

    def remove_item(self, item_id: str) -> Result[CartItem]:
        return self.set_quantity(item_id, 0)

    def set_discount(self, item_id: str, amount: Decimal) -> Result[CartItem]:
        with self._lock:
            if self.state == CartState.COMPLETED:
                return self._closed()
            index = self._find(item_id)
            if index is None:
                return Result.failure(ErrorCode.NOT_FOUND, f'Cart item {item_id} not found')
            item = self.items[index]
            if amount < 0 or amount > item.total_price:
                return Result.failure(ErrorCode.INVALID_DISCOUNT, 'Discount must be between zero and the line total')
            updated = dataclasses.replace(item, discount=amount)
            self.items[index] = updated
            self._after_change()
            return Result.success(updated)

    def attach_customer(self, customer: Customer | None) -> Result[Customer]:
        with self._lock:
            if self.state == CartState.COMPLETED:
                return self._closed()
            self.customer = customer
            self.updated_at = utcnow()
            return Result.success(customer)

    def clear(self) -> Result[None]:
        with self._lock:
            if self.state == CartState.COMPLETED:
                return self._closed()
            self.items = []
            self.customer = None
            self._after_change()
            return Result.success(None)

    def begin_payment(self) -> Result[CartTotals]:
        with self._lock:
            if self.state == CartState.COMPLETED:
                return self._closed()
            if not self.items:
                return Result.failure(ErrorCode.EMPTY_CART, 'Cart has no items')
            self.state = CartState.AWAITING_PAYMENT
            self.updated_at = utcnow()
            return Result.success(self.compute_totals().rounded())

    def compute_totals(self) -> CartTotals:
        with self._lock:
            return compute_totals(list(self.items), self.tax_rate)

    def checkout(
        self,
        ledger: Ledger,
        *,
        payment_method: PaymentMethod,
        cashier: User | None,
        store_id: str | None,
        tendered_amount: Decimal | None = None,
        card_last4: str | None = None,
        auth_code: str | None = None,
        gift_card_number: str | None = None,
        mobile_payment_type: MobilePaymentType | None = None,
    ) -> Result[Transaction]:
        with self._lock:
            if self.state == CartState.COMPLETED:
                return self._closed()
            if not self.items:
                return Result.failure(ErrorCode.EMPTY_CART, 'Cart has no items')
            if cashier is None:
                return Result.failure(ErrorCode.NOT_AUTHENTICATED, 'A signed-in cashier is required')
            if not store_id:
                return Result.failure(ErrorCode.NO_STORE_SELECTED, 'Select a store before checkout')

            totals = self.compute_totals().rounded()
            change_given = None
            if payment_method == PaymentMethod.CASH:
                if tendered_amount is None or tendered_amount < totals.total:
                    logger.info(
                        'Cart %s rejected: tendered %s below total %s', self.id, tendered_amount, totals.total
                    )
                    return Result.failure(
                        ErrorCode.INSUFFICIENT_PAYMENT, f'Cash tendered must be at least {totals.total}'
                    )
                change_given = change_due(tendered_amount, totals.total)

            transaction_number, receipt_number = ledger.next_document_numbers()
            transaction = Transaction(
                id=f'txn-{uuid.uuid4().hex}',
                transaction_number=transaction_number,
                receipt_number=receipt_number,
                store_id=store_id,
                items=tuple(self.items),
                subtotal=totals.subtotal,
                discount=totals.discount,
                tax=totals.tax,
                total=totals.total,
                payment_method=payment_method,
                payment_details=PaymentDetails(
                    method=payment_method,
                    amount=totals.total,
                    tendered_amount=tendered_amount if payment_method == PaymentMethod.CASH else None,
                    change_given=change_given,
                    card_last4=card_last4,
                    auth_code=auth_code,
                    gift_card_number=gift_card_number,
                    mobile_payment_type=mobile_payment_type,
                ),
                cashier_id=cashier.id,
                cashier_name=cashier.full_name,
                timestamp=utcnow(),
                customer_id=self.customer.id if self.customer else None,
                status=TransactionStatus.COMPLETED,
            )
            appended = ledger.append(transaction)
            if not appended.ok:
                return appended

            self.transaction = transaction
            self.state = CartState.COMPLETED
            self.updated_at = transaction.timestamp

        logger.info(
            'Checkout %s store=%s total=%s method=%s cashier=%s',
            transaction.transaction_number,
            store_id,
            transaction.total,
            payment_method.value,
            cashier.username,
        )
        return Result.success(transaction)


class CartRegistry:
    """Open carts keyed by id, each owned by the cashier who started it.

    Carts untouched for longer than ``idle_ttl`` are dropped whenever a new cart
    is opened. A completed cart stays until then so late mutations still answer
    CART_CLOSED.
    """

    def __init__(self, *, idle_ttl: timedelta | None = None) -> None:
        self._lock = threading.Lock()
        self._carts: dict[str, tuple[str, Cart]] = {}
        self.idle_ttl = idle_ttl if idle_ttl is not None else timedelta(minutes=settings.cart_idle_ttl_minutes)

    def __len__(self) -> int:
        return len(self._carts)

    def open(self, owner_id: str, *, tax_rate: Decimal | None = None) -> Cart:
        self.purge_idle()
        cart = Cart(tax_rate=tax_rate)
        with self._lock:
            self._carts[cart.id] = (owner_id, cart)
        return cart

    def get(self, cart_id: str, owner_id: str) -> Cart | None:
        entry = self._carts.get(cart_id)
        if entry is None or entry[0] != owner_id:
            return None
        return entry[1]

    def purge_idle(self, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - self.idle_ttl
        with self._lock:
            stale = [cart_id for cart_id, (_, cart) in self._carts.items() if cart.updated_at < cutoff]
            for cart_id in stale:
                del self._carts[cart_id]
        if stale:
            logger.info('Dropped %d idle carts', len(stale))
        return len(stale)
