"""Optional follow-ups to a completed sale.

Checkout itself only appends to the ledger. Stock decrement and loyalty accrual
live here so the surrounding application can decide whether to wire them in
(see ``Settings.apply_post_checkout_hooks``).
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal

from retail_pos.models import Transaction
from retail_pos.services.entity_store import EntityStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockAdjustment:
    product_id: str
    previous_quantity: int
    new_quantity: int
    shortfall: int


@dataclass(frozen=True)
class PostCheckoutSummary:
    transaction_id: str
    stock_adjustments: list[StockAdjustment]
    points_awarded: int
    missing_product_ids: list[str]


def decrement_stock(store: EntityStore, transaction: Transaction) -> tuple[list[StockAdjustment], list[str]]:
    adjustments: list[StockAdjustment] = []
    missing: list[str] = []
    with store.lock:
        for item in transaction.items:
            product = store.products.get(item.product_id)
            if product is None:
                missing.append(item.product_id)
                continue
            previous = product.stock_quantity
            # Stock never goes negative; sales beyond stock are reported as a shortfall.
            new_quantity = max(previous - item.quantity, 0)
            store.products.update(product.id, stock_quantity=new_quantity)
            adjustments.append(
                StockAdjustment(
                    product_id=product.id,
                    previous_quantity=previous,
                    new_quantity=new_quantity,
                    shortfall=max(item.quantity - previous, 0),
                )
            )
    for adjustment in adjustments:
        if adjustment.shortfall:
            logger.warning(
                'Sold %s more of %s than in stock (%s)',
                adjustment.shortfall,
                adjustment.product_id,
                transaction.transaction_number,
            )
    return adjustments, missing


def accrue_loyalty_points(store: EntityStore, transaction: Transaction, points_per_unit: int) -> int:
    if transaction.customer_id is None:
        return 0
    with store.lock:
        customer = store.customers.get(transaction.customer_id)
        if customer is None or not customer.loyalty_card.is_active:
            return 0
        points = points_for(transaction.total, points_per_unit)
        if points <= 0:
            return 0
        card = dataclasses.replace(customer.loyalty_card, points=customer.loyalty_card.points + points)
        store.customers.update(customer.id, loyalty_card=card)
    return points


def apply_post_checkout(
    store: EntityStore,
    transaction: Transaction,
    *,
    points_per_unit: int = 1,
) -> PostCheckoutSummary:
    adjustments, missing = decrement_stock(store, transaction)
    points = accrue_loyalty_points(store, transaction, points_per_unit)
    logger.info(
        'Post-checkout for %s: %s stock lines, %s points',
        transaction.transaction_number,
        len(adjustments),
        points,
    )
    return PostCheckoutSummary(
        transaction_id=transaction.id,
        stock_adjustments=adjustments,
        points_awarded=points,
        missing_product_ids=missing,
    )


def points_for(total: Decimal, points_per_unit: int) -> int:
    if points_per_unit <= 0 or total <= 0:
        return 0
    return int((total * points_per_unit).to_integral_value(rounding=ROUND_FLOOR))
