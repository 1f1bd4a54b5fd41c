from __future__ import annotations

import bisect
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

from retail_pos.config import settings
from retail_pos.models import (
    ZERO,
    Customer,
    PaymentMethod,
    Product,
    StoreLocation,
    Transaction,
    to_cents,
)
from retail_pos.services.entity_store import EntityStore

PERCENT = Decimal('0.01')
HUNDRED = Decimal('100')

Metric = Callable[[Sequence[Transaction]], Decimal]


def _percent(value: Decimal) -> Decimal:
    return value.quantize(PERCENT, rounding=ROUND_HALF_UP)


def _zone(tz: tzinfo | str | None) -> tzinfo:
    if tz is None:
        return ZoneInfo(settings.local_timezone)
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def validate_window(start: datetime, end: datetime) -> None:
    if end < start:
        raise ValueError('Window end must be on or after window start')


def in_window(transactions: Iterable[Transaction], start: datetime, end: datetime) -> list[Transaction]:
    validate_window(start, end)
    return [txn for txn in transactions if start <= txn.timestamp < end]


def previous_window(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    validate_window(start, end)
    return start - (end - start), start


@dataclass(frozen=True)
class RevenueAndVolume:
    total_revenue: Decimal
    total_transactions: int
    average_order_value: Decimal


@dataclass(frozen=True)
class ProductSales:
    product_id: str
    sku: str
    name: str
    quantity: int
    revenue: Decimal


@dataclass(frozen=True)
class HourlySales:
    hour: int
    sales: Decimal


@dataclass(frozen=True)
class DailySales:
    day: date
    sales: Decimal


@dataclass(frozen=True)
class PaymentMethodShare:
    method: PaymentMethod
    count: int
    percentage: Decimal
    amount: Decimal


@dataclass(frozen=True)
class CustomerSpend:
    customer_id: str
    total_spent: Decimal
    transaction_count: int
    average_order_value: Decimal
    last_visit: datetime | None


@dataclass(frozen=True)
class SalesMetrics:
    total_revenue: Decimal
    total_transactions: int
    average_order_value: Decimal
    growth: Decimal


@dataclass(frozen=True)
class InventorySnapshot:
    total_products: int
    low_stock_count: int
    out_of_stock_count: int
    total_value: Decimal


@dataclass(frozen=True)
class CustomerMetrics:
    total_customers: int
    new_customers: int
    returning_customers: int
    loyalty_members: int


@dataclass(frozen=True)
class BranchAnalytics:
    store_id: str
    store_name: str
    period_start: datetime
    period_end: datetime
    sales: SalesMetrics
    inventory: InventorySnapshot
    customers: CustomerMetrics
    top_products: list[ProductSales]
    payment_methods: list[PaymentMethodShare]


@dataclass(frozen=True)
class SalesOverview:
    period_start: datetime
    period_end: datetime
    total_sales: Decimal
    total_transactions: int
    average_order_value: Decimal
    total_items: int
    sales_growth: Decimal
    top_products: list[ProductSales]
    hourly_sales: list[HourlySales]
    unique_customers: int
    returning_customers: int


@dataclass(frozen=True)
class BranchRollup:
    total_revenue: Decimal
    total_transactions: int
    average_order_value: Decimal
    total_customers: int
    average_growth: Decimal
    top_branch: BranchAnalytics | None
    underperforming_branches: list[BranchAnalytics]
    active_branches: int
    total_branches: int


def total_revenue(transactions: Sequence[Transaction]) -> Decimal:
    return sum((txn.total for txn in transactions), ZERO)


def revenue_and_volume(transactions: Sequence[Transaction]) -> RevenueAndVolume:
    revenue = total_revenue(transactions)
    count = len(transactions)
    average = to_cents(revenue / count) if count else ZERO
    return RevenueAndVolume(total_revenue=revenue, total_transactions=count, average_order_value=average)


def growth(current: Decimal, previous: Decimal) -> Decimal:
    """Percent change from previous to current; 0 when previous is 0."""
    if previous == 0:
        return ZERO
    return _percent((current - previous) / previous * HUNDRED)


def windowed_growth(
    all_transactions: Sequence[Transaction],
    start: datetime,
    end: datetime,
    metric: Metric = total_revenue,
) -> Decimal:
    prev_start, prev_end = previous_window(start, end)
    current = metric(in_window(all_transactions, start, end))
    previous = metric(in_window(all_transactions, prev_start, prev_end))
    return growth(current, previous)


def top_products(transactions: Sequence[Transaction], limit: int) -> list[ProductSales]:
    if limit <= 0:
        return []
    totals: dict[str, list] = {}
    for txn in transactions:
        for item in txn.items:
            bucket = totals.setdefault(item.product_id, [item.sku, item.name, 0, ZERO])
            bucket[2] += item.quantity
            bucket[3] += item.total_price

    rows = [
        ProductSales(product_id=product_id, sku=sku, name=name, quantity=quantity, revenue=to_cents(revenue))
        for product_id, (sku, name, quantity, revenue) in totals.items()
    ]
    # sorted() is stable, so equal revenue keeps first-seen order.
    rows = sorted(rows, key=lambda row: row.revenue, reverse=True)
    return rows[:limit]


def sales_by_hour(transactions: Sequence[Transaction], tz: tzinfo | str | None = None) -> list[HourlySales]:
    zone = _zone(tz)
    buckets = [ZERO] * 24
    for txn in transactions:
        buckets[txn.timestamp.astimezone(zone).hour] += txn.total
    return [HourlySales(hour=hour, sales=sales) for hour, sales in enumerate(buckets)]


def sales_by_day(transactions: Sequence[Transaction], tz: tzinfo | str | None = None) -> list[DailySales]:
    zone = _zone(tz)
    buckets: dict[date, Decimal] = {}
    for txn in transactions:
        day = txn.timestamp.astimezone(zone).date()
        buckets[day] = buckets.get(day, ZERO) + txn.total
    return [DailySales(day=day, sales=buckets[day]) for day in sorted(buckets)]


def unique_customers(transactions: Sequence[Transaction]) -> int:
    return len({txn.customer_id for txn in transactions if txn.customer_id is not None})


def _timestamps_by_customer(transactions: Iterable[Transaction]) -> dict[str, list[datetime]]:
    index: dict[str, list[datetime]] = {}
    for txn in transactions:
        if txn.customer_id is not None:
            index.setdefault(txn.customer_id, []).append(txn.timestamp)
    for timestamps in index.values():
        timestamps.sort()
    return index


def returning_customers(transactions: Sequence[Transaction], all_transactions: Sequence[Transaction]) -> int:
    """Count transactions whose customer already bought something earlier.

    Indexed by customer id with sorted timestamps, so the cost is O(n log n)
    instead of rescanning the whole ledger per transaction.
    """
    index = _timestamps_by_customer(all_transactions)
    count = 0
    for txn in transactions:
        if txn.customer_id is None:
            continue
        timestamps = index.get(txn.customer_id, [])
        if bisect.bisect_left(timestamps, txn.timestamp) > 0:
            count += 1
    return count


def customer_spend_summary(customer_id: str, transactions: Sequence[Transaction]) -> CustomerSpend:
    own = [txn for txn in transactions if txn.customer_id == customer_id]
    totals = revenue_and_volume(own)
    return CustomerSpend(
        customer_id=customer_id,
        total_spent=totals.total_revenue,
        transaction_count=totals.total_transactions,
        average_order_value=totals.average_order_value,
        last_visit=max((txn.timestamp for txn in own), default=None),
    )


def payment_method_distribution(transactions: Sequence[Transaction]) -> list[PaymentMethodShare]:
    total_count = len(transactions)
    counts = {method: 0 for method in PaymentMethod}
    amounts = {method: ZERO for method in PaymentMethod}
    for txn in transactions:
        counts[txn.payment_method] += 1
        amounts[txn.payment_method] += txn.total
    return [
        PaymentMethodShare(
            method=method,
            count=counts[method],
            percentage=_percent(Decimal(counts[method]) / Decimal(total_count) * HUNDRED) if total_count else ZERO,
            amount=amounts[method],
        )
        for method in PaymentMethod
    ]


def inventory_snapshot(products: Sequence[Product]) -> InventorySnapshot:
    return InventorySnapshot(
        total_products=len(products),
        low_stock_count=sum(1 for product in products if product.is_low_stock),
        out_of_stock_count=sum(1 for product in products if product.is_out_of_stock),
        total_value=to_cents(sum((product.cost_price * product.stock_quantity for product in products), ZERO)),
    )


def build_branch_analytics(
    location: StoreLocation,
    *,
    all_transactions: Sequence[Transaction],
    products: Sequence[Product],
    customers: Sequence[Customer],
    start: datetime,
    end: datetime,
    top_limit: int | None = None,
) -> BranchAnalytics:
    top_limit = settings.top_products_limit if top_limit is None else top_limit
    branch_transactions = [txn for txn in all_transactions if txn.store_id == location.id]
    window = in_window(branch_transactions, start, end)
    totals = revenue_and_volume(window)

    window_customer_ids = {txn.customer_id for txn in window if txn.customer_id is not None}
    customers_by_id = {customer.id: customer for customer in customers}
    # New customers are scoped to this branch: created in the window and transacting here in it.
    new_customers = sum(
        1
        for customer_id in window_customer_ids
        if customer_id in customers_by_id and start <= customers_by_id[customer_id].created_at < end
    )
    loyalty_members = sum(
        1
        for customer_id in window_customer_ids
        if customer_id in customers_by_id and customers_by_id[customer_id].loyalty_card.is_active
    )

    return BranchAnalytics(
        store_id=location.id,
        store_name=location.name,
        period_start=start,
        period_end=end,
        sales=SalesMetrics(
            total_revenue=totals.total_revenue,
            total_transactions=totals.total_transactions,
            average_order_value=totals.average_order_value,
            growth=windowed_growth(branch_transactions, start, end),
        ),
        inventory=inventory_snapshot(products),
        customers=CustomerMetrics(
            total_customers=len(window_customer_ids),
            new_customers=new_customers,
            returning_customers=returning_customers(window, all_transactions),
            loyalty_members=loyalty_members,
        ),
        top_products=top_products(window, top_limit),
        payment_methods=payment_method_distribution(window),
    )


def branch_analytics(
    store: EntityStore,
    store_id: str,
    start: datetime,
    end: datetime,
    *,
    top_limit: int | None = None,
) -> BranchAnalytics | None:
    location = store.store_locations.get(store_id)
    if location is None:
        return None
    return build_branch_analytics(
        location,
        all_transactions=store.ledger.list_all(),
        products=store.products.list_all(),
        customers=store.customers.list_all(),
        start=start,
        end=end,
        top_limit=top_limit,
    )


def all_branches_analytics(
    store: EntityStore,
    start: datetime,
    end: datetime,
    *,
    top_limit: int | None = None,
) -> list[BranchAnalytics]:
    validate_window(start, end)
    all_transactions = store.ledger.list_all()
    products = store.products.list_all()
    customers = store.customers.list_all()
    return [
        build_branch_analytics(
            location,
            all_transactions=all_transactions,
            products=products,
            customers=customers,
            start=start,
            end=end,
            top_limit=top_limit,
        )
        for location in store.store_locations.list_all()
    ]


def sales_overview(
    all_transactions: Sequence[Transaction],
    start: datetime,
    end: datetime,
    *,
    top_limit: int | None = None,
    tz: tzinfo | str | None = None,
) -> SalesOverview:
    top_limit = settings.top_products_limit if top_limit is None else top_limit
    window = in_window(all_transactions, start, end)
    totals = revenue_and_volume(window)
    return SalesOverview(
        period_start=start,
        period_end=end,
        total_sales=totals.total_revenue,
        total_transactions=totals.total_transactions,
        average_order_value=totals.average_order_value,
        total_items=sum(txn.item_count for txn in window),
        sales_growth=windowed_growth(all_transactions, start, end),
        top_products=top_products(window, top_limit),
        hourly_sales=sales_by_hour(window, tz),
        unique_customers=unique_customers(window),
        returning_customers=returning_customers(window, all_transactions),
    )


def summarize_branches(
    reports: Sequence[BranchAnalytics],
    locations: Sequence[StoreLocation],
    window_transactions: Sequence[Transaction],
) -> BranchRollup:
    """Roll branch reports up into one dashboard summary.

    ``total_customers`` counts distinct customers across the reported branches,
    so someone who shopped at two branches counts once.
    """
    branch_ids = {report.store_id for report in reports}
    revenue = sum((report.sales.total_revenue for report in reports), ZERO)
    count = sum(report.sales.total_transactions for report in reports)
    average_growth = (
        _percent(sum((report.sales.growth for report in reports), ZERO) / len(reports)) if reports else ZERO
    )
    top_branch = None
    for report in reports:
        if top_branch is None or report.sales.total_revenue > top_branch.sales.total_revenue:
            top_branch = report
    return BranchRollup(
        total_revenue=revenue,
        total_transactions=count,
        average_order_value=to_cents(revenue / count) if count else ZERO,
        total_customers=unique_customers([txn for txn in window_transactions if txn.store_id in branch_ids]),
        average_growth=average_growth,
        top_branch=top_branch,
        underperforming_branches=[report for report in reports if report.sales.growth < 0],
        active_branches=sum(1 for location in locations if location.is_active),
        total_branches=len(locations),
    )
