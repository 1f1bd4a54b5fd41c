from __future__ import annotations

import csv
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, tzinfo
from decimal import Decimal
from enum import Enum
from io import StringIO

from retail_pos.models import (
    ZERO,
    Category,
    Customer,
    LoyaltyTier,
    PaymentMethod,
    Product,
    Transaction,
    TransactionStatus,
    to_cents,
)
from retail_pos.services.analytics_service import (
    HUNDRED,
    DailySales,
    ProductSales,
    customer_spend_summary,
    in_window,
    revenue_and_volume,
    sales_by_day,
    top_products,
)
from retail_pos.services.sort_utils import matches_query, normalize_sort_text

REPORT_ROW_LIMIT = 10


class ReportKind(str, Enum):
    SALES = 'sales'
    INVENTORY = 'inventory'
    CUSTOMER = 'customer'
    EMPLOYEE = 'employee'
    FINANCIAL = 'financial'


class TransactionSort(str, Enum):
    TIMESTAMP = 'timestamp'
    AMOUNT = 'amount'
    CUSTOMER = 'customer'
    CASHIER = 'cashier'


@dataclass(frozen=True)
class SalesReport:
    period_start: datetime
    period_end: datetime
    total_sales: Decimal
    total_transactions: int
    average_transaction: Decimal
    sales_by_day: list[DailySales]
    top_products: list[ProductSales]
    revenue_by_payment_method: dict[PaymentMethod, Decimal]


@dataclass(frozen=True)
class CategoryStock:
    category_id: str | None
    category_name: str
    quantity: int
    value: Decimal


@dataclass(frozen=True)
class InventoryReport:
    total_products: int
    total_value: Decimal
    low_stock: list[Product]
    out_of_stock: list[Product]
    value_by_category: list[CategoryStock]
    top_stocked: list[Product]


@dataclass(frozen=True)
class CustomerRanking:
    customer_id: str
    name: str
    tier: LoyaltyTier
    total_spent: Decimal
    transaction_count: int


@dataclass(frozen=True)
class CustomerReport:
    total_customers: int
    loyalty_members: int
    loyalty_rate: Decimal
    average_spent: Decimal
    tier_distribution: dict[LoyaltyTier, int]
    top_customers: list[CustomerRanking]


@dataclass(frozen=True)
class EmployeePerformance:
    cashier_id: str
    cashier_name: str
    sales: Decimal
    transactions: int


@dataclass(frozen=True)
class EmployeeReport:
    period_start: datetime
    period_end: datetime
    total_employees: int
    total_sales: Decimal
    average_sales_per_employee: Decimal
    top_performers: list[EmployeePerformance]


@dataclass(frozen=True)
class FinancialReport:
    period_start: datetime
    period_end: datetime
    total_revenue: Decimal
    total_tax: Decimal
    total_discounts: Decimal
    net_revenue: Decimal
    revenue_by_payment_method: dict[PaymentMethod, Decimal]


@dataclass(frozen=True)
class TransactionStats:
    total_transactions: int
    total_revenue: Decimal
    average_transaction: Decimal
    completed: int
    refunded: int
    voided: int


def _revenue_by_method(transactions: Sequence[Transaction]) -> dict[PaymentMethod, Decimal]:
    out: dict[PaymentMethod, Decimal] = {}
    for txn in transactions:
        out[txn.payment_method] = out.get(txn.payment_method, ZERO) + txn.total
    return out


def build_sales_report(
    all_transactions: Sequence[Transaction],
    *,
    start: datetime,
    end: datetime,
    tz: tzinfo | str | None = None,
) -> SalesReport:
    window = in_window(all_transactions, start, end)
    totals = revenue_and_volume(window)
    return SalesReport(
        period_start=start,
        period_end=end,
        total_sales=totals.total_revenue,
        total_transactions=totals.total_transactions,
        average_transaction=totals.average_order_value,
        sales_by_day=sales_by_day(window, tz),
        top_products=top_products(window, REPORT_ROW_LIMIT),
        revenue_by_payment_method=_revenue_by_method(window),
    )


def build_inventory_report(products: Sequence[Product], categories: Sequence[Category]) -> InventoryReport:
    names = {category.id: category.name for category in categories}
    by_category: dict[str | None, list] = {}
    for product in products:
        bucket = by_category.setdefault(product.category_id, [0, ZERO])
        bucket[0] += product.stock_quantity
        bucket[1] += product.cost_price * product.stock_quantity

    value_by_category = [
        CategoryStock(
            category_id=category_id,
            category_name=names.get(category_id, 'Uncategorized') if category_id else 'Uncategorized',
            quantity=quantity,
            value=to_cents(value),
        )
        for category_id, (quantity, value) in by_category.items()
    ]
    value_by_category.sort(key=lambda row: (-row.value, row.category_name.lower()))

    return InventoryReport(
        total_products=len(products),
        total_value=to_cents(sum((row.value for row in value_by_category), ZERO)),
        low_stock=[product for product in products if product.is_low_stock],
        out_of_stock=[product for product in products if product.is_out_of_stock],
        value_by_category=value_by_category,
        top_stocked=sorted(products, key=lambda product: product.stock_quantity, reverse=True)[:REPORT_ROW_LIMIT],
    )


def build_customer_report(customers: Sequence[Customer], all_transactions: Sequence[Transaction]) -> CustomerReport:
    total = len(customers)
    loyalty_members = sum(1 for customer in customers if customer.loyalty_card.is_active)

    tier_distribution = {tier: 0 for tier in LoyaltyTier}
    rankings: list[CustomerRanking] = []
    for customer in customers:
        tier_distribution[customer.loyalty_card.tier] += 1
        spend = customer_spend_summary(customer.id, all_transactions)
        rankings.append(
            CustomerRanking(
                customer_id=customer.id,
                name=customer.full_name,
                tier=customer.loyalty_card.tier,
                total_spent=spend.total_spent,
                transaction_count=spend.transaction_count,
            )
        )
    total_spent = sum((row.total_spent for row in rankings), ZERO)
    rankings.sort(key=lambda row: row.total_spent, reverse=True)

    return CustomerReport(
        total_customers=total,
        loyalty_members=loyalty_members,
        loyalty_rate=to_cents(Decimal(loyalty_members) / Decimal(total) * HUNDRED) if total else ZERO,
        average_spent=to_cents(total_spent / total) if total else ZERO,
        tier_distribution=tier_distribution,
        top_customers=rankings[:REPORT_ROW_LIMIT],
    )


def build_employee_report(all_transactions: Sequence[Transaction], *, start: datetime, end: datetime) -> EmployeeReport:
    window = in_window(all_transactions, start, end)
    by_cashier: dict[str, EmployeePerformance] = {}
    for txn in window:
        current = by_cashier.get(txn.cashier_id)
        by_cashier[txn.cashier_id] = EmployeePerformance(
            cashier_id=txn.cashier_id,
            cashier_name=txn.cashier_name,
            sales=(current.sales if current else ZERO) + txn.total,
            transactions=(current.transactions if current else 0) + 1,
        )

    performers = sorted(by_cashier.values(), key=lambda row: row.sales, reverse=True)
    total_sales = sum((row.sales for row in performers), ZERO)
    return EmployeeReport(
        period_start=start,
        period_end=end,
        total_employees=len(performers),
        total_sales=total_sales,
        average_sales_per_employee=to_cents(total_sales / len(performers)) if performers else ZERO,
        top_performers=performers[:REPORT_ROW_LIMIT],
    )


def build_financial_report(
    all_transactions: Sequence[Transaction],
    *,
    start: datetime,
    end: datetime,
) -> FinancialReport:
    window = in_window(all_transactions, start, end)
    revenue = sum((txn.total for txn in window), ZERO)
    tax = sum((txn.tax for txn in window), ZERO)
    discounts = sum((txn.discount for txn in window), ZERO)
    return FinancialReport(
        period_start=start,
        period_end=end,
        total_revenue=revenue,
        total_tax=tax,
        total_discounts=discounts,
        net_revenue=revenue - tax - discounts,
        revenue_by_payment_method=_revenue_by_method(window),
    )


def _customer_label(txn: Transaction, customers: dict[str, Customer]) -> str:
    customer = customers.get(txn.customer_id) if txn.customer_id else None
    return customer.full_name if customer else 'Guest'


def filter_transactions(
    all_transactions: Sequence[Transaction],
    customers: Sequence[Customer],
    *,
    start: datetime,
    end: datetime,
    query: str | None = None,
    status: TransactionStatus | None = None,
    payment_method: PaymentMethod | None = None,
    sort_by: TransactionSort = TransactionSort.TIMESTAMP,
) -> list[Transaction]:
    customers_by_id = {customer.id: customer for customer in customers}

    def search_fields(txn: Transaction) -> tuple[str | None, ...]:
        customer = customers_by_id.get(txn.customer_id) if txn.customer_id else None
        return (
            txn.transaction_number,
            txn.receipt_number,
            customer.full_name if customer else None,
            customer.email if customer else None,
            txn.cashier_name,
        )

    rows = [
        txn
        for txn in in_window(all_transactions, start, end)
        if (status is None or txn.status == status)
        and (payment_method is None or txn.payment_method == payment_method)
        and matches_query(query, search_fields(txn))
    ]

    if sort_by == TransactionSort.AMOUNT:
        rows.sort(key=lambda txn: txn.total, reverse=True)
    elif sort_by == TransactionSort.CUSTOMER:
        rows.sort(key=lambda txn: normalize_sort_text(_customer_label(txn, customers_by_id)))
    elif sort_by == TransactionSort.CASHIER:
        rows.sort(key=lambda txn: normalize_sort_text(txn.cashier_name))
    else:
        rows.sort(key=lambda txn: txn.timestamp, reverse=True)
    return rows


def transaction_stats(transactions: Sequence[Transaction]) -> TransactionStats:
    totals = revenue_and_volume(transactions)
    return TransactionStats(
        total_transactions=totals.total_transactions,
        total_revenue=totals.total_revenue,
        average_transaction=totals.average_order_value,
        completed=sum(1 for txn in transactions if txn.status == TransactionStatus.COMPLETED),
        refunded=sum(
            1
            for txn in transactions
            if txn.status in {TransactionStatus.REFUNDED, TransactionStatus.PARTIALLY_REFUNDED}
        ),
        voided=sum(1 for txn in transactions if txn.status == TransactionStatus.VOIDED),
    )


def transactions_to_csv(transactions: Sequence[Transaction], customers: Sequence[Customer]) -> str:
    customers_by_id = {customer.id: customer for customer in customers}
    sio = StringIO()
    writer = csv.writer(sio)
    writer.writerow(
        [
            'Transaction',
            'Receipt',
            'Timestamp',
            'Store',
            'Customer',
            'Cashier',
            'Items',
            'Subtotal',
            'Discount',
            'Tax',
            'Total',
            'Payment Method',
            'Status',
        ]
    )
    for txn in transactions:
        writer.writerow(
            [
                txn.transaction_number,
                txn.receipt_number,
                txn.timestamp.isoformat(),
                txn.store_id,
                _customer_label(txn, customers_by_id),
                txn.cashier_name,
                txn.item_count,
                txn.subtotal,
                txn.discount,
                txn.tax,
                txn.total,
                txn.payment_method.value,
                txn.status.value,
            ]
        )
    return sio.getvalue()
