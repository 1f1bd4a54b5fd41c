from __future__ import annotations

import csv
import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO

from retail_pos.models import (
    CartItem,
    Category,
    Customer,
    LoyaltyCard,
    LoyaltyTier,
    PaymentDetails,
    PaymentMethod,
    Product,
    Transaction,
    TransactionStatus,
)
from retail_pos.services.report_service import (
    TransactionSort,
    build_customer_report,
    build_employee_report,
    build_financial_report,
    build_inventory_report,
    build_sales_report,
    filter_transactions,
    transaction_stats,
    transactions_to_csv,
)

BASE = datetime(2024, 5, 6, 9, 30, tzinfo=timezone.utc)
DAY = timedelta(days=1)


def _txn(
    number: int,
    total: str,
    timestamp: datetime,
    *,
    cashier: tuple[str, str] = ('u1', 'Sarah Johnson'),
    customer_id: str | None = None,
    method: PaymentMethod = PaymentMethod.CASH,
    status: TransactionStatus = TransactionStatus.COMPLETED,
    tax: str = '0.00',
    discount: str = '0.00',
) -> Transaction:
    amount = Decimal(total)
    item = CartItem(id=f'line-{number}', product_id='p1', sku='SKU-1', name='Tea', quantity=2, unit_price=amount / 2)
    return Transaction(
        id=f'txn-{number}',
        transaction_number=f'T{number:08d}',
        receipt_number=f'R{number:08d}',
        store_id='s1',
        items=(item,),
        subtotal=amount,
        discount=Decimal(discount),
        tax=Decimal(tax),
        total=amount,
        payment_method=method,
        payment_details=PaymentDetails(method=method, amount=amount),
        cashier_id=cashier[0],
        cashier_name=cashier[1],
        timestamp=timestamp,
        customer_id=customer_id,
        status=status,
    )


def _customer(customer_id: str, first: str, last: str, tier: LoyaltyTier, *, active: bool = True) -> Customer:
    return Customer(
        id=customer_id,
        first_name=first,
        last_name=last,
        email=f'{first.lower()}@example.com',
        phone='555-0100',
        loyalty_card=LoyaltyCard(id=customer_id, number=f'LC{customer_id}', tier=tier, is_active=active),
    )


CUSTOMERS = [
    _customer('c1', 'Alice', 'Williams', LoyaltyTier.GOLD),
    _customer('c2', 'Bob', 'Jones', LoyaltyTier.BRONZE, active=False),
]

LEDGER = [
    _txn(1, '20.00', BASE, customer_id='c1', tax='1.50', discount='1.00'),
    _txn(2, '5.00', BASE + timedelta(hours=2), cashier=('u2', 'Mike Davis'), method=PaymentMethod.CREDIT),
    _txn(3, '12.00', BASE + DAY, customer_id='c2', status=TransactionStatus.REFUNDED),
    _txn(4, '40.00', BASE + 3 * DAY, customer_id='c1', status=TransactionStatus.VOIDED),
    _txn(5, '99.00', BASE - 5 * DAY, customer_id='c2'),
]


class SalesAndFinancialReportTests(unittest.TestCase):
    def test_sales_report(self) -> None:
        report = build_sales_report(LEDGER, start=BASE, end=BASE + 7 * DAY, tz='UTC')
        self.assertEqual(report.total_sales, Decimal('77.00'))
        self.assertEqual(report.total_transactions, 4)
        self.assertEqual(report.average_transaction, Decimal('19.25'))
        self.assertEqual(
            [row.day for row in report.sales_by_day],
            [BASE.date(), (BASE + DAY).date(), (BASE + 3 * DAY).date()],
        )
        self.assertEqual(report.sales_by_day[0].sales, Decimal('25.00'))
        self.assertEqual(report.revenue_by_payment_method[PaymentMethod.CREDIT], Decimal('5.00'))

    def test_financial_report(self) -> None:
        report = build_financial_report(LEDGER, start=BASE, end=BASE + DAY)
        self.assertEqual(report.total_revenue, Decimal('25.00'))
        self.assertEqual(report.total_tax, Decimal('1.50'))
        self.assertEqual(report.total_discounts, Decimal('1.00'))
        self.assertEqual(report.net_revenue, Decimal('22.50'))

    def test_employee_report_ranks_cashiers_by_sales(self) -> None:
        report = build_employee_report(LEDGER, start=BASE, end=BASE + 7 * DAY)
        self.assertEqual(report.total_employees, 2)
        self.assertEqual([row.cashier_id for row in report.top_performers], ['u1', 'u2'])
        self.assertEqual(report.top_performers[0].transactions, 3)
        self.assertEqual(report.average_sales_per_employee, Decimal('38.50'))

    def test_empty_window_reports_zero(self) -> None:
        report = build_employee_report(LEDGER, start=BASE + 30 * DAY, end=BASE + 31 * DAY)
        self.assertEqual(report.total_employees, 0)
        self.assertEqual(report.average_sales_per_employee, 0)


class InventoryAndCustomerReportTests(unittest.TestCase):
    def test_inventory_report_groups_value_by_category(self) -> None:
        categories = [Category(id='1', name='Produce'), Category(id='2', name='Dairy')]
        products = [
            Product(
                'p1', 'S1', 'B1', 'Bananas', Decimal('1.29'), Decimal('0.65'),
                stock_quantity=100, reorder_point=20, category_id='1',
            ),
            Product(
                'p2', 'S2', 'B2', 'Milk', Decimal('3.99'), Decimal('2.50'),
                stock_quantity=0, reorder_point=10, category_id='2',
            ),
            Product('p3', 'S3', 'B3', 'Misc', Decimal('1.00'), Decimal('1.00'), stock_quantity=3, reorder_point=5),
        ]
        report = build_inventory_report(products, categories)
        self.assertEqual(report.total_products, 3)
        self.assertEqual(report.total_value, Decimal('68.00'))
        self.assertEqual([product.id for product in report.low_stock], ['p2', 'p3'])
        self.assertEqual([product.id for product in report.out_of_stock], ['p2'])
        self.assertEqual(
            [(row.category_name, row.value) for row in report.value_by_category],
            [('Produce', Decimal('65.00')), ('Uncategorized', Decimal('3.00')), ('Dairy', Decimal('0.00'))],
        )

    def test_customer_report_uses_ledger_spend(self) -> None:
        report = build_customer_report(CUSTOMERS, LEDGER)
        self.assertEqual(report.total_customers, 2)
        self.assertEqual(report.loyalty_members, 1)
        self.assertEqual(report.loyalty_rate, Decimal('50.00'))
        self.assertEqual(report.tier_distribution[LoyaltyTier.GOLD], 1)
        self.assertEqual(report.tier_distribution[LoyaltyTier.VIP], 0)
        self.assertEqual([row.customer_id for row in report.top_customers], ['c2', 'c1'])
        self.assertEqual(report.top_customers[0].total_spent, Decimal('111.00'))

    def test_customer_report_without_customers(self) -> None:
        report = build_customer_report([], LEDGER)
        self.assertEqual(report.loyalty_rate, 0)
        self.assertEqual(report.average_spent, 0)


class TransactionHistoryTests(unittest.TestCase):
    def _filter(self, **kwargs):
        return filter_transactions(LEDGER, CUSTOMERS, start=BASE, end=BASE + 7 * DAY, **kwargs)

    def test_default_sort_is_newest_first(self) -> None:
        self.assertEqual([txn.id for txn in self._filter()], ['txn-4', 'txn-3', 'txn-2', 'txn-1'])

    def test_free_text_matches_customer_and_cashier(self) -> None:
        self.assertEqual([txn.id for txn in self._filter(query='alice')], ['txn-4', 'txn-1'])
        self.assertEqual([txn.id for txn in self._filter(query='mike')], ['txn-2'])
        self.assertEqual([txn.id for txn in self._filter(query='R00000003')], ['txn-3'])

    def test_status_and_method_filters(self) -> None:
        self.assertEqual([txn.id for txn in self._filter(status=TransactionStatus.REFUNDED)], ['txn-3'])
        self.assertEqual([txn.id for txn in self._filter(payment_method=PaymentMethod.CREDIT)], ['txn-2'])

    def test_sort_by_amount_and_customer(self) -> None:
        self.assertEqual(
            [txn.id for txn in self._filter(sort_by=TransactionSort.AMOUNT)],
            ['txn-4', 'txn-1', 'txn-3', 'txn-2'],
        )
        by_customer = [txn.id for txn in self._filter(sort_by=TransactionSort.CUSTOMER)]
        self.assertEqual(by_customer[-1], 'txn-2')
        self.assertEqual(by_customer[2], 'txn-3')

    def test_transaction_stats(self) -> None:
        stats = transaction_stats(self._filter())
        self.assertEqual(stats.total_transactions, 4)
        self.assertEqual(stats.total_revenue, Decimal('77.00'))
        self.assertEqual((stats.completed, stats.refunded, stats.voided), (2, 1, 1))

    def test_csv_export_has_header_and_guest_label(self) -> None:
        rows = list(csv.reader(StringIO(transactions_to_csv(self._filter(), CUSTOMERS))))
        self.assertEqual(rows[0][0], 'Transaction')
        self.assertEqual(len(rows), 5)
        guest_row = next(row for row in rows if row[0] == 'T00000002')
        self.assertEqual(guest_row[4], 'Guest')
        self.assertEqual(guest_row[-2], 'credit')


if __name__ == '__main__':
    unittest.main()
