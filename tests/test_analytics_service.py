from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from retail_pos.models import (
    CartItem,
    Customer,
    LoyaltyCard,
    PaymentDetails,
    PaymentMethod,
    Product,
    StoreLocation,
    Transaction,
)
from retail_pos.services.analytics_service import (
    all_branches_analytics,
    branch_analytics,
    customer_spend_summary,
    growth,
    inventory_snapshot,
    payment_method_distribution,
    previous_window,
    returning_customers,
    revenue_and_volume,
    sales_by_day,
    sales_by_hour,
    sales_overview,
    summarize_branches,
    top_products,
    unique_customers,
    windowed_growth,
)
from retail_pos.services.entity_store import EntityStore

BASE = datetime(2024, 3, 1, 15, 0, tzinfo=timezone.utc)
DAY = timedelta(days=1)

_counter = 0


def _item(product_id: str, quantity: int, price: str) -> CartItem:
    return CartItem(
        id=f'line-{product_id}',
        product_id=product_id,
        sku=f'SKU-{product_id}',
        name=f'Product {product_id}',
        quantity=quantity,
        unit_price=Decimal(price),
    )


def _txn(
    total: str,
    timestamp: datetime,
    *,
    store_id: str = 's1',
    customer_id: str | None = None,
    method: PaymentMethod = PaymentMethod.CASH,
    items: tuple[CartItem, ...] | None = None,
) -> Transaction:
    global _counter
    _counter += 1
    amount = Decimal(total)
    return Transaction(
        id=f'txn-{_counter}',
        transaction_number=f'T{_counter:08d}',
        receipt_number=f'R{_counter:08d}',
        store_id=store_id,
        items=items if items is not None else (_item('p1', 1, total),),
        subtotal=amount,
        discount=Decimal('0.00'),
        tax=Decimal('0.00'),
        total=amount,
        payment_method=method,
        payment_details=PaymentDetails(method=method, amount=amount),
        cashier_id='u1',
        cashier_name='Sarah Johnson',
        timestamp=timestamp,
        customer_id=customer_id,
    )


def _customer(customer_id: str, created_at: datetime, *, loyalty_active: bool = True) -> Customer:
    return Customer(
        id=customer_id,
        first_name=f'First{customer_id}',
        last_name='Last',
        email=f'{customer_id}@example.com',
        phone='555-0000',
        loyalty_card=LoyaltyCard(id=customer_id, number=f'LC{customer_id}', is_active=loyalty_active),
        created_at=created_at,
    )


class RevenueAndGrowthTests(unittest.TestCase):
    def test_empty_input_is_zeroed(self) -> None:
        totals = revenue_and_volume([])
        self.assertEqual(totals.total_revenue, 0)
        self.assertEqual(totals.total_transactions, 0)
        self.assertEqual(totals.average_order_value, 0)

    def test_revenue_is_additive_over_disjoint_sets(self) -> None:
        first = [_txn('10.00', BASE), _txn('2.50', BASE)]
        second = [_txn('7.25', BASE)]
        combined = revenue_and_volume(first + second)
        self.assertEqual(
            combined.total_revenue,
            revenue_and_volume(first).total_revenue + revenue_and_volume(second).total_revenue,
        )
        self.assertEqual(combined.total_transactions, 3)
        self.assertEqual(combined.average_order_value, Decimal('6.58'))

    def test_growth_with_zero_previous_is_zero(self) -> None:
        self.assertEqual(growth(Decimal('300'), Decimal('0')), 0)
        self.assertEqual(growth(Decimal('0'), Decimal('0')), 0)

    def test_growth_percentages(self) -> None:
        self.assertEqual(growth(Decimal('150'), Decimal('100')), Decimal('50.00'))
        self.assertEqual(growth(Decimal('50'), Decimal('100')), Decimal('-50.00'))

    def test_previous_window_has_same_length(self) -> None:
        start, end = BASE, BASE + 7 * DAY
        self.assertEqual(previous_window(start, end), (BASE - 7 * DAY, BASE))

    def test_windowed_growth_compares_adjacent_windows(self) -> None:
        start, end = BASE, BASE + 7 * DAY
        ledger = [
            _txn('100.00', BASE - 3 * DAY),
            _txn('200.00', BASE + DAY),
            _txn('100.00', BASE + 2 * DAY),
            _txn('999.00', BASE + 7 * DAY),
        ]
        self.assertEqual(windowed_growth(ledger, start, end), Decimal('200.00'))

    def test_reversed_window_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            windowed_growth([], BASE, BASE - DAY)


class BreakdownTests(unittest.TestCase):
    def test_top_products_empty_and_zero_limit(self) -> None:
        self.assertEqual(top_products([], 5), [])
        self.assertEqual(top_products([_txn('5.00', BASE)], 0), [])

    def test_top_products_orders_by_revenue_and_keeps_first_seen_on_ties(self) -> None:
        ledger = [
            _txn('0', BASE, items=(_item('a', 2, '3.00'), _item('b', 1, '10.00'))),
            _txn('0', BASE, items=(_item('c', 3, '2.00'), _item('a', 1, '3.00'))),
        ]
        rows = top_products(ledger, 10)
        self.assertEqual([row.product_id for row in rows], ['b', 'a', 'c'])
        self.assertEqual(rows[1].quantity, 3)
        self.assertEqual(rows[1].revenue, Decimal('9.00'))
        self.assertEqual(len(top_products(ledger, 2)), 2)

    def test_sales_by_hour_has_24_buckets_in_local_zone(self) -> None:
        ledger = [_txn('10.00', BASE), _txn('5.00', BASE + timedelta(minutes=30))]
        utc_rows = sales_by_hour(ledger, 'UTC')
        self.assertEqual(len(utc_rows), 24)
        self.assertEqual(utc_rows[15].sales, Decimal('15.00'))
        new_york = sales_by_hour(ledger, 'America/New_York')
        self.assertEqual(new_york[10].sales, Decimal('15.00'))
        self.assertEqual(sum(row.sales for row in new_york), Decimal('15.00'))

    def test_sales_by_day_sorted(self) -> None:
        ledger = [_txn('4.00', BASE + DAY), _txn('6.00', BASE), _txn('1.00', BASE)]
        rows = sales_by_day(ledger, 'UTC')
        self.assertEqual([row.day for row in rows], [BASE.date(), (BASE + DAY).date()])
        self.assertEqual(rows[0].sales, Decimal('7.00'))

    def test_payment_distribution_covers_every_method(self) -> None:
        ledger = [
            _txn('10.00', BASE, method=PaymentMethod.CASH),
            _txn('10.00', BASE, method=PaymentMethod.CASH),
            _txn('10.00', BASE, method=PaymentMethod.CASH),
            _txn('30.00', BASE, method=PaymentMethod.CREDIT),
        ]
        shares = {row.method: row for row in payment_method_distribution(ledger)}
        self.assertEqual(set(shares), set(PaymentMethod))
        self.assertEqual(shares[PaymentMethod.CASH].percentage, Decimal('75.00'))
        self.assertEqual(shares[PaymentMethod.CREDIT].percentage, Decimal('25.00'))
        self.assertEqual(shares[PaymentMethod.CREDIT].amount, Decimal('30.00'))
        self.assertEqual(shares[PaymentMethod.MOBILE].count, 0)

    def test_payment_distribution_of_nothing_is_zero(self) -> None:
        self.assertTrue(all(row.percentage == 0 for row in payment_method_distribution([])))

    def test_inventory_snapshot_counts_out_of_stock_as_low(self) -> None:
        products = [
            Product('p1', 'S1', 'B1', 'Tea', Decimal('3'), Decimal('2.00'), stock_quantity=0, reorder_point=5),
            Product('p2', 'S2', 'B2', 'Jam', Decimal('4'), Decimal('1.50'), stock_quantity=5, reorder_point=5),
            Product('p3', 'S3', 'B3', 'Oil', Decimal('9'), Decimal('4.00'), stock_quantity=10, reorder_point=2),
        ]
        snapshot = inventory_snapshot(products)
        self.assertEqual(snapshot.total_products, 3)
        self.assertEqual(snapshot.low_stock_count, 2)
        self.assertEqual(snapshot.out_of_stock_count, 1)
        self.assertEqual(snapshot.total_value, Decimal('47.50'))


class CustomerMetricTests(unittest.TestCase):
    def test_unique_customers_ignores_guests(self) -> None:
        ledger = [_txn('1', BASE, customer_id='c1'), _txn('1', BASE, customer_id='c1'), _txn('1', BASE)]
        self.assertEqual(unique_customers(ledger), 1)

    def test_returning_customers_need_an_earlier_purchase(self) -> None:
        earlier = _txn('5.00', BASE - 10 * DAY, customer_id='c1')
        window = [
            _txn('5.00', BASE, customer_id='c1'),
            _txn('5.00', BASE, customer_id='c2'),
            _txn('5.00', BASE + DAY, customer_id='c2'),
            _txn('5.00', BASE),
        ]
        self.assertEqual(returning_customers(window, [earlier] + window), 2)

    def test_customer_spend_summary_from_ledger(self) -> None:
        ledger = [
            _txn('10.00', BASE, customer_id='c1'),
            _txn('5.00', BASE + DAY, customer_id='c1'),
            _txn('99.00', BASE, customer_id='c2'),
        ]
        spend = customer_spend_summary('c1', ledger)
        self.assertEqual(spend.total_spent, Decimal('15.00'))
        self.assertEqual(spend.transaction_count, 2)
        self.assertEqual(spend.average_order_value, Decimal('7.50'))
        self.assertEqual(spend.last_visit, BASE + DAY)
        self.assertIsNone(customer_spend_summary('nobody', ledger).last_visit)


class BranchAnalyticsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = EntityStore()
        self.store.store_locations.create(StoreLocation(id='s1', name='Downtown'))
        self.store.store_locations.create(StoreLocation(id='s2', name='Uptown'))
        self.store.products.create(
            Product('p1', 'S1', 'B1', 'Tea', Decimal('3'), Decimal('1.00'), stock_quantity=4, reorder_point=5)
        )
        self.store.customers.create(_customer('new', BASE + timedelta(hours=1)))
        self.store.customers.create(_customer('old', BASE - 30 * DAY, loyalty_active=False))
        self.start, self.end = BASE, BASE + 7 * DAY
        for txn in [
            _txn('100.00', BASE - 3 * DAY, store_id='s1', customer_id='old'),
            _txn('200.00', BASE + DAY, store_id='s1', customer_id='old'),
            _txn('100.00', BASE + DAY, store_id='s1', customer_id='new', method=PaymentMethod.CREDIT),
            _txn('50.00', BASE + 2 * DAY, store_id='s2', customer_id='new'),
            _txn('80.00', BASE - 2 * DAY, store_id='s2'),
        ]:
            self.store.ledger.append(txn)

    def test_branch_report_only_counts_its_own_transactions(self) -> None:
        report = branch_analytics(self.store, 's1', self.start, self.end)
        self.assertEqual(report.store_id, 's1')
        self.assertEqual(report.store_name, 'Downtown')
        self.assertEqual(report.sales.total_revenue, Decimal('300.00'))
        self.assertEqual(report.sales.total_transactions, 2)
        self.assertEqual(report.sales.average_order_value, Decimal('150.00'))
        self.assertEqual(report.sales.growth, Decimal('200.00'))

    def test_branch_customer_metrics(self) -> None:
        report = branch_analytics(self.store, 's1', self.start, self.end)
        self.assertEqual(report.customers.total_customers, 2)
        self.assertEqual(report.customers.new_customers, 1)
        self.assertEqual(report.customers.returning_customers, 1)
        self.assertEqual(report.customers.loyalty_members, 1)

    def test_new_customers_are_scoped_to_the_branch(self) -> None:
        self.store.customers.create(_customer('elsewhere', BASE + timedelta(hours=2)))
        self.store.ledger.append(_txn('1.00', BASE + DAY, store_id='s2', customer_id='elsewhere'))
        report = branch_analytics(self.store, 's1', self.start, self.end)
        self.assertEqual(report.customers.new_customers, 1)

    def test_unknown_branch_is_none(self) -> None:
        self.assertIsNone(branch_analytics(self.store, 'nope', self.start, self.end))

    def test_all_branches_follow_location_order(self) -> None:
        reports = all_branches_analytics(self.store, self.start, self.end)
        self.assertEqual([report.store_id for report in reports], ['s1', 's2'])
        self.assertEqual(reports[1].sales.growth, Decimal('-37.50'))
        self.assertEqual(reports[0].inventory.low_stock_count, 1)

    def test_all_branches_with_no_locations(self) -> None:
        self.assertEqual(all_branches_analytics(EntityStore(), self.start, self.end), [])

    def test_summarize_branches(self) -> None:
        reports = all_branches_analytics(self.store, self.start, self.end)
        rollup = summarize_branches(
            reports,
            self.store.store_locations.list_all(),
            self.store.ledger.in_window(self.start, self.end),
        )
        self.assertEqual(rollup.total_revenue, Decimal('350.00'))
        self.assertEqual(rollup.total_transactions, 3)
        self.assertEqual(rollup.top_branch.store_id, 's1')
        self.assertEqual([report.store_id for report in rollup.underperforming_branches], ['s2'])
        self.assertEqual(rollup.average_growth, Decimal('81.25'))
        self.assertEqual((rollup.active_branches, rollup.total_branches), (2, 2))

    def test_summary_counts_each_customer_once_across_branches(self) -> None:
        reports = all_branches_analytics(self.store, self.start, self.end)
        self.assertEqual([report.customers.total_customers for report in reports], [2, 1])
        rollup = summarize_branches(
            reports,
            self.store.store_locations.list_all(),
            self.store.ledger.in_window(self.start, self.end),
        )
        self.assertEqual(rollup.total_customers, 2)

    def test_sales_overview_spans_every_branch(self) -> None:
        overview = sales_overview(self.store.ledger.list_all(), self.start, self.end, tz='UTC')
        self.assertEqual(overview.total_sales, Decimal('350.00'))
        self.assertEqual(overview.total_transactions, 3)
        self.assertEqual(overview.unique_customers, 2)
        self.assertEqual(overview.returning_customers, 2)
        self.assertEqual(len(overview.hourly_sales), 24)


if __name__ == '__main__':
    unittest.main()
