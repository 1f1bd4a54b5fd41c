from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from retail_pos.models import (
    Address,
    Category,
    Customer,
    DayHours,
    LoyaltyCard,
    LoyaltyTier,
    OperatingHours,
    Permission,
    Product,
    StoreLocation,
    User,
    UserRole,
)
from retail_pos.security.passwords import hash_password
from retail_pos.services.entity_store import EntityStore
from retail_pos.services.user_directory_service import UserDirectory

FOOD_TAX = Decimal('0.0875')
SEED_TIMESTAMP = datetime(2023, 1, 1, tzinfo=timezone.utc)

CATEGORIES = [
    ('1', 'Produce', 'Fresh fruits and vegetables'),
    ('2', 'Dairy', 'Milk, cheese, yogurt'),
    ('3', 'Meat & Seafood', 'Fresh meat and seafood'),
    ('4', 'Bakery', 'Fresh baked goods'),
    ('5', 'Pantry', 'Shelf-stable goods'),
    ('6', 'Frozen', 'Frozen foods'),
    ('7', 'Beverages', 'Drinks and beverages'),
    ('8', 'Health & Beauty', 'Personal care items'),
]

# id, sku, barcode, name, brand, category, unit price, cost, stock, reorder point, max stock, weighted
PRODUCTS = [
    ('1', 'PRD-001', '1234567890123', 'Bananas', 'Organic Farm', '1', '1.29', '0.65', 150, 20, 200, True),
    ('2', 'PRD-002', '1234567890124', 'Whole Milk', 'Dairy Fresh', '2', '3.99', '2.50', 45, 10, 60, False),
    ('3', 'PRD-003', '1234567890125', 'Ground Beef 80/20', 'Premium Meats', '3', '6.99', '4.20', 25, 5, 40, True),
]

ALL_PERMISSIONS = frozenset(Permission)
MANAGER_PERMISSIONS = ALL_PERMISSIONS - {Permission.STAFF_EDIT, Permission.SETTINGS_VIEW, Permission.SETTINGS_EDIT}
CASHIER_PERMISSIONS = frozenset({Permission.POS_OPERATE, Permission.CUSTOMER_VIEW})

STANDARD_HOURS = OperatingHours(
    monday=DayHours('06:00', '22:00'),
    tuesday=DayHours('06:00', '22:00'),
    wednesday=DayHours('06:00', '22:00'),
    thursday=DayHours('06:00', '22:00'),
    friday=DayHours('06:00', '22:00'),
    saturday=DayHours('07:00', '21:00'),
    sunday=DayHours('08:00', '20:00'),
)


def build_demo_directory() -> UserDirectory:
    return UserDirectory(
        [
            User(
                id='1',
                username='admin',
                email='admin@supermarket.com',
                first_name='System',
                last_name='Administrator',
                role=UserRole.ADMIN,
                permissions=ALL_PERMISSIONS,
                password_hash=hash_password('admin123'),
                created_at=SEED_TIMESTAMP,
            ),
            User(
                id='2',
                username='manager1',
                email='manager@supermarket.com',
                first_name='John',
                last_name='Smith',
                role=UserRole.STORE_MANAGER,
                permissions=MANAGER_PERMISSIONS,
                password_hash=hash_password('password'),
                department='General',
                created_at=SEED_TIMESTAMP,
            ),
            User(
                id='3',
                username='cashier1',
                email='cashier@supermarket.com',
                first_name='Sarah',
                last_name='Johnson',
                role=UserRole.CASHIER,
                permissions=CASHIER_PERMISSIONS,
                password_hash=hash_password('password'),
                department='Front End',
                created_at=SEED_TIMESTAMP,
            ),
        ]
    )


def seed(store: EntityStore) -> None:
    for category_id, name, description in CATEGORIES:
        if category_id not in store.categories:
            store.categories.create(Category(id=category_id, name=name, description=description))

    for (
        product_id,
        sku,
        barcode,
        name,
        brand,
        category_id,
        unit_price,
        cost_price,
        stock,
        reorder_point,
        max_stock,
        weighted,
    ) in PRODUCTS:
        if product_id in store.products:
            continue
        store.products.create(
            Product(
                id=product_id,
                sku=sku,
                barcode=barcode,
                name=name,
                brand=brand,
                category_id=category_id,
                unit_price=Decimal(unit_price),
                cost_price=Decimal(cost_price),
                stock_quantity=stock,
                reorder_point=reorder_point,
                max_stock=max_stock,
                is_weighted=weighted,
                tax_rate=FOOD_TAX,
                created_at=SEED_TIMESTAMP,
            )
        )

    if '1' not in store.customers:
        store.customers.create(
            Customer(
                id='1',
                first_name='Alice',
                last_name='Williams',
                email='alice@email.com',
                phone='555-1234',
                address=Address('123 Main St', 'Anytown', 'CA', '90210', 'USA'),
                loyalty_card=LoyaltyCard(
                    id='1',
                    number='LC001234',
                    tier=LoyaltyTier.GOLD,
                    points=1250,
                    join_date=date(2023, 1, 15),
                ),
                dietary_preferences=['organic', 'gluten-free'],
                allergies=['nuts'],
                created_at=datetime(2023, 1, 15, tzinfo=timezone.utc),
            )
        )

    if '1' not in store.store_locations:
        store.store_locations.create(
            StoreLocation(
                id='1',
                name='Downtown Store',
                address=Address('100 Main St', 'Downtown', 'CA', '90210', 'USA'),
                phone='555-0100',
                manager_id='2',
                region='West',
                operating_hours=STANDARD_HOURS,
                created_at=SEED_TIMESTAMP,
            )
        )


if __name__ == '__main__':
    demo_store = EntityStore()
    seed(demo_store)
    print(
        f'Seeded {len(demo_store.products)} products, {len(demo_store.customers)} customers, '
        f'{len(demo_store.store_locations)} store locations.'
    )
