from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Generic, TypeVar

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

T = TypeVar('T')


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class UserRole(str, Enum):
    ADMIN = 'admin'
    STORE_MANAGER = 'store_manager'
    ASSISTANT_MANAGER = 'assistant_manager'
    DEPARTMENT_MANAGER = 'department_manager'
    SUPERVISOR = 'supervisor'
    CASHIER = 'cashier'
    STOCK_CLERK = 'stock_clerk'
    CUSTOMER_SERVICE = 'customer_service'
    SECURITY = 'security'
    MAINTENANCE = 'maintenance'


class Permission(str, Enum):
    POS_OPERATE = 'pos_operate'
    POS_VOID = 'pos_void'
    POS_REFUND = 'pos_refund'
    INVENTORY_VIEW = 'inventory_view'
    INVENTORY_EDIT = 'inventory_edit'
    CUSTOMER_VIEW = 'customer_view'
    CUSTOMER_EDIT = 'customer_edit'
    STAFF_VIEW = 'staff_view'
    STAFF_EDIT = 'staff_edit'
    REPORTS_VIEW = 'reports_view'
    REPORTS_GENERATE = 'reports_generate'
    SETTINGS_VIEW = 'settings_view'
    SETTINGS_EDIT = 'settings_edit'
    PRICE_OVERRIDE = 'price_override'
    MANAGER_APPROVAL = 'manager_approval'


class LoyaltyTier(str, Enum):
    BRONZE = 'bronze'
    SILVER = 'silver'
    GOLD = 'gold'
    PLATINUM = 'platinum'
    VIP = 'vip'


class PaymentMethod(str, Enum):
    CASH = 'cash'
    CREDIT = 'credit'
    DEBIT = 'debit'
    MOBILE = 'mobile'
    GIFT_CARD = 'gift_card'
    STORE_CREDIT = 'store_credit'
    LAYAWAY = 'layaway'


class MobilePaymentType(str, Enum):
    APPLE_PAY = 'apple_pay'
    GOOGLE_PAY = 'google_pay'
    SAMSUNG_PAY = 'samsung_pay'


class TransactionStatus(str, Enum):
    COMPLETED = 'completed'
    PENDING = 'pending'
    VOIDED = 'voided'
    REFUNDED = 'refunded'
    PARTIALLY_REFUNDED = 'partially_refunded'


class ErrorCode(str, Enum):
    NOT_FOUND = 'NOT_FOUND'
    DUPLICATE_ID = 'DUPLICATE_ID'
    UNKNOWN_FIELD = 'UNKNOWN_FIELD'
    INVALID_VALUE = 'INVALID_VALUE'
    EMPTY_CART = 'EMPTY_CART'
    NOT_AUTHENTICATED = 'NOT_AUTHENTICATED'
    NO_STORE_SELECTED = 'NO_STORE_SELECTED'
    INSUFFICIENT_PAYMENT = 'INSUFFICIENT_PAYMENT'
    INVALID_DISCOUNT = 'INVALID_DISCOUNT'
    CART_CLOSED = 'CART_CLOSED'
    INVALID_CREDENTIALS = 'INVALID_CREDENTIALS'


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a store or cart mutation; failures are values, not exceptions."""

    value: T | None = None
    error: ErrorCode | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorCode, detail: str | None = None) -> Result[T]:
        return cls(error=error, detail=detail)


@dataclass(frozen=True)
class Address:
    street: str = ''
    city: str = ''
    state: str = ''
    zip_code: str = ''
    country: str = ''


@dataclass
class Category:
    id: str
    name: str
    description: str = ''
    parent_id: str | None = None
    is_active: bool = True


@dataclass
class Product:
    id: str
    sku: str
    barcode: str
    name: str
    unit_price: Decimal
    cost_price: Decimal
    stock_quantity: int = 0
    reorder_point: int = 0
    max_stock: int = 0
    category_id: str | None = None
    brand: str = ''
    description: str = ''
    tax_rate: Decimal | None = None
    is_active: bool = True
    is_weighted: bool = False
    age_restricted: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.reorder_point

    @property
    def is_out_of_stock(self) -> bool:
        return self.stock_quantity == 0


@dataclass
class LoyaltyCard:
    id: str
    number: str
    tier: LoyaltyTier = LoyaltyTier.BRONZE
    points: int = 0
    is_active: bool = True
    join_date: date | None = None


@dataclass
class Customer:
    id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    loyalty_card: LoyaltyCard
    address: Address = field(default_factory=Address)
    date_of_birth: date | None = None
    preferred_payment_method: PaymentMethod | None = None
    dietary_preferences: list[str] = field(default_factory=list)
    allergies: list[str] = field(default_factory=list)
    is_active: bool = True
    notes: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'.strip()


@dataclass
class User:
    id: str
    username: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    permissions: frozenset[Permission]
    password_hash: str = ''
    department: str | None = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    last_login: datetime | None = None

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'.strip()


@dataclass(frozen=True)
class DayHours:
    open: str = '09:00'
    close: str = '21:00'
    is_closed: bool = False


@dataclass(frozen=True)
class OperatingHours:
    monday: DayHours = DayHours()
    tuesday: DayHours = DayHours()
    wednesday: DayHours = DayHours()
    thursday: DayHours = DayHours()
    friday: DayHours = DayHours()
    saturday: DayHours = DayHours()
    sunday: DayHours = DayHours()


@dataclass
class StoreLocation:
    id: str
    name: str
    address: Address = field(default_factory=Address)
    phone: str = ''
    manager_id: str | None = None
    region: str = ''
    is_active: bool = True
    operating_hours: OperatingHours = field(default_factory=OperatingHours)
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class CartItem:
    id: str
    product_id: str
    sku: str
    name: str
    quantity: int
    unit_price: Decimal
    discount: Decimal = ZERO
    category_id: str | None = None
    cost_price: Decimal = ZERO

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class PaymentDetails:
    method: PaymentMethod
    amount: Decimal
    tendered_amount: Decimal | None = None
    change_given: Decimal | None = None
    card_last4: str | None = None
    auth_code: str | None = None
    gift_card_number: str | None = None
    mobile_payment_type: MobilePaymentType | None = None


@dataclass(frozen=True)
class Transaction:
    id: str
    transaction_number: str
    receipt_number: str
    store_id: str
    items: tuple[CartItem, ...]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    payment_method: PaymentMethod
    payment_details: PaymentDetails
    cashier_id: str
    cashier_name: str
    timestamp: datetime
    customer_id: str | None = None
    status: TransactionStatus = TransactionStatus.COMPLETED

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)
