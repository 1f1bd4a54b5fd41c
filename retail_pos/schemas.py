from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from retail_pos.models import (
    LoyaltyTier,
    MobilePaymentType,
    PaymentMethod,
    Permission,
    TransactionStatus,
    UserRole,
)

Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used='json')]


class OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ==== Shared ====
class AddressSchema(OrmModel):
    street: str = ''
    city: str = ''
    state: str = ''
    zip_code: str = ''
    country: str = ''


class DayHoursSchema(OrmModel):
    open: str = Field('09:00', pattern=r'^\d{2}:\d{2}$')
    close: str = Field('21:00', pattern=r'^\d{2}:\d{2}$')
    is_closed: bool = False


class OperatingHoursSchema(OrmModel):
    monday: DayHoursSchema = Field(default_factory=DayHoursSchema)
    tuesday: DayHoursSchema = Field(default_factory=DayHoursSchema)
    wednesday: DayHoursSchema = Field(default_factory=DayHoursSchema)
    thursday: DayHoursSchema = Field(default_factory=DayHoursSchema)
    friday: DayHoursSchema = Field(default_factory=DayHoursSchema)
    saturday: DayHoursSchema = Field(default_factory=DayHoursSchema)
    sunday: DayHoursSchema = Field(default_factory=DayHoursSchema)


# ==== Auth ====
class LoginIn(BaseModel):
    username: str = Field(..., min_length=1)
    password: str


class PrincipalOut(OrmModel):
    id: str
    username: str
    display_name: str
    role: UserRole
    permissions: list[Permission]
    modules: list[str] = Field(default_factory=list)


class LoginOut(BaseModel):
    token: str
    csrf_token: str
    principal: PrincipalOut


# ==== Catalog ====
class CategoryOut(OrmModel):
    id: str
    name: str
    description: str
    parent_id: Optional[str] = None
    is_active: bool


class ProductIn(BaseModel):
    id: str = Field(..., min_length=1)
    sku: str = Field(..., min_length=1)
    barcode: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    unit_price: Decimal = Field(..., ge=0)
    cost_price: Decimal = Field(..., ge=0)
    stock_quantity: int = Field(0, ge=0)
    reorder_point: int = Field(0, ge=0)
    max_stock: int = Field(0, ge=0)
    category_id: Optional[str] = None
    brand: str = ''
    description: str = ''
    tax_rate: Optional[Decimal] = Field(None, ge=0)
    is_active: bool = True
    is_weighted: bool = False
    age_restricted: bool = False


class ProductPatch(BaseModel):
    model_config = ConfigDict(extra='forbid')

    sku: Optional[str] = None
    barcode: Optional[str] = None
    name: Optional[str] = None
    unit_price: Optional[Decimal] = Field(None, ge=0)
    cost_price: Optional[Decimal] = Field(None, ge=0)
    stock_quantity: Optional[int] = Field(None, ge=0)
    reorder_point: Optional[int] = Field(None, ge=0)
    max_stock: Optional[int] = Field(None, ge=0)
    category_id: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None
    tax_rate: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None
    is_weighted: Optional[bool] = None
    age_restricted: Optional[bool] = None


class ProductOut(OrmModel):
    id: str
    sku: str
    barcode: str
    name: str
    unit_price: Money
    cost_price: Money
    stock_quantity: int
    reorder_point: int
    max_stock: int
    category_id: Optional[str]
    brand: str
    description: str
    is_active: bool
    is_low_stock: bool
    is_out_of_stock: bool
    created_at: datetime
    updated_at: datetime


# ==== Customers ====
class LoyaltyCardSchema(OrmModel):
    id: str
    number: str
    tier: LoyaltyTier = LoyaltyTier.BRONZE
    points: int = Field(0, ge=0)
    is_active: bool = True
    join_date: Optional[date] = None


class CustomerIn(BaseModel):
    id: str = Field(..., min_length=1)
    first_name: str
    last_name: str
    email: str
    phone: str
    loyalty_card: LoyaltyCardSchema
    address: AddressSchema = Field(default_factory=AddressSchema)
    date_of_birth: Optional[date] = None
    preferred_payment_method: Optional[PaymentMethod] = None
    dietary_preferences: list[str] = Field(default_factory=list)
    allergies: list[str] = Field(default_factory=list)
    is_active: bool = True
    notes: Optional[str] = None


class CustomerPatch(BaseModel):
    model_config = ConfigDict(extra='forbid')

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    loyalty_card: Optional[LoyaltyCardSchema] = None
    address: Optional[AddressSchema] = None
    preferred_payment_method: Optional[PaymentMethod] = None
    dietary_preferences: Optional[list[str]] = None
    allergies: Optional[list[str]] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class CustomerSpendOut(OrmModel):
    total_spent: Money
    transaction_count: int
    average_order_value: Money
    last_visit: Optional[datetime]


class CustomerOut(OrmModel):
    id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    address: AddressSchema
    loyalty_card: LoyaltyCardSchema
    preferred_payment_method: Optional[PaymentMethod]
    dietary_preferences: list[str]
    allergies: list[str]
    is_active: bool
    notes: Optional[str]
    created_at: datetime
    spend: Optional[CustomerSpendOut] = None


# ==== Store locations ====
class StoreLocationIn(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    address: AddressSchema = Field(default_factory=AddressSchema)
    phone: str = ''
    manager_id: Optional[str] = None
    region: str = ''
    is_active: bool = True
    operating_hours: OperatingHoursSchema = Field(default_factory=OperatingHoursSchema)


class StoreLocationPatch(BaseModel):
    model_config = ConfigDict(extra='forbid')

    name: Optional[str] = None
    address: Optional[AddressSchema] = None
    phone: Optional[str] = None
    manager_id: Optional[str] = None
    region: Optional[str] = None
    is_active: Optional[bool] = None
    operating_hours: Optional[OperatingHoursSchema] = None


class StoreLocationOut(OrmModel):
    id: str
    name: str
    address: AddressSchema
    phone: str
    manager_id: Optional[str]
    manager_name: Optional[str] = None
    region: str
    is_active: bool
    operating_hours: OperatingHoursSchema


# ==== POS ====
class CartItemOut(OrmModel):
    id: str
    product_id: str
    sku: str
    name: str
    quantity: int
    unit_price: Money
    discount: Money
    total_price: Money


class CartTotalsOut(OrmModel):
    subtotal: Money
    discount: Money
    tax: Money
    total: Money


class CartOut(BaseModel):
    id: str
    state: str
    items: list[CartItemOut]
    customer_id: Optional[str] = None
    totals: CartTotalsOut
    transaction_id: Optional[str] = None


class AddItemIn(BaseModel):
    product_id: Optional[str] = None
    barcode: Optional[str] = None


class QuantityIn(BaseModel):
    quantity: int


class DiscountIn(BaseModel):
    amount: Decimal = Field(..., ge=0)


class AttachCustomerIn(BaseModel):
    customer_id: Optional[str] = None


class CheckoutIn(BaseModel):
    payment_method: PaymentMethod
    tendered_amount: Optional[Decimal] = Field(None, ge=0)
    card_last4: Optional[str] = Field(None, pattern=r'^\d{4}$')
    auth_code: Optional[str] = None
    gift_card_number: Optional[str] = None
    mobile_payment_type: Optional[MobilePaymentType] = None


class PaymentDetailsOut(OrmModel):
    method: PaymentMethod
    amount: Money
    tendered_amount: Optional[Money] = None
    change_given: Optional[Money] = None
    card_last4: Optional[str] = None
    auth_code: Optional[str] = None
    gift_card_number: Optional[str] = None
    mobile_payment_type: Optional[MobilePaymentType] = None


class TransactionOut(OrmModel):
    id: str
    transaction_number: str
    receipt_number: str
    store_id: str
    items: list[CartItemOut]
    subtotal: Money
    discount: Money
    tax: Money
    total: Money
    payment_method: PaymentMethod
    payment_details: PaymentDetailsOut
    customer_id: Optional[str]
    cashier_id: str
    cashier_name: str
    timestamp: datetime
    status: TransactionStatus
    item_count: int


class TransactionPageOut(BaseModel):
    transactions: list[TransactionOut]
    total_transactions: int
    total_revenue: Money
    average_transaction: Money
    completed: int
    refunded: int
    voided: int


class StaffOut(OrmModel):
    id: str
    username: str
    email: str
    first_name: str
    last_name: str
    full_name: str
    role: UserRole
    department: Optional[str] = None
    permissions: list[Permission]
    is_active: bool
    created_at: datetime
    last_login: Optional[datetime] = None


class StaffStatsOut(OrmModel):
    total_staff: int
    active_staff: int
    inactive_staff: int
    managers: int
    recent_logins: int


class StaffPageOut(BaseModel):
    staff: list[StaffOut]
    stats: StaffStatsOut


class AuthEventOut(OrmModel):
    attempted_username: str
    success: bool
    failure_reason: Optional[str] = None
    principal_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


class SignInPageOut(BaseModel):
    events: list[AuthEventOut]
    failed_last_24h: int


class AuditEntryOut(OrmModel):
    actor_principal_id: Optional[str] = None
    action: str
    ip: Optional[str] = None
    meta: dict
    created_at: datetime
