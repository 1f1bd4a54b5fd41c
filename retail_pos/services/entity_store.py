from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Callable, Iterator
from datetime import datetime
from typing import Generic, TypeVar

from retail_pos.config import settings
from retail_pos.models import (
    Category,
    Customer,
    ErrorCode,
    Product,
    Result,
    StoreLocation,
    Transaction,
    utcnow,
)
from retail_pos.services.sort_utils import is_blank_query, matches_query

logger = logging.getLogger(__name__)

E = TypeVar('E')

SearchFields = Callable[[E], tuple[str | None, ...]]
Validator = Callable[[E], str | None]
Hook = Callable[[E], None]

IMMUTABLE_FIELDS = frozenset({'id', 'created_at'})


class EntityCollection(Generic[E]):
    """Insertion-ordered collection keyed by entity id."""

    def __init__(
        self,
        name: str,
        *,
        lock: threading.RLock,
        search_fields: SearchFields,
        default_page_size: int,
        validator: Validator | None = None,
        on_create: Hook | None = None,
        on_update: Hook | None = None,
        on_delete: Hook | None = None,
    ) -> None:
        self.name = name
        self._lock = lock
        self._items: dict[str, E] = {}
        self._search_fields = search_fields
        self.default_page_size = default_page_size
        self._validator = validator
        self._on_create = on_create
        self._on_update = on_update
        self._on_delete = on_delete

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[E]:
        return iter(self.list_all())

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._items

    def create(self, entity: E) -> Result[E]:
        entity_id = getattr(entity, 'id')
        with self._lock:
            if entity_id in self._items:
                return Result.failure(ErrorCode.DUPLICATE_ID, f'{self.name} {entity_id} already exists')
            problem = self._validator(entity) if self._validator else None
            if problem:
                return Result.failure(ErrorCode.INVALID_VALUE, problem)
            self._items[entity_id] = entity
            if self._on_create:
                self._on_create(entity)
        logger.debug('Created %s %s', self.name, entity_id)
        return Result.success(entity)

    def update(self, entity_id: str, **changes: object) -> Result[E]:
        with self._lock:
            entity = self._items.get(entity_id)
            if entity is None:
                return Result.failure(ErrorCode.NOT_FOUND, f'{self.name} {entity_id} not found')

            field_names = {f.name for f in dataclasses.fields(entity)}
            unknown = sorted(set(changes) - field_names)
            if unknown:
                return Result.failure(ErrorCode.UNKNOWN_FIELD, f'Unknown fields: {", ".join(unknown)}')
            frozen = sorted(set(changes) & IMMUTABLE_FIELDS)
            if frozen:
                return Result.failure(ErrorCode.INVALID_VALUE, f'Fields cannot be changed: {", ".join(frozen)}')

            candidate = dataclasses.replace(entity, **changes)
            problem = self._validator(candidate) if self._validator else None
            if problem:
                return Result.failure(ErrorCode.INVALID_VALUE, problem)

            for key, value in changes.items():
                setattr(entity, key, value)
            if self._on_update:
                self._on_update(entity)
        return Result.success(entity)

    def delete(self, entity_id: str) -> Result[E]:
        with self._lock:
            entity = self._items.pop(entity_id, None)
            if entity is None:
                return Result.failure(ErrorCode.NOT_FOUND, f'{self.name} {entity_id} not found')
            if self._on_delete:
                self._on_delete(entity)
        logger.info('Deleted %s %s', self.name, entity_id)
        return Result.success(entity)

    def get(self, entity_id: str) -> E | None:
        return self._items.get(entity_id)

    def list_all(self) -> list[E]:
        with self._lock:
            return list(self._items.values())

    def search(self, query: str | None, *, limit: int | None = None) -> list[E]:
        items = self.list_all()
        if is_blank_query(query):
            page_size = self.default_page_size if limit is None else limit
            return items[:page_size]
        matches = [item for item in items if matches_query(query, self._search_fields(item))]
        return matches if limit is None else matches[:limit]


class ProductCollection(EntityCollection[Product]):
    def find_by_barcode(self, barcode: str) -> Product | None:
        return self._find_first(lambda product: product.barcode == barcode)

    def find_by_sku(self, sku: str) -> Product | None:
        wanted = sku.strip().upper()
        return self._find_first(lambda product: product.sku.upper() == wanted)

    def _find_first(self, predicate: Callable[[Product], bool]) -> Product | None:
        with self._lock:
            for product in self._items.values():
                if predicate(product):
                    return product
        return None


class Ledger:
    """Append-only transaction collection."""

    def __init__(self, *, lock: threading.RLock) -> None:
        self._lock = lock
        self._transactions: list[Transaction] = []
        self._by_id: dict[str, Transaction] = {}
        self._sequence = 0

    def __len__(self) -> int:
        return len(self._transactions)

    def next_document_numbers(self) -> tuple[str, str]:
        with self._lock:
            self._sequence += 1
            return f'T{self._sequence:08d}', f'R{self._sequence:08d}'

    def append(self, transaction: Transaction) -> Result[Transaction]:
        with self._lock:
            if transaction.id in self._by_id:
                return Result.failure(ErrorCode.DUPLICATE_ID, f'Transaction {transaction.id} already exists')
            self._transactions.append(transaction)
            self._by_id[transaction.id] = transaction
        return Result.success(transaction)

    def get(self, transaction_id: str) -> Transaction | None:
        return self._by_id.get(transaction_id)

    def list_all(self) -> list[Transaction]:
        with self._lock:
            return list(self._transactions)

    def in_window(self, start: datetime, end: datetime) -> list[Transaction]:
        return [txn for txn in self.list_all() if start <= txn.timestamp < end]

    def for_store(self, store_id: str) -> list[Transaction]:
        return [txn for txn in self.list_all() if txn.store_id == store_id]

    def for_customer(self, customer_id: str) -> list[Transaction]:
        return [txn for txn in self.list_all() if txn.customer_id == customer_id]


def _validate_product(product: Product) -> str | None:
    if product.unit_price < 0:
        return 'Unit price cannot be negative'
    if product.cost_price < 0:
        return 'Cost price cannot be negative'
    if product.stock_quantity < 0:
        return 'Stock quantity cannot be negative'
    return None


def _validate_customer(customer: Customer) -> str | None:
    if customer.loyalty_card.points < 0:
        return 'Loyalty points cannot be negative'
    return None


def _touch_product(product: Product) -> None:
    product.updated_at = utcnow()


def _product_search_fields(product: Product) -> tuple[str | None, ...]:
    return (product.name, product.sku, product.barcode, product.brand)


def _customer_search_fields(customer: Customer) -> tuple[str | None, ...]:
    return (
        customer.first_name,
        customer.last_name,
        customer.email,
        customer.phone,
        customer.loyalty_card.number,
    )


def _store_location_search_fields(location: StoreLocation) -> tuple[str | None, ...]:
    return (location.name, location.address.city, location.phone)


def _category_search_fields(category: Category) -> tuple[str | None, ...]:
    return (category.name, category.description)


class EntityStore:
    """In-memory canonical collections for one POS back office.

    All mutations go through one re-entrant lock so a single writer is active at
    a time; readers receive list copies.
    """

    def __init__(
        self,
        *,
        product_page_size: int | None = None,
        customer_page_size: int | None = None,
    ) -> None:
        self.lock = threading.RLock()
        product_page_size = product_page_size or settings.default_product_page_size
        customer_page_size = customer_page_size or settings.default_customer_page_size

        self.categories: EntityCollection[Category] = EntityCollection(
            'Category',
            lock=self.lock,
            search_fields=_category_search_fields,
            default_page_size=product_page_size,
        )
        self.products = ProductCollection(
            'Product',
            lock=self.lock,
            search_fields=_product_search_fields,
            default_page_size=product_page_size,
            validator=_validate_product,
            on_update=_touch_product,
        )
        self.customers: EntityCollection[Customer] = EntityCollection(
            'Customer',
            lock=self.lock,
            search_fields=_customer_search_fields,
            default_page_size=customer_page_size,
            validator=_validate_customer,
        )
        self.store_locations: EntityCollection[StoreLocation] = EntityCollection(
            'StoreLocation',
            lock=self.lock,
            search_fields=_store_location_search_fields,
            default_page_size=customer_page_size,
            on_create=self._store_location_created,
            on_delete=self._store_location_deleted,
        )
        self.ledger = Ledger(lock=self.lock)
        self._current_store_id: str | None = None

    @property
    def current_store(self) -> StoreLocation | None:
        if self._current_store_id is None:
            return None
        return self.store_locations.get(self._current_store_id)

    def select_store(self, store_id: str) -> Result[StoreLocation]:
        with self.lock:
            location = self.store_locations.get(store_id)
            if location is None:
                return Result.failure(ErrorCode.NOT_FOUND, f'StoreLocation {store_id} not found')
            self._current_store_id = location.id
        return Result.success(location)

    def _store_location_created(self, location: StoreLocation) -> None:
        if self._current_store_id is None:
            self._current_store_id = location.id

    def _store_location_deleted(self, location: StoreLocation) -> None:
        if self._current_store_id != location.id:
            return
        remaining = self.store_locations.list_all()
        self._current_store_id = remaining[0].id if remaining else None
        logger.info('Current store %s deleted; now %s', location.id, self._current_store_id)
