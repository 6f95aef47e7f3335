"""
In-memory storage backend (development and tests)
Optimistic transactions with per-row versions, same contract as the SQL backend
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import NotFoundError, StorageConflictError
from ..models import Customer, Notification, Order, Record
from .gateway import CUSTOMER_DATE_FIELDS, PersistenceGateway, Transaction

logger = logging.getLogger(__name__)

CUSTOMERS = "customers"
ORDERS = "orders"

# Version recorded for a row that did not exist when it was read
MISSING = -1


async def _io() -> None:
    """Yield to the event loop the way a network round trip would"""
    await asyncio.sleep(0)


class InMemoryTransaction(Transaction):
    def __init__(self, gateway: "InMemoryGateway"):
        self._gateway = gateway
        self.read_versions: Dict[Tuple[str, str], int] = {}
        self.customer_writes: Dict[str, Dict[str, Any]] = {}
        self.order_writes: Dict[str, Dict[str, Any]] = {}
        self.new_orders: Dict[str, Order] = {}

    def _track(self, table: str, key: str, row: Optional[Record]) -> None:
        self.read_versions.setdefault((table, key), row.version if row else MISSING)

    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        await _io()
        stored = self._gateway._customers.get(customer_id)
        self._track(CUSTOMERS, customer_id, stored)
        if stored is None:
            return None
        return stored.model_copy(update=self.customer_writes.get(customer_id, {}), deep=True)

    async def get_order(self, order_id: str) -> Optional[Order]:
        await _io()
        if order_id in self.new_orders:
            return self.new_orders[order_id].model_copy(deep=True)
        stored = self._gateway._orders.get(order_id)
        self._track(ORDERS, order_id, stored)
        if stored is None:
            return None
        return stored.model_copy(update=self.order_writes.get(order_id, {}), deep=True)

    async def list_orders_by_customer(self, customer_id: str) -> List[Order]:
        await _io()
        orders = []
        for order in self._gateway._orders.values():
            if order.customer_id != customer_id:
                continue
            self._track(ORDERS, order.id, order)
            orders.append(order.model_copy(update=self.order_writes.get(order.id, {}), deep=True))
        orders.extend(o.model_copy(deep=True) for o in self.new_orders.values() if o.customer_id == customer_id)
        return orders

    def insert_order(self, order: Order) -> Order:
        now = self._gateway.clock()
        created = order.model_copy(
            update={"id": uuid.uuid4().hex, "created_at": now, "updated_at": now, "version": 1},
            deep=True,
        )
        self.new_orders[created.id] = created
        return created.model_copy(deep=True)

    def update_customer(self, customer_id: str, fields: Dict[str, Any]) -> None:
        self._track(CUSTOMERS, customer_id, self._gateway._customers.get(customer_id))
        self.customer_writes.setdefault(customer_id, {}).update(fields)

    def update_order(self, order_id: str, fields: Dict[str, Any]) -> None:
        if order_id in self.new_orders:
            self.new_orders[order_id] = self.new_orders[order_id].model_copy(update=fields)
            return
        self._track(ORDERS, order_id, self._gateway._orders.get(order_id))
        self.order_writes.setdefault(order_id, {}).update(fields)


class InMemoryGateway(PersistenceGateway):
    """Dict-backed gateway. Each commit validates and applies without yielding to the event loop."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._customers: Dict[str, Customer] = {}
        self._orders: Dict[str, Order] = {}
        self._notifications: Dict[str, Notification] = {}

    def _table(self, name: str) -> Dict[str, Any]:
        return self._customers if name == CUSTOMERS else self._orders

    @staticmethod
    def _apply(row: Record, fields: Dict[str, Any], now: datetime) -> Record:
        return row.model_copy(update={**fields, "updated_at": now, "version": row.version + 1}, deep=True)

    # ===== CUSTOMERS =====

    async def create_customer(self, customer: Customer) -> Customer:
        await _io()
        now = self.clock()
        created = customer.model_copy(
            update={"id": uuid.uuid4().hex, "created_at": now, "updated_at": now, "version": 1},
            deep=True,
        )
        self._customers[created.id] = created
        return created.model_copy(deep=True)

    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        await _io()
        customer = self._customers.get(customer_id)
        return customer.model_copy(deep=True) if customer else None

    async def list_customers(self) -> List[Customer]:
        await _io()
        customers = [c.model_copy(deep=True) for c in self._customers.values()]
        return sorted(customers, key=lambda c: c.created_at, reverse=True)

    async def update_customer(self, customer_id: str, fields: Dict[str, Any]) -> bool:
        await _io()
        customer = self._customers.get(customer_id)
        if customer is None:
            return False
        self._customers[customer_id] = self._apply(customer, fields, self.clock())
        return True

    async def delete_customer(self, customer_id: str) -> bool:
        await _io()
        return self._customers.pop(customer_id, None) is not None

    async def find_customers_by_phone(self, phone: str) -> List[Customer]:
        await _io()
        return [c.model_copy(deep=True) for c in self._customers.values() if c.phone == phone]

    async def find_customers_by_date(self, field: str, start: datetime, end: datetime) -> List[Customer]:
        if field not in CUSTOMER_DATE_FIELDS:
            raise ValueError(f"Unsupported date field: {field}")
        await _io()
        matches = []
        for customer in self._customers.values():
            value = getattr(customer, field)
            if value is not None and start <= value <= end:
                matches.append(customer.model_copy(deep=True))
        return matches

    # ===== ORDERS =====

    async def get_order(self, order_id: str) -> Optional[Order]:
        await _io()
        order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    async def list_orders_by_customer(self, customer_id: str) -> List[Order]:
        await _io()
        return [o.model_copy(deep=True) for o in self._orders.values() if o.customer_id == customer_id]

    async def update_order(self, order_id: str, fields: Dict[str, Any]) -> bool:
        await _io()
        order = self._orders.get(order_id)
        if order is None:
            return False
        self._orders[order_id] = self._apply(order, fields, self.clock())
        return True

    # ===== NOTIFICATIONS =====

    async def record_notification(self, notification: Notification) -> Notification:
        await _io()
        now = self.clock()
        created = notification.model_copy(
            update={
                "id": uuid.uuid4().hex,
                "sent_at": notification.sent_at or now,
                "created_at": now,
                "updated_at": now,
                "version": 1,
            },
            deep=True,
        )
        self._notifications[created.id] = created
        return created.model_copy(deep=True)

    async def list_notifications(self, customer_id: str) -> List[Notification]:
        await _io()
        notifications = [n.model_copy(deep=True) for n in self._notifications.values() if n.customer_id == customer_id]
        return sorted(notifications, key=lambda n: n.sent_at, reverse=True)

    # ===== TRANSACTIONS =====

    async def _begin(self) -> Transaction:
        return InMemoryTransaction(self)

    async def _commit(self, txn: Transaction) -> None:
        if not isinstance(txn, InMemoryTransaction):
            raise TypeError(f"Expected InMemoryTransaction, got {type(txn).__name__}")
        await _io()
        # Nothing below awaits, so validation and apply happen as one step
        for (table, key), version in txn.read_versions.items():
            current = self._table(table).get(key)
            current_version = current.version if current else MISSING
            if current_version != version:
                raise StorageConflictError(f"{table}/{key} changed from version {version} to {current_version}")

        for customer_id in txn.customer_writes:
            if customer_id not in self._customers:
                raise NotFoundError(f"Customer {customer_id} not found")
        for order_id in txn.order_writes:
            if order_id not in self._orders:
                raise NotFoundError(f"Order {order_id} not found")

        now = self.clock()
        for customer_id, fields in txn.customer_writes.items():
            self._customers[customer_id] = self._apply(self._customers[customer_id], fields, now)
        for order_id, fields in txn.order_writes.items():
            self._orders[order_id] = self._apply(self._orders[order_id], fields, now)
        for order_id, order in txn.new_orders.items():
            self._orders[order_id] = order

    async def _rollback(self, txn: Transaction) -> None:
        # Buffered writes are simply discarded
        pass
