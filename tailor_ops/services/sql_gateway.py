"""
SQLAlchemy storage backend for customers and orders
Optimistic transactions: every write is a conditional UPDATE on the row version
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import NotFoundError, StorageConflictError
from ..models import Customer, Notification, Order
from ..utils.dates import to_internal_time
from .database import DatabaseManager
from .gateway import CUSTOMER_DATE_FIELDS, PersistenceGateway, Transaction
from .models import CustomerRow, NotificationRow, OrderRow

logger = logging.getLogger(__name__)

# Driver messages that mean "another writer got there first"
CONFLICT_MARKERS = ("database is locked", "could not serialize", "deadlock detected")

ROWS = {"customers": CustomerRow, "orders": OrderRow}


def customer_from_row(row: CustomerRow) -> Customer:
    return Customer(
        id=row.id,
        name=row.name,
        phone=row.phone,
        address=row.address or "",
        pickup_date=to_internal_time(row.pickup_date),
        fitting_date=to_internal_time(row.fitting_date),
        notes=row.notes or "",
        balance=row.balance,
        created_at=to_internal_time(row.created_at),
        updated_at=to_internal_time(row.updated_at),
        version=row.version,
    )


def order_from_row(row: OrderRow) -> Order:
    return Order(
        id=row.id,
        customer_id=row.customer_id,
        item=row.item,
        measurements=dict(row.measurements or {}),
        price=row.price,
        deposit=row.deposit,
        balance=row.balance,
        status=row.status,
        pickup_date=to_internal_time(row.pickup_date),
        fitting_date=to_internal_time(row.fitting_date),
        notes=row.notes or "",
        created_at=to_internal_time(row.created_at),
        updated_at=to_internal_time(row.updated_at),
        version=row.version,
    )


def notification_from_row(row: NotificationRow) -> Notification:
    return Notification(
        id=row.id,
        customer_id=row.customer_id,
        type=row.type,
        sub_type=row.sub_type or "",
        message=row.message,
        status=row.status,
        sent_at=to_internal_time(row.sent_at),
        created_at=to_internal_time(row.created_at),
        updated_at=to_internal_time(row.updated_at),
        version=row.version,
    )


def _is_conflict(error: DBAPIError) -> bool:
    message = str(error.orig if error.orig is not None else error).lower()
    return any(marker in message for marker in CONFLICT_MARKERS)


class SqlTransaction(Transaction):
    def __init__(self, session: AsyncSession, gateway: "SqlAlchemyGateway"):
        self.session = session
        self._gateway = gateway
        self.read_versions: Dict[Tuple[str, str], Optional[int]] = {}
        self.customer_writes: Dict[str, Dict[str, Any]] = {}
        self.order_writes: Dict[str, Dict[str, Any]] = {}
        self.new_orders: Dict[str, Order] = {}

    def _track(self, table: str, key: str, version: Optional[int]) -> None:
        self.read_versions.setdefault((table, key), version)

    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        row = await self.session.get(CustomerRow, customer_id)
        self._track("customers", customer_id, row.version if row else None)
        if row is None:
            return None
        return customer_from_row(row).model_copy(update=self.customer_writes.get(customer_id, {}))

    async def get_order(self, order_id: str) -> Optional[Order]:
        if order_id in self.new_orders:
            return self.new_orders[order_id].model_copy(deep=True)
        row = await self.session.get(OrderRow, order_id)
        self._track("orders", order_id, row.version if row else None)
        if row is None:
            return None
        return order_from_row(row).model_copy(update=self.order_writes.get(order_id, {}))

    async def list_orders_by_customer(self, customer_id: str) -> List[Order]:
        result = await self.session.execute(select(OrderRow).where(OrderRow.customer_id == customer_id))
        orders = []
        for row in result.scalars().all():
            self._track("orders", row.id, row.version)
            orders.append(order_from_row(row).model_copy(update=self.order_writes.get(row.id, {})))
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
        self.customer_writes.setdefault(customer_id, {}).update(fields)

    def update_order(self, order_id: str, fields: Dict[str, Any]) -> None:
        if order_id in self.new_orders:
            self.new_orders[order_id] = self.new_orders[order_id].model_copy(update=fields)
            return
        self.order_writes.setdefault(order_id, {}).update(fields)


class SqlAlchemyGateway(PersistenceGateway):
    """Customer/order storage on a SQLAlchemy async engine (PostgreSQL or SQLite)"""

    def __init__(self, db: DatabaseManager, **kwargs):
        super().__init__(**kwargs)
        self.db = db

    async def _write(self, model, key: str, fields: Dict[str, Any]) -> bool:
        async with self.db.get_session() as session:
            result = await session.execute(
                update(model)
                .where(model.id == key)
                .values(**fields, updated_at=self.clock(), version=model.version + 1)
            )
            await session.commit()
            return result.rowcount > 0

    # ===== CUSTOMERS =====

    async def create_customer(self, customer: Customer) -> Customer:
        now = self.clock()
        created = customer.model_copy(
            update={"id": uuid.uuid4().hex, "created_at": now, "updated_at": now, "version": 1}
        )
        async with self.db.get_session() as session:
            session.add(CustomerRow(**created.model_dump()))
            await session.commit()
        return created

    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        async with self.db.get_session() as session:
            row = await session.get(CustomerRow, customer_id)
            return customer_from_row(row) if row else None

    async def list_customers(self) -> List[Customer]:
        async with self.db.get_session() as session:
            result = await session.execute(select(CustomerRow).order_by(CustomerRow.created_at.desc()))
            return [customer_from_row(row) for row in result.scalars().all()]

    async def update_customer(self, customer_id: str, fields: Dict[str, Any]) -> bool:
        return await self._write(CustomerRow, customer_id, fields)

    async def delete_customer(self, customer_id: str) -> bool:
        async with self.db.get_session() as session:
            row = await session.get(CustomerRow, customer_id)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True

    async def find_customers_by_phone(self, phone: str) -> List[Customer]:
        async with self.db.get_session() as session:
            result = await session.execute(select(CustomerRow).where(CustomerRow.phone == phone))
            return [customer_from_row(row) for row in result.scalars().all()]

    async def find_customers_by_date(self, field: str, start: datetime, end: datetime) -> List[Customer]:
        if field not in CUSTOMER_DATE_FIELDS:
            raise ValueError(f"Unsupported date field: {field}")
        column = getattr(CustomerRow, field)
        async with self.db.get_session() as session:
            result = await session.execute(select(CustomerRow).where(column >= start, column <= end))
            return [customer_from_row(row) for row in result.scalars().all()]

    # ===== ORDERS =====

    async def get_order(self, order_id: str) -> Optional[Order]:
        async with self.db.get_session() as session:
            row = await session.get(OrderRow, order_id)
            return order_from_row(row) if row else None

    async def list_orders_by_customer(self, customer_id: str) -> List[Order]:
        async with self.db.get_session() as session:
            result = await session.execute(select(OrderRow).where(OrderRow.customer_id == customer_id))
            return [order_from_row(row) for row in result.scalars().all()]

    async def update_order(self, order_id: str, fields: Dict[str, Any]) -> bool:
        return await self._write(OrderRow, order_id, fields)

    # ===== NOTIFICATIONS =====

    async def record_notification(self, notification: Notification) -> Notification:
        now = self.clock()
        created = notification.model_copy(
            update={
                "id": uuid.uuid4().hex,
                "sent_at": notification.sent_at or now,
                "created_at": now,
                "updated_at": now,
                "version": 1,
            }
        )
        async with self.db.get_session() as session:
            session.add(NotificationRow(**created.model_dump()))
            await session.commit()
        return created

    async def list_notifications(self, customer_id: str) -> List[Notification]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(NotificationRow)
                .where(NotificationRow.customer_id == customer_id)
                .order_by(NotificationRow.sent_at.desc())
            )
            return [notification_from_row(row) for row in result.scalars().all()]

    # ===== TRANSACTIONS =====

    async def _begin(self) -> Transaction:
        return SqlTransaction(self.db.new_session(), self)

    async def _apply_versioned(self, txn: SqlTransaction, table: str, writes: Dict[str, Dict[str, Any]], now: datetime) -> None:
        model = ROWS[table]
        for key, fields in writes.items():
            stmt = update(model).where(model.id == key)
            expected = txn.read_versions.get((table, key))
            if expected is not None:
                stmt = stmt.where(model.version == expected)
            result = await txn.session.execute(stmt.values(**fields, updated_at=now, version=model.version + 1))
            if result.rowcount == 0:
                if expected is None:
                    raise NotFoundError(f"{table}/{key} not found")
                raise StorageConflictError(f"{table}/{key} changed since version {expected}")

    async def _commit(self, txn: Transaction) -> None:
        if not isinstance(txn, SqlTransaction):
            raise TypeError(f"Expected SqlTransaction, got {type(txn).__name__}")
        session = txn.session
        now = self.clock()
        try:
            # Rows only read must still be at the version we saw
            for (table, key), version in txn.read_versions.items():
                writes = txn.customer_writes if table == "customers" else txn.order_writes
                if key in writes:
                    continue
                model = ROWS[table]
                current = await session.scalar(select(model.version).where(model.id == key))
                if current != version:
                    raise StorageConflictError(f"{table}/{key} changed from version {version} to {current}")

            await self._apply_versioned(txn, "customers", txn.customer_writes, now)
            await self._apply_versioned(txn, "orders", txn.order_writes, now)
            for order in txn.new_orders.values():
                session.add(OrderRow(**order.model_dump()))
            await session.commit()
        except DBAPIError as e:
            if _is_conflict(e):
                raise StorageConflictError(f"Concurrent write rejected by database: {e.orig}")
            raise
        await session.close()

    async def _rollback(self, txn: Transaction) -> None:
        if not isinstance(txn, SqlTransaction):
            raise TypeError(f"Expected SqlTransaction, got {type(txn).__name__}")
        await txn.session.rollback()
        await txn.session.close()

    async def close(self) -> None:
        await self.db.dispose()
