"""
Order lifecycle: creation, partial updates and tracking

Each mutation runs validate -> store (+ balance) -> notify -> publish, in
that order, awaiting each step. Validation and lookup failures stop before
any side effect.
"""

import logging
from typing import Any, Dict, List, Optional

from ..adapters.realtime import ORDER_UPDATED, RealtimePublisher, customer_room, order_room
from ..adapters.sms import NotificationDispatcher
from ..exceptions import NotFoundError, ValidationError
from ..models import Order, OrderStatus, newest_first, parse_status
from ..utils.dates import to_internal_time
from ..utils.money import ZERO, compute_balance, to_decimal
from ..utils.sanitizer import sanitize_fields, sanitize_phone, sanitize_string
from .balance import BalanceReconciler, ReconcileStrategy
from .gateway import PersistenceGateway, Transaction

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("status", "measurements", "price", "deposit", "pickup_date", "fitting_date", "notes")

LEGACY = "legacy"
TRANSACTIONAL = "transactional"


def _amount(name: str, value: Any):
    amount = to_decimal(value)
    if amount < ZERO:
        raise ValidationError(f"{name} cannot be negative")
    return amount


def _measurements(value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError("measurements must be an object")
    return dict(value)


class OrderLifecycleManager:
    def __init__(
        self,
        gateway: PersistenceGateway,
        notifier: NotificationDispatcher,
        publisher: RealtimePublisher,
        balance_update_mode: str = LEGACY,
        broadcast: bool = False,
    ):
        if balance_update_mode not in (LEGACY, TRANSACTIONAL):
            raise ValueError(f"Unknown balance update mode: {balance_update_mode}")
        self.gateway = gateway
        self.notifier = notifier
        self.publisher = publisher
        self.balance_update_mode = balance_update_mode
        self.broadcast = broadcast
        self.reconciler = BalanceReconciler(gateway)

    async def create_order(
        self,
        customer_id: str,
        item: str,
        measurements: Optional[Dict[str, Any]] = None,
        price: Any = None,
        deposit: Any = None,
        pickup_date: Optional[str] = None,
        fitting_date: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> str:
        """Create an order and add its balance to the customer's in one transaction.

        Returns the new order id. Raises ValidationError for missing
        customer_id/item and NotFoundError for an unknown customer.
        """
        customer_id = sanitize_string(customer_id)
        item = sanitize_string(item)
        if not customer_id or not item:
            raise ValidationError("Customer ID and Item are required")

        price = _amount("price", price)
        deposit = _amount("deposit", deposit)
        order = Order(
            customer_id=customer_id,
            item=item,
            measurements=sanitize_fields(_measurements(measurements)),
            price=price,
            deposit=deposit,
            balance=compute_balance(price, deposit),
            status=OrderStatus.PENDING,
            pickup_date=to_internal_time(pickup_date),
            fitting_date=to_internal_time(fitting_date),
            notes=sanitize_string(notes) or "",
        )

        async def create(txn: Transaction) -> Order:
            await self.reconciler.reconcile_balance(
                customer_id, ReconcileStrategy.ATOMIC_DELTA, delta=order.balance, txn=txn
            )
            return txn.insert_order(order)

        created = await self.gateway.transact(create)
        logger.info(f"✅ Created order {created.id} for customer {customer_id} (balance {created.balance})")

        await self._publish(created)
        return created.id

    async def get_order(self, order_id: str) -> Order:
        order = await self.gateway.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def build_update(self, current: Order, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Translate supplied fields into stored values; absent or None fields are left alone"""
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        fields = sanitize_fields({k: v for k, v in fields.items() if v is not None})
        data: Dict[str, Any] = {}

        if fields.get("status"):
            data["status"] = parse_status(fields["status"])
        if "measurements" in fields:
            data["measurements"] = _measurements(fields["measurements"])
        if "price" in fields:
            data["price"] = _amount("price", fields["price"])
        if "deposit" in fields:
            data["deposit"] = _amount("deposit", fields["deposit"])
        if "price" in data or "deposit" in data:
            data["balance"] = compute_balance(
                data.get("price", current.price), data.get("deposit", current.deposit)
            )
        for date_field in ("pickup_date", "fitting_date"):
            if date_field in fields:
                data[date_field] = to_internal_time(fields[date_field])
        if "notes" in fields:
            data["notes"] = fields["notes"]

        return data

    async def update_order(self, order_id: str, fields: Dict[str, Any]) -> Order:
        """Apply a partial update, notify on status change, reconcile and publish"""
        previous = await self.get_order(order_id)
        data = self.build_update(previous, fields)

        if self.balance_update_mode == TRANSACTIONAL:
            previous = await self.gateway.transact(lambda txn: self._update_in(txn, order_id, fields))
        elif not await self.gateway.update_order(order_id, data):
            raise NotFoundError("Order not found")

        updated = await self.get_order(order_id)

        if "status" in data and updated.status != previous.status:
            await self._notify_status_change(updated)

        if self.balance_update_mode == LEGACY:
            try:
                await self.reconciler.reconcile_balance(updated.customer_id, ReconcileStrategy.FULL_RECOMPUTE)
            except Exception:
                logger.exception(f"❌ Failed to update balance for customer {updated.customer_id}")

        await self._publish(updated)
        return updated

    async def _update_in(self, txn: Transaction, order_id: str, fields: Dict[str, Any]) -> Order:
        current = await txn.get_order(order_id)
        if current is None:
            raise NotFoundError("Order not found")
        txn.update_order(order_id, self.build_update(current, fields))

        if await txn.get_customer(current.customer_id) is None:
            # Same outcome as the legacy recompute: the order update stands
            logger.warning(
                f"⚠️ Customer {current.customer_id} not found, balance for order {order_id} left unreconciled"
            )
            return current
        await self.reconciler.reconcile_balance(
            current.customer_id, ReconcileStrategy.TRANSACTIONAL_RECOMPUTE, txn=txn
        )
        return current

    async def track_orders_by_phone(self, phone: str) -> List[Order]:
        """All orders of the customer(s) with this phone number, newest first"""
        phone = sanitize_phone(phone.strip()) if isinstance(phone, str) else None
        if not phone:
            raise ValidationError("Phone number is required")

        customers = await self.gateway.find_customers_by_phone(phone)
        if not customers:
            return []

        orders: List[Order] = []
        for customer in customers:
            orders.extend(await self.gateway.list_orders_by_customer(customer.id))
        return newest_first(orders)

    async def _notify_status_change(self, order: Order) -> None:
        try:
            customer = await self.gateway.get_customer(order.customer_id)
            if customer is None:
                logger.warning(f"⚠️ Customer {order.customer_id} not found, status SMS for order {order.id} skipped")
                return
            await self.notifier.send_status_change_notification(
                customer.phone, customer.name, order.item, order.status.value
            )
        except Exception:
            logger.exception(f"❌ Status notification for order {order.id} failed")

    async def _publish(self, order: Order) -> None:
        rooms = None if self.broadcast else [customer_room(order.customer_id), order_room(order.id)]
        try:
            await self.publisher.publish(ORDER_UPDATED, order.to_payload(), rooms)
        except Exception:
            logger.exception(f"❌ Realtime event for order {order.id} failed")
