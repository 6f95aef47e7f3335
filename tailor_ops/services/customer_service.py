"""
Customer records: create, read, partial update, delete
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..exceptions import NotFoundError, ValidationError
from ..models import Customer, Notification, Order, newest_first
from ..utils.dates import to_internal_time
from ..utils.sanitizer import sanitize_fields, sanitize_phone, sanitize_string
from .balance import BalanceReconciler, ReconcileStrategy
from .gateway import PersistenceGateway

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "phone", "address", "pickup_date", "fitting_date", "notes")


class CustomerService:
    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway
        self.reconciler = BalanceReconciler(gateway)

    async def create_customer(
        self,
        name: str,
        phone: str,
        address: Optional[str] = None,
        pickup_date: Optional[str] = None,
        fitting_date: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Customer:
        name = sanitize_string(name)
        phone = sanitize_phone(phone)
        if not name or not phone:
            raise ValidationError("Name and Phone are required")

        # Balance is derived from orders and always starts at zero
        customer = await self.gateway.create_customer(Customer(
            name=name,
            phone=phone,
            address=sanitize_string(address) or "",
            pickup_date=to_internal_time(pickup_date),
            fitting_date=to_internal_time(fitting_date),
            notes=sanitize_string(notes) or "",
            balance=Decimal("0"),
        ))
        logger.info(f"✅ Created customer {customer.id}")
        return customer

    async def get_customer(self, customer_id: str) -> Customer:
        customer = await self.gateway.get_customer(customer_id)
        if customer is None:
            raise NotFoundError("Customer not found")
        return customer

    async def list_customers(self) -> List[Customer]:
        return await self.gateway.list_customers()

    async def update_customer(self, customer_id: str, fields: Dict[str, Any]) -> Customer:
        """Apply supplied fields; empty values are ignored, balance is not writable"""
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        fields = sanitize_fields({k: v for k, v in fields.items() if v})
        for date_field in ("pickup_date", "fitting_date"):
            if date_field in fields:
                fields[date_field] = to_internal_time(fields[date_field])
        if "phone" in fields and not fields["phone"]:
            raise ValidationError("Phone must contain digits")

        if fields:
            if not await self.gateway.update_customer(customer_id, fields):
                raise NotFoundError("Customer not found")
        return await self.get_customer(customer_id)

    async def delete_customer(self, customer_id: str) -> None:
        """Delete the customer record only; its orders stay behind"""
        if not await self.gateway.delete_customer(customer_id):
            raise NotFoundError("Customer not found")

        orphaned = await self.gateway.list_orders_by_customer(customer_id)
        if orphaned:
            logger.warning(f"⚠️ Deleted customer {customer_id} left {len(orphaned)} orphaned orders")
        else:
            logger.info(f"Deleted customer {customer_id}")

    async def list_orders_for_customer(self, customer_id: str) -> List[Order]:
        return newest_first(await self.gateway.list_orders_by_customer(customer_id))

    async def list_notifications(self, customer_id: str) -> List[Notification]:
        """Reminders sent to the customer, newest first"""
        await self.get_customer(customer_id)
        return await self.gateway.list_notifications(customer_id)

    async def reconcile_customer_balance(self, customer_id: str) -> Decimal:
        """Recompute the stored balance from the customer's orders (repair)"""
        return await self.reconciler.reconcile_balance(customer_id, ReconcileStrategy.TRANSACTIONAL_RECOMPUTE)
