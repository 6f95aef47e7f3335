"""
Balance reconciliation for customers

A customer's balance is the sum of its orders' balances. Two strategies
keep it there:

- atomic delta: inside a transaction, read the customer balance, add the
  new order's balance and write both back (order creation)
- full recomputation: scan the customer's orders and overwrite the balance
  with their sum (order update, repairs)

The legacy recomputation runs outside any transaction. A concurrent write
to another order of the same customer that lands between the scan and the
overwrite can be missed; the next recomputation corrects it.
"""

import logging
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from ..exceptions import NotFoundError
from ..models import Order
from ..utils.money import ZERO, to_decimal
from .gateway import PersistenceGateway, Transaction

logger = logging.getLogger(__name__)


class ReconcileStrategy(str, Enum):
    ATOMIC_DELTA = "atomic_delta"
    FULL_RECOMPUTE = "full_recompute"
    TRANSACTIONAL_RECOMPUTE = "transactional_recompute"


def sum_balances(orders: Iterable[Order]) -> Decimal:
    return sum((to_decimal(order.balance) for order in orders), ZERO)


class BalanceReconciler:
    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway

    async def apply_delta(self, txn: Transaction, customer_id: str, delta: Decimal) -> Decimal:
        """Add delta to the customer's balance inside txn"""
        customer = await txn.get_customer(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found")

        new_balance = to_decimal(customer.balance) + to_decimal(delta)
        txn.update_customer(customer_id, {"balance": new_balance})
        return new_balance

    async def recompute(self, customer_id: str) -> Optional[Decimal]:
        """Scan-and-sum outside any transaction. Returns None if the customer is gone."""
        orders = await self.gateway.list_orders_by_customer(customer_id)
        total = sum_balances(orders)

        if not await self.gateway.update_customer(customer_id, {"balance": total}):
            logger.warning(f"⚠️ Customer {customer_id} not found, {len(orders)} orphaned orders left unreconciled")
            return None

        logger.info(f"Updated balance for customer {customer_id} to {total}")
        return total

    async def recompute_in(self, txn: Transaction, customer_id: str) -> Decimal:
        """Scan-and-sum inside txn, so the total commits together with the writes that changed it"""
        customer = await txn.get_customer(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found")

        total = sum_balances(await txn.list_orders_by_customer(customer_id))
        txn.update_customer(customer_id, {"balance": total})
        return total

    async def reconcile_balance(
        self,
        customer_id: str,
        strategy: ReconcileStrategy = ReconcileStrategy.FULL_RECOMPUTE,
        delta: Optional[Decimal] = None,
        txn: Optional[Transaction] = None,
    ) -> Optional[Decimal]:
        """Bring the customer's balance in line with its orders using the given strategy"""
        if strategy == ReconcileStrategy.ATOMIC_DELTA:
            if txn is None or delta is None:
                raise ValueError("Atomic delta reconciliation needs a transaction and a delta")
            return await self.apply_delta(txn, customer_id, delta)

        if strategy == ReconcileStrategy.TRANSACTIONAL_RECOMPUTE:
            if txn is not None:
                return await self.recompute_in(txn, customer_id)
            total = await self.gateway.transact(lambda t: self.recompute_in(t, customer_id))
            logger.info(f"Reconciled balance for customer {customer_id} to {total}")
            return total

        return await self.recompute(customer_id)
