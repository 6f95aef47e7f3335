"""
Persistence gateway for customer and order records
Abstract interface shared by the SQL and in-memory backends
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from ..exceptions import StorageConflictError, TransactionRetryExhaustedError
from ..models import Customer, Notification, Order
from ..utils.dates import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]

CUSTOMER_DATE_FIELDS = ("pickup_date", "fitting_date")


class Transaction(ABC):
    """Unit of work handed to the callback of PersistenceGateway.transact.

    Reads record the version of every row they return. Writes are buffered
    and applied at commit, which fails with StorageConflictError if any row
    read or written changed since it was read. Reads see the transaction's
    own buffered writes.
    """

    @abstractmethod
    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        pass

    @abstractmethod
    async def get_order(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list_orders_by_customer(self, customer_id: str) -> List[Order]:
        pass

    @abstractmethod
    def insert_order(self, order: Order) -> Order:
        """Buffer a new order; returns it with id and timestamps assigned"""
        pass

    @abstractmethod
    def update_customer(self, customer_id: str, fields: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def update_order(self, order_id: str, fields: Dict[str, Any]) -> None:
        pass


class PersistenceGateway(ABC):
    """Abstract base class for customer/order storage backends"""

    def __init__(self, max_attempts: int = 5, retry_delay: float = 0.05, clock: Optional[Clock] = None):
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.clock: Clock = clock or utc_now

    # ===== CUSTOMERS =====

    @abstractmethod
    async def create_customer(self, customer: Customer) -> Customer:
        pass

    @abstractmethod
    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        pass

    @abstractmethod
    async def list_customers(self) -> List[Customer]:
        """All customers, newest first"""
        pass

    @abstractmethod
    async def update_customer(self, customer_id: str, fields: Dict[str, Any]) -> bool:
        """Apply fields to a customer; False if it does not exist"""
        pass

    @abstractmethod
    async def delete_customer(self, customer_id: str) -> bool:
        pass

    @abstractmethod
    async def find_customers_by_phone(self, phone: str) -> List[Customer]:
        pass

    @abstractmethod
    async def find_customers_by_date(self, field: str, start: datetime, end: datetime) -> List[Customer]:
        """Customers whose date column `field` lies in [start, end]"""
        pass

    # ===== ORDERS =====

    @abstractmethod
    async def get_order(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list_orders_by_customer(self, customer_id: str) -> List[Order]:
        pass

    @abstractmethod
    async def update_order(self, order_id: str, fields: Dict[str, Any]) -> bool:
        """Apply fields to an order; False if it does not exist"""
        pass

    # ===== NOTIFICATIONS =====

    @abstractmethod
    async def record_notification(self, notification: Notification) -> Notification:
        """Store a sent notification; sent_at defaults to now"""
        pass

    @abstractmethod
    async def list_notifications(self, customer_id: str) -> List[Notification]:
        """A customer's notifications, newest first"""
        pass

    # ===== TRANSACTIONS =====

    @abstractmethod
    async def _begin(self) -> Transaction:
        pass

    @abstractmethod
    async def _commit(self, txn: Transaction) -> None:
        """Apply buffered writes or raise StorageConflictError"""
        pass

    @abstractmethod
    async def _rollback(self, txn: Transaction) -> None:
        pass

    async def transact(self, fn: Callable[[Transaction], Awaitable[T]], max_attempts: Optional[int] = None) -> T:
        """Run fn inside a transaction, retrying on conflicting concurrent commits.

        fn may run more than once and must not have side effects outside the
        transaction it is given.
        """
        attempts = max_attempts or self.max_attempts
        for attempt in range(1, attempts + 1):
            txn = await self._begin()
            try:
                result = await fn(txn)
                await self._commit(txn)
                return result
            except StorageConflictError as e:
                await self._rollback(txn)
                logger.info(f"Transaction conflict (attempt {attempt}/{attempts}): {e.message}")
                if attempt < attempts and self.retry_delay > 0:
                    delay = self.retry_delay * (2 ** (attempt - 1))
                    await asyncio.sleep(delay + random.uniform(0, delay))
            except BaseException:
                await self._rollback(txn)
                raise

        logger.error(f"❌ Transaction aborted after {attempts} conflicting attempts")
        raise TransactionRetryExhaustedError(f"Transaction aborted after {attempts} conflicting attempts")

    async def close(self) -> None:
        """Release backend resources"""
        pass
