import asyncio
import logging
from decimal import Decimal

import pytest

from tailor_ops.exceptions import NotFoundError
from tailor_ops.models import Customer, Order
from tailor_ops.services.balance import BalanceReconciler, ReconcileStrategy, sum_balances
from tailor_ops.services.memory_gateway import InMemoryGateway
from tailor_ops.services.order_service import OrderLifecycleManager


async def seed_orders(gateway, customer_id, balances):
    async def insert(txn):
        for balance in balances:
            txn.insert_order(Order(customer_id=customer_id, item="Shirt", balance=Decimal(balance)))

    await gateway.transact(insert)


class TestSumBalances:
    def test_empty_is_zero(self):
        assert sum_balances([]) == Decimal("0")

    def test_sums_order_balances(self):
        orders = [
            Order(customer_id="c1", item="Suit", balance=Decimal("80")),
            Order(customer_id="c1", item="Shirt", balance=Decimal("12.50")),
        ]
        assert sum_balances(orders) == Decimal("92.50")


class TestBalanceReconciler:
    """Unit tests for the balance strategies"""

    @pytest.mark.asyncio
    async def test_atomic_delta_adds_to_stored_balance(self, gateway):
        customer = await gateway.create_customer(Customer(name="Ada", phone="1", balance=Decimal("20")))
        reconciler = BalanceReconciler(gateway)

        result = await gateway.transact(lambda txn: reconciler.reconcile_balance(
            customer.id, ReconcileStrategy.ATOMIC_DELTA, delta=Decimal("80"), txn=txn
        ))

        assert result == Decimal("100")
        assert (await gateway.get_customer(customer.id)).balance == Decimal("100")

    @pytest.mark.asyncio
    async def test_atomic_delta_requires_transaction(self, gateway):
        reconciler = BalanceReconciler(gateway)
        with pytest.raises(ValueError):
            await reconciler.reconcile_balance("c1", ReconcileStrategy.ATOMIC_DELTA, delta=Decimal("1"))

    @pytest.mark.asyncio
    async def test_atomic_delta_unknown_customer(self, gateway):
        reconciler = BalanceReconciler(gateway)
        with pytest.raises(NotFoundError):
            await gateway.transact(lambda txn: reconciler.apply_delta(txn, "missing", Decimal("5")))

    @pytest.mark.asyncio
    async def test_full_recompute_overwrites_drift(self, gateway):
        customer = await gateway.create_customer(Customer(name="Ada", phone="1"))
        await seed_orders(gateway, customer.id, ["80", "15"])
        await gateway.update_customer(customer.id, {"balance": Decimal("999")})

        total = await BalanceReconciler(gateway).reconcile_balance(customer.id, ReconcileStrategy.FULL_RECOMPUTE)

        assert total == Decimal("95")
        assert (await gateway.get_customer(customer.id)).balance == Decimal("95")

    @pytest.mark.asyncio
    async def test_full_recompute_with_no_orders_is_zero(self, gateway):
        customer = await gateway.create_customer(Customer(name="Ada", phone="1", balance=Decimal("40")))

        assert await BalanceReconciler(gateway).recompute(customer.id) == Decimal("0")
        assert (await gateway.get_customer(customer.id)).balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_full_recompute_for_deleted_customer(self, gateway, caplog):
        customer = await gateway.create_customer(Customer(name="Ada", phone="1"))
        await seed_orders(gateway, customer.id, ["30"])
        await gateway.delete_customer(customer.id)

        with caplog.at_level(logging.WARNING):
            assert await BalanceReconciler(gateway).recompute(customer.id) is None

        assert "orphaned orders" in caplog.text

    @pytest.mark.asyncio
    async def test_transactional_recompute(self, gateway):
        customer = await gateway.create_customer(Customer(name="Ada", phone="1", balance=Decimal("7")))
        await seed_orders(gateway, customer.id, ["10", "20", "0"])

        total = await BalanceReconciler(gateway).reconcile_balance(
            customer.id, ReconcileStrategy.TRANSACTIONAL_RECOMPUTE
        )

        assert total == Decimal("30")
        assert (await gateway.get_customer(customer.id)).balance == Decimal("30")

    @pytest.mark.asyncio
    async def test_transactional_recompute_unknown_customer(self, gateway):
        with pytest.raises(NotFoundError):
            await BalanceReconciler(gateway).reconcile_balance(
                "missing", ReconcileStrategy.TRANSACTIONAL_RECOMPUTE
            )


class TestConcurrentCreates:
    """Balance stays equal to the sum of orders under concurrent creation"""

    @pytest.mark.asyncio
    async def test_concurrent_creates_keep_balance_consistent(self, clock, notifier, publisher, caplog):
        count = 10
        gateway = InMemoryGateway(max_attempts=count + 2, retry_delay=0, clock=clock)
        customer = await gateway.create_customer(Customer(name="Ada", phone="5550100"))
        orders = OrderLifecycleManager(gateway, notifier, publisher)

        with caplog.at_level(logging.INFO, logger="tailor_ops.services.gateway"):
            ids = await asyncio.gather(*[
                orders.create_order(customer.id, f"Shirt {i}", price=10, deposit=0)
                for i in range(count)
            ])

        assert len(set(ids)) == count
        stored = await gateway.list_orders_by_customer(customer.id)
        assert len(stored) == count
        assert (await gateway.get_customer(customer.id)).balance == Decimal("100")
        # The creates really did collide
        assert "Transaction conflict" in caplog.text

    @pytest.mark.asyncio
    async def test_recompute_heals_drift_after_create(self, gateway, notifier, publisher):
        customer = await gateway.create_customer(Customer(name="Ada", phone="1"))
        orders = OrderLifecycleManager(gateway, notifier, publisher)
        order_id = await orders.create_order(customer.id, "Suit", price=100, deposit=20)

        await gateway.update_customer(customer.id, {"balance": Decimal("-3")})
        await orders.update_order(order_id, {"notes": "hem"})

        assert (await gateway.get_customer(customer.id)).balance == Decimal("80")
