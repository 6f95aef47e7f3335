import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from tailor_ops.config import Settings, get_database_url
from tailor_ops.exceptions import NotFoundError, TransactionRetryExhaustedError
from tailor_ops.models import Customer, Notification, Order, OrderStatus
from tailor_ops.services.balance import BalanceReconciler, ReconcileStrategy
from tailor_ops.services.database import DatabaseManager
from tailor_ops.services.order_service import OrderLifecycleManager
from tailor_ops.services.sql_gateway import SqlAlchemyGateway


@pytest_asyncio.fixture
async def sql_gateway(tmp_path, clock):
    db = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    db.initialize()
    await db.create_tables()
    gateway = SqlAlchemyGateway(db, retry_delay=0, clock=clock)
    yield gateway
    await gateway.close()


class TestDatabaseUrl:
    @pytest.mark.parametrize("url,expected", [
        ("postgres://u:p@db/tailor", "postgresql+asyncpg://u:p@db/tailor"),
        ("postgresql://u:p@db/tailor", "postgresql+asyncpg://u:p@db/tailor"),
        ("sqlite:///./local.db", "sqlite+aiosqlite:///./local.db"),
    ])
    def test_async_driver_urls(self, url, expected):
        assert get_database_url(Settings(_env_file=None, DATABASE_URL=url)) == expected

    def test_sqlite_fallback(self):
        assert get_database_url(Settings(_env_file=None, DATABASE_URL="")) == "sqlite+aiosqlite:///./tailor_ops.db"


class TestSqlAlchemyGateway:
    """SQLite-backed tests for the SQL gateway"""

    @pytest.mark.asyncio
    async def test_customer_round_trip(self, sql_gateway):
        created = await sql_gateway.create_customer(Customer(
            name="Ada", phone="5550100", pickup_date=datetime(2025, 11, 25, 10, tzinfo=timezone.utc)
        ))

        stored = await sql_gateway.get_customer(created.id)
        assert stored.name == "Ada"
        assert stored.balance == Decimal("0")
        assert stored.pickup_date == datetime(2025, 11, 25, 10, tzinfo=timezone.utc)
        assert stored.created_at.tzinfo is not None
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_update_and_delete(self, sql_gateway):
        created = await sql_gateway.create_customer(Customer(name="Ada", phone="5550100"))

        assert await sql_gateway.update_customer(created.id, {"notes": "slim fit"}) is True
        stored = await sql_gateway.get_customer(created.id)
        assert stored.notes == "slim fit"
        assert stored.version == 2

        assert await sql_gateway.update_customer("missing", {"notes": "x"}) is False
        assert await sql_gateway.delete_customer(created.id) is True
        assert await sql_gateway.get_customer(created.id) is None
        assert await sql_gateway.delete_customer(created.id) is False

    @pytest.mark.asyncio
    async def test_lookups(self, sql_gateway):
        ada = await sql_gateway.create_customer(Customer(
            name="Ada", phone="5550100", fitting_date=datetime(2025, 11, 25, 10, tzinfo=timezone.utc)
        ))
        grace = await sql_gateway.create_customer(Customer(name="Grace", phone="5550101"))

        assert [c.id for c in await sql_gateway.list_customers()] == [grace.id, ada.id]
        assert [c.id for c in await sql_gateway.find_customers_by_phone("5550101")] == [grace.id]
        matches = await sql_gateway.find_customers_by_date(
            "fitting_date",
            datetime(2025, 11, 25, tzinfo=timezone.utc),
            datetime(2025, 11, 25, 23, 59, 59, tzinfo=timezone.utc),
        )
        assert [c.id for c in matches] == [ada.id]

    @pytest.mark.asyncio
    async def test_transaction_inserts_order_and_applies_delta(self, sql_gateway):
        customer = await sql_gateway.create_customer(Customer(name="Ada", phone="5550100"))
        reconciler = BalanceReconciler(sql_gateway)

        async def create(txn):
            await reconciler.reconcile_balance(
                customer.id, ReconcileStrategy.ATOMIC_DELTA, delta=Decimal("80"), txn=txn
            )
            return txn.insert_order(Order(
                customer_id=customer.id, item="Suit", measurements={"chest": "40"},
                price=Decimal("100"), deposit=Decimal("20"), balance=Decimal("80"),
            ))

        order = await sql_gateway.transact(create)

        stored = await sql_gateway.get_order(order.id)
        assert stored.measurements == {"chest": "40"}
        assert stored.status == OrderStatus.PENDING
        assert stored.balance == Decimal("80")
        assert (await sql_gateway.get_customer(customer.id)).balance == Decimal("80")

    @pytest.mark.asyncio
    async def test_transaction_unknown_customer(self, sql_gateway):
        reconciler = BalanceReconciler(sql_gateway)
        with pytest.raises(NotFoundError):
            await sql_gateway.transact(lambda txn: reconciler.apply_delta(txn, "missing", Decimal("1")))

    @pytest.mark.asyncio
    async def test_stale_version_is_rejected(self, sql_gateway):
        customer = await sql_gateway.create_customer(Customer(name="Ada", phone="5550100"))

        async def work(txn):
            current = await txn.get_customer(customer.id)
            # A write from outside the transaction lands before commit
            await sql_gateway.update_customer(customer.id, {"balance": Decimal("5")})
            txn.update_customer(customer.id, {"balance": current.balance + Decimal("1")})

        with pytest.raises(TransactionRetryExhaustedError):
            await sql_gateway.transact(work, max_attempts=1)

        assert (await sql_gateway.get_customer(customer.id)).balance == Decimal("5")

    @pytest.mark.asyncio
    async def test_transactional_recompute(self, sql_gateway):
        customer = await sql_gateway.create_customer(Customer(name="Ada", phone="5550100"))

        async def insert(txn):
            txn.insert_order(Order(customer_id=customer.id, item="Suit", balance=Decimal("80")))
            txn.insert_order(Order(customer_id=customer.id, item="Shirt", balance=Decimal("12.50")))

        await sql_gateway.transact(insert)

        total = await BalanceReconciler(sql_gateway).reconcile_balance(
            customer.id, ReconcileStrategy.TRANSACTIONAL_RECOMPUTE
        )

        assert total == Decimal("92.50")
        assert (await sql_gateway.get_customer(customer.id)).balance == Decimal("92.50")

    @pytest.mark.asyncio
    async def test_notifications(self, sql_gateway):
        customer = await sql_gateway.create_customer(Customer(name="Ada", phone="5550100"))
        first = await sql_gateway.record_notification(Notification(
            customer_id=customer.id, sub_type="pickup", message="pickup tomorrow"
        ))
        second = await sql_gateway.record_notification(Notification(
            customer_id=customer.id, sub_type="fitting", message="fitting tomorrow"
        ))

        stored = await sql_gateway.list_notifications(customer.id)

        assert [n.id for n in stored] == [second.id, first.id]
        assert stored[0].type == "reminder"
        assert stored[0].status == "sent"
        assert stored[0].sent_at.tzinfo is not None
        assert await sql_gateway.list_notifications("someone-else") == []


class TestSqlOrderLifecycle:
    """Order lifecycle on the SQL backend"""

    @pytest.mark.asyncio
    async def test_sub_cent_prices_keep_balance_equal_to_orders(self, sql_gateway, notifier, publisher):
        customer = await sql_gateway.create_customer(Customer(name="Ada", phone="5550100"))
        orders = OrderLifecycleManager(sql_gateway, notifier, publisher)

        for _ in range(3):
            await orders.create_order(customer.id, "Button", price="0.005")

        stored = await sql_gateway.list_orders_by_customer(customer.id)
        assert [o.balance for o in stored] == [Decimal("0.01")] * 3
        assert (await sql_gateway.get_customer(customer.id)).balance == Decimal("0.03")
        assert publisher.publish.await_args.args[1]["balance"] == 0.01

    @pytest.mark.asyncio
    async def test_concurrent_creates_keep_balance_consistent(self, sql_gateway, clock, notifier, publisher):
        count = 10
        gateway = SqlAlchemyGateway(sql_gateway.db, max_attempts=count + 2, retry_delay=0, clock=clock)
        customer = await gateway.create_customer(Customer(name="Ada", phone="5550100", balance=Decimal("5")))
        orders = OrderLifecycleManager(gateway, notifier, publisher)

        ids = await asyncio.gather(*[
            orders.create_order(customer.id, f"Shirt {i}", price=12, deposit=2)
            for i in range(count)
        ])

        assert len(set(ids)) == count
        assert len(await gateway.list_orders_by_customer(customer.id)) == count
        assert (await gateway.get_customer(customer.id)).balance == Decimal("105")

    @pytest.mark.asyncio
    async def test_foreign_transaction_is_rejected(self, sql_gateway):
        with pytest.raises(TypeError):
            await sql_gateway._commit(object())
        with pytest.raises(TypeError):
            await sql_gateway._rollback(object())
