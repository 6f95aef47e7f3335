"""
Service layer for customer and order management.

This module contains:
- Persistence gateways (SQLAlchemy and in-memory) with optimistic transactions
- Balance reconciliation between customers and their orders
- Order lifecycle, customer records and reminders
"""

import logging
from typing import Optional

from ..config import Settings, get_database_url, get_settings
from .gateway import PersistenceGateway, Transaction

logger = logging.getLogger(__name__)


async def create_gateway(settings: Optional[Settings] = None) -> PersistenceGateway:
    """Build the configured gateway. Called once at process start."""
    settings = settings or get_settings()
    options = {
        "max_attempts": settings.TRANSACTION_MAX_ATTEMPTS,
        "retry_delay": settings.TRANSACTION_RETRY_DELAY,
    }

    if settings.STORAGE_BACKEND == "memory":
        from .memory_gateway import InMemoryGateway
        logger.warning("⚠️ Using in-memory storage (development only)")
        return InMemoryGateway(**options)

    from .database import DatabaseManager
    from .sql_gateway import SqlAlchemyGateway

    db = DatabaseManager(get_database_url(settings))
    db.initialize()
    await db.create_tables()
    logger.info("🚀 Using SQL storage backend")
    return SqlAlchemyGateway(db, **options)


__all__ = ["PersistenceGateway", "Transaction", "create_gateway"]
