"""
Database tables for customers and orders
"""

from sqlalchemy import JSON, Column, DateTime, Enum as SQLEnum, Integer, Numeric, String, Text
from sqlalchemy.orm import declarative_base

from ..models import OrderStatus

Base = declarative_base()


class CustomerRow(Base):
    __tablename__ = "customers"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=False, index=True)
    address = Column(Text, nullable=False, default="")
    pickup_date = Column(DateTime(timezone=True), nullable=True, index=True)
    fitting_date = Column(DateTime(timezone=True), nullable=True, index=True)
    notes = Column(Text, nullable=False, default="")
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class OrderRow(Base):
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True)
    # Plain reference: deleting a customer leaves its orders in place
    customer_id = Column(String(64), nullable=False, index=True)
    item = Column(String(255), nullable=False)
    measurements = Column(JSON, nullable=False, default=dict)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    deposit = Column(Numeric(12, 2), nullable=False, default=0)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(SQLEnum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    pickup_date = Column(DateTime(timezone=True), nullable=True)
    fitting_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=False, default="")
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class NotificationRow(Base):
    __tablename__ = "notifications"

    id = Column(String(64), primary_key=True)
    customer_id = Column(String(64), nullable=False, index=True)
    type = Column(String(32), nullable=False, default="reminder")
    sub_type = Column(String(32), nullable=False, default="")
    message = Column(Text, nullable=False)
    status = Column(String(32), nullable=False, default="sent")
    sent_at = Column(DateTime(timezone=True), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
