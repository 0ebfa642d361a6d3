"""SQLAlchemy models for the carledger REST backend."""
from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, Numeric, String, Text

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(tz=UTC).replace(tzinfo=None)


class TimestampMixin:
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)


class Expense(TimestampMixin, Base):
    __tablename__ = "expenses"

    id: int = Column(Integer, primary_key=True, index=True)
    category: str = Column(String(255), nullable=False, index=True)
    amount: Decimal = Column(Numeric(12, 2), nullable=False)
    description: str = Column(Text, nullable=False)
    date: date = Column(Date, nullable=False, index=True)
    mileage: Optional[int] = Column(Integer, nullable=True)


class FuelRecord(TimestampMixin, Base):
    __tablename__ = "fuel_records"

    id: int = Column(Integer, primary_key=True, index=True)
    date: date = Column(Date, nullable=False, index=True)
    gallons: Decimal = Column(Numeric(8, 2), nullable=False)
    cost: Decimal = Column(Numeric(10, 2), nullable=False)
    mileage: int = Column(Integer, nullable=False)
    gas_station: Optional[str] = Column(String(255), nullable=True)
    price_per_gallon: Decimal = Column(Numeric(8, 2), nullable=False)


class Reminder(TimestampMixin, Base):
    __tablename__ = "reminders"

    id: int = Column(Integer, primary_key=True, index=True)
    type: str = Column(String(255), nullable=False)
    title: str = Column(String(255), nullable=False)
    description: Optional[str] = Column(Text, nullable=True)
    due_date: date = Column(Date, nullable=False, index=True)
    is_completed: bool = Column(Boolean, nullable=False, default=False)
    email_sent: bool = Column(Boolean, nullable=False, default=False)
    mileage_interval: Optional[int] = Column(Integer, nullable=True)
    current_mileage: Optional[int] = Column(Integer, nullable=True)
