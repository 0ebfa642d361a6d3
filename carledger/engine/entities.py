"""Immutable snapshots of the tracked entities.

The metrics and reporting code never touches ORM rows directly: the store
converts each row with ``from_row`` and the engine works on these frozen
dataclasses. Changes produce new snapshots through :func:`dataclasses.replace`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any


def _decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _require_non_negative(name: str, value: Decimal | int | None) -> None:
    if value is not None and value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")


@dataclass(frozen=True)
class Expense:
    """General vehicle expense such as insurance, parts or a car wash."""

    id: int | None
    category: str
    amount: Decimal
    description: str
    date: date
    mileage: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", _decimal(self.amount))
        _require_non_negative("amount", self.amount)
        _require_non_negative("mileage", self.mileage)

    @classmethod
    def from_row(cls, row: Any) -> "Expense":
        return cls(
            id=row.id,
            category=row.category,
            amount=row.amount,
            description=row.description,
            date=row.date,
            mileage=row.mileage,
        )


@dataclass(frozen=True)
class FuelRecord:
    """Fill-up at a gas station with the odometer reading at that moment."""

    id: int | None
    date: date
    gallons: Decimal
    cost: Decimal
    mileage: int
    price_per_gallon: Decimal
    gas_station: str | None = None

    def __post_init__(self) -> None:
        for name in ("gallons", "cost", "price_per_gallon"):
            object.__setattr__(self, name, _decimal(getattr(self, name)))
            _require_non_negative(name, getattr(self, name))
        _require_non_negative("mileage", self.mileage)

    @classmethod
    def from_row(cls, row: Any) -> "FuelRecord":
        return cls(
            id=row.id,
            date=row.date,
            gallons=row.gallons,
            cost=row.cost,
            mileage=row.mileage,
            price_per_gallon=row.price_per_gallon,
            gas_station=row.gas_station,
        )


@dataclass(frozen=True)
class Reminder:
    """Maintenance reminder with independent completion and notification flags."""

    id: int | None
    type: str
    title: str
    due_date: date
    description: str | None = None
    is_completed: bool = False
    email_sent: bool = False
    mileage_interval: int | None = None
    current_mileage: int | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Reminder":
        return cls(
            id=row.id,
            type=row.type,
            title=row.title,
            due_date=row.due_date,
            description=row.description,
            is_completed=bool(row.is_completed),
            email_sent=bool(row.email_sent),
            mileage_interval=row.mileage_interval,
            current_mileage=row.current_mileage,
        )


def mark_completed(reminder: Reminder) -> Reminder:
    """Return ``reminder`` flagged as completed; completed reminders come back unchanged."""

    if reminder.is_completed:
        return reminder
    return replace(reminder, is_completed=True)


def mark_email_sent(reminder: Reminder) -> Reminder:
    if reminder.email_sent:
        return reminder
    return replace(reminder, email_sent=True)


__all__ = ["Expense", "FuelRecord", "Reminder", "mark_completed", "mark_email_sent"]
