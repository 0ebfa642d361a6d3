"""Derived metrics over expenses, fuel records and reminders.

Every function is pure: collections come in, numbers come out, and the
current time is always passed explicitly. Monetary values stay as
:class:`~decimal.Decimal` at full precision; :func:`present` is applied only
when a value leaves the system.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Final

from .entities import FuelRecord, Reminder

ZERO: Final[Decimal] = Decimal("0")
CENT: Final[Decimal] = Decimal("0.01")
EMAIL_WINDOW_DAYS: Final[int] = 7
UPCOMING_WINDOW_DAYS: Final[int] = 30

Predicate = Callable[[Any], bool]

__all__ = [
    "EMAIL_WINDOW_DAYS",
    "UPCOMING_WINDOW_DAYS",
    "ReminderClassification",
    "ReminderStatus",
    "average",
    "classify_reminder",
    "days_until_due",
    "fuel_efficiency",
    "present",
    "sort_chronologically",
    "sum_by_category",
    "time_windowed_sum",
]


class ReminderStatus(Enum):
    """Due-date classification of a reminder."""

    PENDING = "pending"
    OVERDUE = "overdue"
    UPCOMING = "upcoming"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ReminderClassification:
    status: ReminderStatus
    days_until_due: int

    @property
    def needs_notification(self) -> bool:
        return self.status in (ReminderStatus.UPCOMING, ReminderStatus.OVERDUE)


def present(value: Decimal | int | float) -> Decimal:
    """Round ``value`` half-up to two fractional digits for display."""

    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _start_of_day(day: date, now: datetime) -> datetime:
    return datetime.combine(day, time.min, tzinfo=now.tzinfo)


def days_until_due(due_date: date, now: datetime) -> int:
    """Signed number of calendar days from ``now`` to ``due_date``."""

    return (due_date - now.date()).days


def classify_reminder(
    reminder: Reminder,
    now: datetime,
    window_days: int = EMAIL_WINDOW_DAYS,
) -> ReminderClassification:
    """Classify ``reminder`` as completed, overdue, upcoming or pending.

    The due date counts from midnight of that day, so a reminder due today is
    overdue as soon as the day has started. Upcoming means the due date starts
    within ``[now, now + window_days]``.
    """

    days = days_until_due(reminder.due_date, now)
    if reminder.is_completed:
        return ReminderClassification(ReminderStatus.COMPLETED, days)
    due_start = _start_of_day(reminder.due_date, now)
    if due_start < now:
        return ReminderClassification(ReminderStatus.OVERDUE, days)
    if due_start <= now + timedelta(days=window_days):
        return ReminderClassification(ReminderStatus.UPCOMING, days)
    return ReminderClassification(ReminderStatus.PENDING, days)


def sort_chronologically(records: Iterable[Any], field: str = "date") -> list[Any]:
    """Sort ascending by ``field`` with ties broken by id (``None`` ids last)."""

    def key(item: Any) -> tuple[Any, int, int]:
        identifier = getattr(item, "id", None)
        return (getattr(item, field), identifier is None, identifier or 0)

    return sorted(records, key=key)


def fuel_efficiency(records: Iterable[FuelRecord]) -> Decimal:
    """Mean distance per gallon over chronologically adjacent fill-ups.

    Pairs whose odometer did not advance, or whose later fill-up has no
    gallons, are skipped. Returns ``0`` when no pair qualifies, which callers
    must read as "not enough data".
    """

    ordered: Sequence[FuelRecord] = sort_chronologically(records)
    samples: list[Decimal] = []
    for previous, current in zip(ordered, ordered[1:]):
        distance = current.mileage - previous.mileage
        if distance > 0 and current.gallons > 0:
            samples.append(Decimal(distance) / current.gallons)
    if not samples:
        return ZERO
    return sum(samples, ZERO) / len(samples)


def _value(entity: Any, field: str) -> Decimal:
    raw = getattr(entity, field)
    if raw is None:
        return ZERO
    return raw if isinstance(raw, Decimal) else Decimal(str(raw))


def time_windowed_sum(
    entities: Iterable[Any],
    field: str,
    predicate: Predicate | None = None,
) -> Decimal:
    """Sum ``field`` over the entities accepted by ``predicate``."""

    total = ZERO
    for entity in entities:
        if predicate is None or predicate(entity):
            total += _value(entity, field)
    return total


def sum_by_category(
    entities: Iterable[Any],
    field: str = "amount",
    predicate: Predicate | None = None,
) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for entity in entities:
        if predicate is not None and not predicate(entity):
            continue
        totals[entity.category] = totals.get(entity.category, ZERO) + _value(entity, field)
    return totals


def average(
    entities: Iterable[Any],
    field: str,
    predicate: Predicate | None = None,
) -> Decimal:
    """Arithmetic mean of ``field``; ``0`` for an empty selection."""

    total = ZERO
    count = 0
    for entity in entities:
        if predicate is None or predicate(entity):
            total += _value(entity, field)
            count += 1
    if count == 0:
        return ZERO
    return total / count
