"""Filter predicates shared by the metrics engine and the entity store.

A :class:`Criteria` is a plain value. The engine calls it as a predicate over
snapshots, while :mod:`backend.crud` turns the same value into SQL clauses, so
both sides agree on what "in March 2026" or "pending" means.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, fields
from datetime import date
from typing import Any


class CriteriaConflictError(ValueError):
    """Raised when two criteria cannot be combined into one."""


@dataclass(frozen=True)
class Criteria:
    """Conjunction of optional equality and inclusive date-range conditions.

    Attributes:
      category: Exact category match.
      date_from: Earliest accepted date, inclusive.
      date_to: Latest accepted date, inclusive.
      completed: Required value of ``is_completed``.
      email_sent: Required value of ``email_sent``.
      date_field: Name of the date attribute to test (``date`` or ``due_date``).
    """

    category: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    completed: bool | None = None
    email_sent: bool | None = None
    date_field: str = "date"

    def __call__(self, entity: Any) -> bool:
        return self.matches(entity)

    def matches(self, entity: Any) -> bool:
        if self.category is not None and entity.category != self.category:
            return False
        if self.date_from is not None or self.date_to is not None:
            value = getattr(entity, self.date_field)
            if self.date_from is not None and value < self.date_from:
                return False
            if self.date_to is not None and value > self.date_to:
                return False
        if self.completed is not None and bool(entity.is_completed) != self.completed:
            return False
        if self.email_sent is not None and bool(entity.email_sent) != self.email_sent:
            return False
        return True

    def on(self, date_field: str) -> "Criteria":
        """Return a copy testing ``date_field`` instead of the current date attribute."""

        return Criteria(
            category=self.category,
            date_from=self.date_from,
            date_to=self.date_to,
            completed=self.completed,
            email_sent=self.email_sent,
            date_field=date_field,
        )

    def __and__(self, other: "Criteria") -> "Criteria":
        if not isinstance(other, Criteria):
            return NotImplemented
        if self.date_field != other.date_field and _has_range(self) and _has_range(other):
            raise CriteriaConflictError("cannot combine date ranges on different fields")
        merged: dict[str, Any] = {}
        for item in fields(self):
            name = item.name
            if name in ("date_from", "date_to", "date_field"):
                continue
            mine, theirs = getattr(self, name), getattr(other, name)
            if mine is not None and theirs is not None and mine != theirs:
                raise CriteriaConflictError(f"conflicting values for {name}: {mine!r} != {theirs!r}")
            merged[name] = mine if mine is not None else theirs
        merged["date_from"] = _latest(self.date_from, other.date_from)
        merged["date_to"] = _earliest(self.date_to, other.date_to)
        merged["date_field"] = self.date_field if _has_range(self) else other.date_field
        return Criteria(**merged)


def _has_range(criteria: Criteria) -> bool:
    return criteria.date_from is not None or criteria.date_to is not None


def _latest(first: date | None, second: date | None) -> date | None:
    if first is None:
        return second
    if second is None:
        return first
    return max(first, second)


def _earliest(first: date | None, second: date | None) -> date | None:
    if first is None:
        return second
    if second is None:
        return first
    return min(first, second)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return the first and last calendar day of ``year``/``month``."""

    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1..12, got {month}")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def by_category(category: str) -> Criteria:
    return Criteria(category=category)


def in_month(year: int, month: int, field: str = "date") -> Criteria:
    start, end = month_bounds(year, month)
    return Criteria(date_from=start, date_to=end, date_field=field)


def in_year(year: int, field: str = "date") -> Criteria:
    return Criteria(date_from=date(year, 1, 1), date_to=date(year, 12, 31), date_field=field)


def between(start: date | None, end: date | None, field: str = "date") -> Criteria:
    if start is not None and end is not None and start > end:
        raise ValueError("start must not be after end")
    return Criteria(date_from=start, date_to=end, date_field=field)


def pending() -> Criteria:
    """Reminders that are not completed, whatever their due date."""

    return Criteria(completed=False)


def completed() -> Criteria:
    return Criteria(completed=True)


def unsent() -> Criteria:
    return Criteria(email_sent=False)


__all__ = [
    "Criteria",
    "CriteriaConflictError",
    "between",
    "by_category",
    "completed",
    "in_month",
    "in_year",
    "month_bounds",
    "pending",
    "unsent",
]
