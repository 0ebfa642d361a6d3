"""Dashboard and periodic report builders.

The builders receive whole entity collections and filter them with
:mod:`carledger.engine.criteria`, so the same code runs against the store's
snapshots and against hand-built fixtures in tests.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Final

from dateutil.relativedelta import relativedelta

from .criteria import by_category, in_month, in_year, pending
from .entities import Expense, FuelRecord, Reminder
from .metrics import (
    EMAIL_WINDOW_DAYS,
    UPCOMING_WINDOW_DAYS,
    ZERO,
    ReminderStatus,
    average,
    classify_reminder,
    fuel_efficiency,
    sort_chronologically,
    sum_by_category,
    time_windowed_sum,
)

FUEL_CATEGORY: Final[str] = "Combustible"
MAINTENANCE_CATEGORY: Final[str] = "Mantenimiento"
RECENT_LIMIT: Final[int] = 5
TREND_MONTHS: Final[int] = 6
MONTH_NAMES: Final[tuple[str, ...]] = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

__all__ = [
    "FUEL_CATEGORY",
    "MAINTENANCE_CATEGORY",
    "DashboardSnapshot",
    "FuelSummary",
    "MonthlyExpenseSummary",
    "MonthlyFuelSummary",
    "MonthlyReport",
    "MonthlyTotal",
    "PendingOverview",
    "YearlyReport",
    "build_dashboard",
    "build_monthly_report",
    "build_yearly_report",
    "most_recent",
    "select_upcoming",
    "summarize_fuel",
    "summarize_monthly_expenses",
    "summarize_monthly_fuel",
    "summarize_pending",
    "trailing_months",
]


@dataclass(frozen=True)
class MonthlyTotal:
    year: int
    month: int
    label: str
    amount: Decimal


@dataclass(frozen=True)
class DashboardSnapshot:
    total_expenses: Decimal
    monthly_expenses: Decimal
    fuel_expenses: Decimal
    maintenance_expenses: Decimal
    pending_reminders: int
    overdue_reminders: int
    recent_fuel_records: list[FuelRecord]
    recent_expenses: list[Expense]
    fuel_efficiency: Decimal
    average_cost_per_gallon: Decimal
    expenses_by_category: dict[str, Decimal]
    monthly_trend: list[MonthlyTotal]


@dataclass(frozen=True)
class ExpenseSection:
    total: Decimal
    count: int
    by_category: dict[str, Decimal]
    details: list[Expense]


@dataclass(frozen=True)
class FuelSection:
    total_cost: Decimal
    total_gallons: Decimal
    average_price: Decimal
    records_count: int
    details: list[FuelRecord]


@dataclass(frozen=True)
class ReminderSection:
    total: int
    completed: int
    pending: int
    details: list[Reminder]


@dataclass(frozen=True)
class MonthlyReport:
    year: int
    month: int
    period: str
    expenses: ExpenseSection
    fuel: FuelSection
    reminders: ReminderSection


@dataclass(frozen=True)
class YearlySummary:
    total_expenses: Decimal
    total_fuel_cost: Decimal
    total_gallons: Decimal
    average_monthly_expense: Decimal
    fuel_efficiency: Decimal


@dataclass(frozen=True)
class YearlyReport:
    year: int
    summary: YearlySummary
    monthly_expenses: list[MonthlyTotal]
    expenses_by_category: dict[str, Decimal]
    reminders: ReminderSection


@dataclass(frozen=True)
class FuelSummary:
    efficiency: Decimal
    records: list[FuelRecord]
    average_cost_per_gallon: Decimal
    total_spent: Decimal
    total_gallons: Decimal
    records_count: int


@dataclass(frozen=True)
class MonthlyExpenseSummary:
    expenses: list[Expense]
    total: Decimal
    category_totals: dict[str, Decimal]
    count: int


@dataclass(frozen=True)
class MonthlyFuelSummary:
    records: list[FuelRecord]
    total: Decimal
    total_gallons: Decimal
    average_price: Decimal
    count: int


@dataclass(frozen=True)
class PendingOverview:
    reminders: list[Reminder]
    overdue_count: int
    upcoming_count: int
    total_pending: int


def most_recent(entities: Sequence[object], limit: int | None = None, field: str = "date") -> list:
    """Order newest first by ``field``, ties broken by the highest id."""

    ordered = list(reversed(sort_chronologically(entities, field)))
    return ordered if limit is None else ordered[:limit]


def trailing_months(now: datetime | date, count: int = TREND_MONTHS) -> list[tuple[int, int]]:
    """``count`` (year, month) pairs ending with the month of ``now``, oldest first."""

    anchor = date(now.year, now.month, 1)
    months = []
    for offset in range(count - 1, -1, -1):
        point = anchor - relativedelta(months=offset)
        months.append((point.year, point.month))
    return months


def _month_label(year: int, month: int) -> str:
    return f"{MONTH_NAMES[month - 1]} {year}"


def _reminder_section(reminders: Sequence[Reminder]) -> ReminderSection:
    completed = sum(1 for reminder in reminders if reminder.is_completed)
    return ReminderSection(
        total=len(reminders),
        completed=completed,
        pending=len(reminders) - completed,
        details=list(reminders),
    )


def _fuel_average_price(total_cost: Decimal, total_gallons: Decimal) -> Decimal:
    if total_gallons <= 0:
        return ZERO
    return total_cost / total_gallons


def build_dashboard(
    expenses: Sequence[Expense],
    fuel_records: Sequence[FuelRecord],
    reminders: Sequence[Reminder],
    now: datetime,
) -> DashboardSnapshot:
    overdue = 0
    incomplete = pending()
    for reminder in reminders:
        if classify_reminder(reminder, now).status is ReminderStatus.OVERDUE:
            overdue += 1
    trend = [
        MonthlyTotal(
            year=year,
            month=month,
            label=_month_label(year, month),
            amount=time_windowed_sum(expenses, "amount", in_month(year, month)),
        )
        for year, month in trailing_months(now)
    ]
    return DashboardSnapshot(
        total_expenses=time_windowed_sum(expenses, "amount"),
        monthly_expenses=time_windowed_sum(expenses, "amount", in_month(now.year, now.month)),
        fuel_expenses=time_windowed_sum(expenses, "amount", by_category(FUEL_CATEGORY)),
        maintenance_expenses=time_windowed_sum(expenses, "amount", by_category(MAINTENANCE_CATEGORY)),
        pending_reminders=sum(1 for reminder in reminders if incomplete(reminder)),
        overdue_reminders=overdue,
        recent_fuel_records=most_recent(fuel_records, RECENT_LIMIT),
        recent_expenses=most_recent(expenses, RECENT_LIMIT),
        fuel_efficiency=fuel_efficiency(fuel_records),
        average_cost_per_gallon=average(fuel_records, "price_per_gallon"),
        expenses_by_category=sum_by_category(expenses),
        monthly_trend=trend,
    )


def build_monthly_report(
    year: int,
    month: int,
    expenses: Sequence[Expense],
    fuel_records: Sequence[FuelRecord],
    reminders: Sequence[Reminder],
) -> MonthlyReport:
    window = in_month(year, month)
    month_expenses = most_recent([item for item in expenses if window(item)])
    month_fuel = most_recent([item for item in fuel_records if window(item)])
    due_window = window.on("due_date")
    month_reminders = sort_chronologically([item for item in reminders if due_window(item)], "due_date")

    total_cost = time_windowed_sum(month_fuel, "cost")
    total_gallons = time_windowed_sum(month_fuel, "gallons")
    return MonthlyReport(
        year=year,
        month=month,
        period=f"{month}/{year}",
        expenses=ExpenseSection(
            total=time_windowed_sum(month_expenses, "amount"),
            count=len(month_expenses),
            by_category=sum_by_category(month_expenses),
            details=month_expenses,
        ),
        fuel=FuelSection(
            total_cost=total_cost,
            total_gallons=total_gallons,
            average_price=_fuel_average_price(total_cost, total_gallons),
            records_count=len(month_fuel),
            details=month_fuel,
        ),
        reminders=_reminder_section(month_reminders),
    )


def build_yearly_report(
    year: int,
    expenses: Sequence[Expense],
    fuel_records: Sequence[FuelRecord],
    reminders: Sequence[Reminder],
) -> YearlyReport:
    """Build the yearly report.

    ``fuel_efficiency`` is computed over every fuel record, not just the
    requested year, matching the dashboard figure.
    """

    window = in_year(year)
    year_expenses = [item for item in expenses if window(item)]
    year_fuel = [item for item in fuel_records if window(item)]
    due_window = window.on("due_date")
    year_reminders = sort_chronologically([item for item in reminders if due_window(item)], "due_date")

    total_expenses = time_windowed_sum(year_expenses, "amount")
    monthly = [
        MonthlyTotal(
            year=year,
            month=month,
            label=MONTH_NAMES[month - 1],
            amount=time_windowed_sum(year_expenses, "amount", in_month(year, month)),
        )
        for month in range(1, 13)
    ]
    by_category = sorted(
        sum_by_category(year_expenses).items(),
        key=lambda item: (-item[1], item[0]),
    )
    return YearlyReport(
        year=year,
        summary=YearlySummary(
            total_expenses=total_expenses,
            total_fuel_cost=time_windowed_sum(year_fuel, "cost"),
            total_gallons=time_windowed_sum(year_fuel, "gallons"),
            average_monthly_expense=total_expenses / 12,
            fuel_efficiency=fuel_efficiency(fuel_records),
        ),
        monthly_expenses=monthly,
        expenses_by_category=dict(by_category),
        reminders=_reminder_section(year_reminders),
    )


def summarize_fuel(fuel_records: Sequence[FuelRecord]) -> FuelSummary:
    return FuelSummary(
        efficiency=fuel_efficiency(fuel_records),
        records=sort_chronologically(fuel_records),
        average_cost_per_gallon=average(fuel_records, "price_per_gallon"),
        total_spent=time_windowed_sum(fuel_records, "cost"),
        total_gallons=time_windowed_sum(fuel_records, "gallons"),
        records_count=len(fuel_records),
    )


def summarize_monthly_expenses(year: int, month: int, expenses: Sequence[Expense]) -> MonthlyExpenseSummary:
    window = in_month(year, month)
    selected = most_recent([item for item in expenses if window(item)])
    return MonthlyExpenseSummary(
        expenses=selected,
        total=time_windowed_sum(selected, "amount"),
        category_totals=sum_by_category(selected),
        count=len(selected),
    )


def summarize_monthly_fuel(year: int, month: int, fuel_records: Sequence[FuelRecord]) -> MonthlyFuelSummary:
    window = in_month(year, month)
    selected = most_recent([item for item in fuel_records if window(item)])
    return MonthlyFuelSummary(
        records=selected,
        total=time_windowed_sum(selected, "cost"),
        total_gallons=time_windowed_sum(selected, "gallons"),
        average_price=average(selected, "price_per_gallon"),
        count=len(selected),
    )


def select_upcoming(
    reminders: Sequence[Reminder],
    now: datetime,
    days: int = UPCOMING_WINDOW_DAYS,
) -> list[Reminder]:
    """Reminders classified as upcoming within ``days``, soonest first."""

    selected = [
        reminder
        for reminder in reminders
        if classify_reminder(reminder, now, days).status is ReminderStatus.UPCOMING
    ]
    return sort_chronologically(selected, "due_date")


def summarize_pending(reminders: Sequence[Reminder], now: datetime) -> PendingOverview:
    incomplete = pending()
    open_reminders = sort_chronologically([item for item in reminders if incomplete(item)], "due_date")
    overdue = sum(
        1 for item in open_reminders if classify_reminder(item, now).status is ReminderStatus.OVERDUE
    )
    return PendingOverview(
        reminders=open_reminders,
        overdue_count=overdue,
        upcoming_count=len(select_upcoming(open_reminders, now, EMAIL_WINDOW_DAYS)),
        total_pending=len(open_reminders),
    )
