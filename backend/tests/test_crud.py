from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from backend import crud, models, schemas
from carledger.engine.criteria import by_category, in_month, pending


def _expense(session, category="Combustible", amount="10.00", day=date(2024, 3, 1), description="Item"):
    return crud.create_expense(
        session,
        schemas.ExpenseCreate(category=category, amount=Decimal(amount), description=description, date=day),
    )


def _fuel(session, day, mileage, gallons="10.00", cost="35.00"):
    return crud.create_fuel_record(
        session,
        schemas.FuelRecordCreate(
            date=day,
            gallons=Decimal(gallons),
            cost=Decimal(cost),
            mileage=mileage,
            price_per_gallon=Decimal("3.50"),
        ),
    )


def _reminder(session, title="Oil change", due=date(2024, 4, 1), today=date(2024, 3, 15)):
    return crud.create_reminder(
        session,
        schemas.ReminderCreate(type="maintenance", title=title, due_date=due),
        today=today,
    )


def test_create_expense_keeps_two_decimal_amount(db_session):
    expense = _expense(db_session, amount="45.10")
    assert expense.id is not None
    assert expense.amount == Decimal("45.10")
    assert expense.created_at is not None


def test_timestamps_come_from_the_mixin(db_session):
    expense = _expense(db_session)
    assert "created_at" in models.Expense.__table__.c
    assert "updated_at" in models.Reminder.__table__.c
    assert expense.updated_at is not None
    updated = crud.update_expense(db_session, expense.id, schemas.ExpenseUpdate(description="Wash"))
    assert updated.updated_at >= updated.created_at


def test_get_missing_expense_raises(db_session):
    with pytest.raises(crud.EntityNotFoundError):
        crud.get_expense(db_session, 999)


def test_partial_update_only_touches_sent_fields(db_session):
    expense = _expense(db_session, description="Car wash")
    updated = crud.update_expense(db_session, expense.id, schemas.ExpenseUpdate(amount=Decimal("12.50")))
    assert updated.amount == Decimal("12.50")
    assert updated.description == "Car wash"
    assert updated.category == "Combustible"


def test_delete_expense(db_session):
    expense = _expense(db_session)
    crud.delete_expense(db_session, expense.id)
    with pytest.raises(crud.EntityNotFoundError):
        crud.get_expense(db_session, expense.id)


def test_list_expenses_filters_by_category_and_month(db_session):
    _expense(db_session, category="Combustible", day=date(2024, 3, 1))
    _expense(db_session, category="Mantenimiento", day=date(2024, 3, 20))
    _expense(db_session, category="Combustible", day=date(2024, 4, 2))

    fuel = crud.list_expenses(db_session, by_category("Combustible"))
    assert [item.date for item in fuel] == [date(2024, 4, 2), date(2024, 3, 1)]

    march = crud.list_expenses(db_session, in_month(2024, 3))
    assert {item.category for item in march} == {"Combustible", "Mantenimiento"}

    both = crud.list_expenses(db_session, by_category("Combustible") & in_month(2024, 3))
    assert len(both) == 1


def test_paginate_returns_fifteen_per_page_newest_first(db_session):
    for day in range(1, 21):
        _expense(db_session, day=date(2024, 1, day))

    first = crud.paginate(db_session, models.Expense)
    assert first.total == 20
    assert first.per_page == crud.PAGE_SIZE == 15
    assert first.last_page == 2
    assert len(first.items) == 15
    assert first.items[0].date == date(2024, 1, 20)

    second = crud.paginate(db_session, models.Expense, page=2)
    assert len(second.items) == 5
    assert second.items[-1].date == date(2024, 1, 1)


def test_paginate_empty_table_has_one_page(db_session):
    result = crud.paginate(db_session, models.FuelRecord)
    assert result.total == 0
    assert result.last_page == 1
    assert result.items == []


def test_aggregate_sum_and_average(db_session):
    _expense(db_session, amount="10.00")
    _expense(db_session, amount="20.50")
    assert crud.aggregate(db_session, models.Expense, "sum", "amount") == Decimal("30.50")
    assert crud.aggregate(db_session, models.Expense, "avg", "amount") == Decimal("15.25")
    with pytest.raises(ValueError):
        crud.aggregate(db_session, models.Expense, "max", "amount")


def test_aggregate_honours_criteria_and_empty_selection(db_session):
    _expense(db_session, category="Combustible", amount="40.00", day=date(2024, 3, 1))
    _expense(db_session, category="Mantenimiento", amount="120.00", day=date(2024, 3, 20))
    _expense(db_session, category="Combustible", amount="25.00", day=date(2024, 4, 2))

    march_fuel = by_category("Combustible") & in_month(2024, 3)
    assert crud.aggregate(db_session, models.Expense, "sum", "amount", march_fuel) == Decimal("40.00")
    assert crud.aggregate(db_session, models.Expense, "avg", "amount", by_category("Combustible")) == Decimal("32.50")

    empty = in_month(2023, 1)
    assert crud.aggregate(db_session, models.Expense, "sum", "amount", empty) == Decimal("0")
    assert crud.aggregate(db_session, models.Expense, "avg", "amount", empty) == Decimal("0")
    assert isinstance(crud.aggregate(db_session, models.FuelRecord, "sum", "gallons"), Decimal)


def test_snapshots_are_oldest_first(db_session):
    _fuel(db_session, date(2024, 2, 1), 1300)
    _fuel(db_session, date(2024, 1, 1), 1000)
    records = crud.snapshots(db_session, models.FuelRecord)
    assert [record.mileage for record in records] == [1000, 1300]
    assert [record.mileage for record in crud.list_fuel_records(db_session)] == [1300, 1000]


def test_create_reminder_requires_future_due_date(db_session):
    with pytest.raises(crud.ValidationFailed) as excinfo:
        _reminder(db_session, due=date(2024, 3, 15), today=date(2024, 3, 15))
    assert "due_date" in excinfo.value.errors

    reminder = _reminder(db_session, due=date(2024, 3, 16), today=date(2024, 3, 15))
    assert reminder.is_completed is False
    assert reminder.email_sent is False


def test_complete_reminder_is_idempotent(db_session):
    reminder = _reminder(db_session)
    first = crud.complete_reminder(db_session, reminder.id)
    second = crud.complete_reminder(db_session, reminder.id)
    assert first.is_completed is True
    assert second.is_completed is True
    assert crud.list_reminders(db_session, pending()) == []


def test_updating_due_date_does_not_rearm_email(db_session):
    reminder = _reminder(db_session)
    assert crud.mark_email_sent(db_session, reminder.id) is True
    updated = crud.update_reminder(db_session, reminder.id, schemas.ReminderUpdate(due_date=date(2024, 5, 1)))
    assert updated.email_sent is True
    assert updated.due_date == date(2024, 5, 1)


def test_mark_email_sent_is_compare_and_set(db_session):
    reminder = _reminder(db_session)
    assert crud.mark_email_sent(db_session, reminder.id) is True
    assert crud.mark_email_sent(db_session, reminder.id) is False
    assert crud.get_reminder(db_session, reminder.id).email_sent is True


def test_reminders_awaiting_notification_skip_completed_and_sent(db_session):
    waiting = _reminder(db_session, title="Tires")
    done = _reminder(db_session, title="Brakes")
    sent = _reminder(db_session, title="Filter")
    crud.complete_reminder(db_session, done.id)
    crud.mark_email_sent(db_session, sent.id)

    awaiting = crud.reminders_awaiting_notification(db_session)
    assert [item.id for item in awaiting] == [waiting.id]
