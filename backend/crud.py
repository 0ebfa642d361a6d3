"""Entity store for the carledger backend: CRUD, filtered lists and aggregates."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Type, TypeVar

from sqlalchemy import Numeric, Select, func, select, update
from sqlalchemy.orm import Session

from carledger.engine import entities, metrics
from carledger.engine.criteria import Criteria, pending, unsent

from . import models, schemas

PAGE_SIZE = 15

ModelT = TypeVar("ModelT", models.Expense, models.FuelRecord, models.Reminder)

# Date column used for ordering and range filters, per model.
_DATE_COLUMNS: Dict[type, str] = {
    models.Expense: "date",
    models.FuelRecord: "date",
    models.Reminder: "due_date",
}

_AGGREGATES = {"sum": func.sum, "avg": func.avg}

_SNAPSHOTS: Dict[type, Any] = {
    models.Expense: entities.Expense,
    models.FuelRecord: entities.FuelRecord,
    models.Reminder: entities.Reminder,
}


class EntityNotFoundError(RuntimeError):
    """Raised when an entity cannot be located in the database."""


class ValidationFailed(ValueError):
    """Raised when input passes schema validation but breaks a business rule."""

    def __init__(self, errors: Dict[str, List[str]]) -> None:
        super().__init__("; ".join(f"{field}: {', '.join(messages)}" for field, messages in errors.items()))
        self.errors = errors


@dataclass
class PageResult:
    items: List[Any]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))


# ------------------------------------------------------------------------ query helpers


def _apply_criteria(stmt: Select, model: type, criteria: Optional[Criteria]) -> Select:
    if criteria is None:
        return stmt
    if criteria.category is not None:
        stmt = stmt.where(model.category == criteria.category)
    date_column = getattr(model, _DATE_COLUMNS[model])
    if criteria.date_from is not None:
        stmt = stmt.where(date_column >= criteria.date_from)
    if criteria.date_to is not None:
        stmt = stmt.where(date_column <= criteria.date_to)
    if criteria.completed is not None:
        stmt = stmt.where(model.is_completed.is_(criteria.completed))
    if criteria.email_sent is not None:
        stmt = stmt.where(model.email_sent.is_(criteria.email_sent))
    return stmt


def _ordered(model: type, criteria: Optional[Criteria], *, ascending: bool = False) -> Select:
    date_column = getattr(model, _DATE_COLUMNS[model])
    stmt = _apply_criteria(select(model), model, criteria)
    if ascending:
        return stmt.order_by(date_column.asc(), model.id.asc())
    return stmt.order_by(date_column.desc(), model.id.desc())


def list_entities(
    session: Session,
    model: Type[ModelT],
    criteria: Optional[Criteria] = None,
    *,
    ascending: bool = False,
) -> List[ModelT]:
    """Return every row of ``model`` matching ``criteria``, newest first by default."""
    return list(session.scalars(_ordered(model, criteria, ascending=ascending)))


def paginate(
    session: Session,
    model: Type[ModelT],
    criteria: Optional[Criteria] = None,
    page: int = 1,
    per_page: int = PAGE_SIZE,
) -> PageResult:
    page = max(1, page)
    count_stmt = _apply_criteria(select(func.count()).select_from(model), model, criteria)
    total = session.scalar(count_stmt) or 0
    stmt = _ordered(model, criteria).offset((page - 1) * per_page).limit(per_page)
    return PageResult(items=list(session.scalars(stmt)), total=total, page=page, per_page=per_page)


def snapshots(session: Session, model: type, criteria: Optional[Criteria] = None) -> List[Any]:
    """Load rows as immutable engine snapshots, oldest first."""
    factory = _SNAPSHOTS[model]
    return [factory.from_row(row) for row in list_entities(session, model, criteria, ascending=True)]


def aggregate(
    session: Session,
    model: type,
    function: str,
    field: str,
    criteria: Optional[Criteria] = None,
) -> Decimal:
    """Sum or average ``field`` over the matching rows in SQL.

    Empty selections yield zero. Results are Decimals at full precision.
    """
    if function not in _AGGREGATES:
        raise ValueError(f"Unsupported aggregate function: {function}")
    column = getattr(model, field)
    expression = _AGGREGATES[function](column, type_=Numeric(asdecimal=True))
    value = session.scalar(_apply_criteria(select(expression).select_from(model), model, criteria))
    if value is None:
        return metrics.ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _get(session: Session, model: Type[ModelT], entity_id: int, label: str) -> ModelT:
    entity = session.get(model, entity_id)
    if entity is None:
        raise EntityNotFoundError(f"{label} {entity_id} not found")
    return entity


def _create(session: Session, model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    entity = model(**data)
    session.add(entity)
    session.flush()
    session.refresh(entity)
    return entity


def _update(session: Session, entity: ModelT, changes: Dict[str, Any]) -> ModelT:
    for field, value in changes.items():
        setattr(entity, field, value)
    session.flush()
    session.refresh(entity)
    return entity


def _delete(session: Session, entity: Any) -> None:
    session.delete(entity)
    session.flush()


# ----------------------------------------------------------------------------- expenses


def list_expenses(session: Session, criteria: Optional[Criteria] = None) -> List[models.Expense]:
    return list_entities(session, models.Expense, criteria)


def get_expense(session: Session, expense_id: int) -> models.Expense:
    return _get(session, models.Expense, expense_id, "Expense")


def create_expense(session: Session, expense_in: schemas.ExpenseCreate) -> models.Expense:
    return _create(session, models.Expense, expense_in.model_dump())


def update_expense(session: Session, expense_id: int, update_in: schemas.ExpenseUpdate) -> models.Expense:
    expense = get_expense(session, expense_id)
    return _update(session, expense, update_in.model_dump(exclude_unset=True))


def delete_expense(session: Session, expense_id: int) -> None:
    _delete(session, get_expense(session, expense_id))


# ------------------------------------------------------------------------- fuel records


def list_fuel_records(session: Session, criteria: Optional[Criteria] = None) -> List[models.FuelRecord]:
    return list_entities(session, models.FuelRecord, criteria)


def get_fuel_record(session: Session, record_id: int) -> models.FuelRecord:
    return _get(session, models.FuelRecord, record_id, "Fuel record")


def create_fuel_record(session: Session, record_in: schemas.FuelRecordCreate) -> models.FuelRecord:
    return _create(session, models.FuelRecord, record_in.model_dump())


def update_fuel_record(
    session: Session,
    record_id: int,
    update_in: schemas.FuelRecordUpdate,
) -> models.FuelRecord:
    record = get_fuel_record(session, record_id)
    return _update(session, record, update_in.model_dump(exclude_unset=True))


def delete_fuel_record(session: Session, record_id: int) -> None:
    _delete(session, get_fuel_record(session, record_id))


# ---------------------------------------------------------------------------- reminders


def list_reminders(session: Session, criteria: Optional[Criteria] = None) -> List[models.Reminder]:
    return list_entities(session, models.Reminder, criteria)


def get_reminder(session: Session, reminder_id: int) -> models.Reminder:
    return _get(session, models.Reminder, reminder_id, "Reminder")


def create_reminder(session: Session, reminder_in: schemas.ReminderCreate, today: date) -> models.Reminder:
    """Create a reminder; its due date must fall strictly after ``today``."""
    if reminder_in.due_date <= today:
        raise ValidationFailed({"due_date": [f"The due date must be a date after {today.isoformat()}."]})
    return _create(session, models.Reminder, reminder_in.model_dump())


def update_reminder(
    session: Session,
    reminder_id: int,
    update_in: schemas.ReminderUpdate,
) -> models.Reminder:
    # Changing due_date leaves email_sent untouched: a reminder is emailed once.
    reminder = get_reminder(session, reminder_id)
    return _update(session, reminder, update_in.model_dump(exclude_unset=True))


def delete_reminder(session: Session, reminder_id: int) -> None:
    _delete(session, get_reminder(session, reminder_id))


def complete_reminder(session: Session, reminder_id: int) -> models.Reminder:
    """Mark a reminder as completed. Completing it twice is a no-op."""
    reminder = get_reminder(session, reminder_id)
    snapshot = entities.mark_completed(entities.Reminder.from_row(reminder))
    if snapshot.is_completed != reminder.is_completed:
        return _update(session, reminder, {"is_completed": snapshot.is_completed})
    return reminder


def reminders_awaiting_notification(session: Session) -> List[entities.Reminder]:
    """Incomplete reminders whose email has not been sent yet."""
    return snapshots(session, models.Reminder, pending() & unsent())


def mark_email_sent(session: Session, reminder_id: int) -> bool:
    """Flip ``email_sent`` only if it is still false; return whether this call flipped it."""
    stmt = (
        update(models.Reminder)
        .where(models.Reminder.id == reminder_id, models.Reminder.email_sent.is_(False))
        .values(email_sent=True)
        .execution_options(synchronize_session="fetch")
    )
    result = session.execute(stmt)
    return bool(result.rowcount)
