"""FastAPI application exposing the carledger REST API.

Every endpoint answers with the same envelope::

    {"success": true, "data": ..., "message": "..."}

Validation failures return 422 with field-level ``errors``, missing ids return
404 and unexpected failures return 500 with a diagnostic ``error`` string.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from carledger import __version__
from carledger.engine import reporting
from carledger.engine.criteria import by_category
from carledger.engine.logging import setup_logger
from carledger.engine.metrics import UPCOMING_WINDOW_DAYS

from . import crud, database, models, schemas

LOG = setup_logger("carledger.api")

MIN_YEAR, MAX_YEAR = 1, 9999
MAX_UPCOMING_DAYS = 36500


@asynccontextmanager
async def lifespan(_: FastAPI):
    database.init_db()
    yield


app = FastAPI(title="carledger Vehicle Expense API", version=__version__, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_now() -> datetime:
    """Clock dependency; tests override it to pin the current time."""
    return datetime.now()


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return [_dump(item) for item in data]
    return data


def respond(
    message: str,
    data: Any = None,
    status_code: int = status.HTTP_200_OK,
) -> JSONResponse:
    envelope = schemas.Envelope(success=True, message=message, data=_dump(data))
    return JSONResponse(status_code=status_code, content=envelope.render())


def fail(
    message: str,
    status_code: int,
    *,
    errors: Optional[Dict[str, List[str]]] = None,
    error: Optional[str] = None,
) -> JSONResponse:
    envelope = schemas.Envelope(success=False, message=message, errors=errors, error=error)
    return JSONResponse(status_code=status_code, content=envelope.render())


def _page(result: crud.PageResult, read_model: type[BaseModel]) -> schemas.Page:
    return schemas.Page[read_model](  # type: ignore[valid-type]
        current_page=result.page,
        per_page=result.per_page,
        total=result.total,
        last_page=result.last_page,
        data=[read_model.model_validate(item) for item in result.items],
    )


# ------------------------------------------------------------------------ error handlers


def _field_errors(exc: RequestValidationError) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    for item in exc.errors():
        location = [str(part) for part in item.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or "__root__"
        errors.setdefault(field, []).append(item.get("msg", "Invalid value"))
    return errors


@app.exception_handler(RequestValidationError)
async def _handle_request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
    return fail("Validation error", status.HTTP_422_UNPROCESSABLE_ENTITY, errors=_field_errors(exc))


@app.exception_handler(crud.ValidationFailed)
async def _handle_business_validation(_: Request, exc: crud.ValidationFailed) -> JSONResponse:
    return fail("Validation error", status.HTTP_422_UNPROCESSABLE_ENTITY, errors=exc.errors)


@app.exception_handler(crud.EntityNotFoundError)
async def _handle_not_found(_: Request, exc: crud.EntityNotFoundError) -> JSONResponse:
    return fail("Resource not found", status.HTTP_404_NOT_FOUND, error=str(exc))


@app.exception_handler(Exception)
async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    LOG.exception("Unhandled error on %s %s", request.method, request.url.path)
    return fail("Unexpected server error", status.HTTP_500_INTERNAL_SERVER_ERROR, error=str(exc))


# ----------------------------------------------------------------------------- expenses


@app.get("/expenses")
def list_expenses(page: int = Query(1, ge=1), db: Session = Depends(database.get_db)) -> JSONResponse:
    result = crud.paginate(db, models.Expense, page=page)
    return respond("Expenses retrieved successfully", _page(result, schemas.ExpenseRecord))


@app.post("/expenses", status_code=status.HTTP_201_CREATED)
def create_expense(expense_in: schemas.ExpenseCreate, db: Session = Depends(database.get_db)) -> JSONResponse:
    expense = crud.create_expense(db, expense_in)
    return respond(
        "Expense created successfully",
        schemas.ExpenseRecord.model_validate(expense),
        status.HTTP_201_CREATED,
    )


@app.get("/expenses/category/{category}")
def list_expenses_by_category(
    category: str,
    page: int = Query(1, ge=1),
    db: Session = Depends(database.get_db),
) -> JSONResponse:
    result = crud.paginate(db, models.Expense, by_category(category), page=page)
    return respond(f"Expenses in category {category} retrieved successfully", _page(result, schemas.ExpenseRecord))


@app.get("/expenses/monthly/{year}/{month}")
def monthly_expenses(
    year: int,
    month: int,
    db: Session = Depends(database.get_db),
) -> JSONResponse:
    _check_period(year, month)
    summary = reporting.summarize_monthly_expenses(year, month, crud.snapshots(db, models.Expense))
    return respond(
        f"Expenses for {month}/{year} retrieved successfully",
        schemas.MonthlyExpensesRead.model_validate(summary),
    )


@app.get("/expenses/{expense_id}")
def get_expense(expense_id: int, db: Session = Depends(database.get_db)) -> JSONResponse:
    expense = crud.get_expense(db, expense_id)
    return respond("Expense retrieved successfully", schemas.ExpenseRecord.model_validate(expense))


@app.put("/expenses/{expense_id}")
def update_expense(
    expense_id: int,
    update_in: schemas.ExpenseUpdate,
    db: Session = Depends(database.get_db),
) -> JSONResponse:
    expense = crud.update_expense(db, expense_id, update_in)
    return respond("Expense updated successfully", schemas.ExpenseRecord.model_validate(expense))


@app.delete("/expenses/{expense_id}")
def delete_expense(expense_id: int, db: Session = Depends(database.get_db)) -> JSONResponse:
    crud.delete_expense(db, expense_id)
    return respond("Expense deleted successfully")


# ------------------------------------------------------------------------- fuel records


@app.get("/fuel-records")
def list_fuel_records(page: int = Query(1, ge=1), db: Session = Depends(database.get_db)) -> JSONResponse:
    result = crud.paginate(db, models.FuelRecord, page=page)
    return respond("Fuel records retrieved successfully", _page(result, schemas.FuelRecordRecord))


@app.post("/fuel-records", status_code=status.HTTP_201_CREATED)
def create_fuel_record(
    record_in: schemas.FuelRecordCreate,
    db: Session = Depends(database.get_db),
) -> JSONResponse:
    record = crud.create_fuel_record(db, record_in)
    return respond(
        "Fuel record created successfully",
        schemas.FuelRecordRecord.model_validate(record),
        status.HTTP_201_CREATED,
    )


@app.get("/fuel-records/efficiency")
def fuel_efficiency(db: Session = Depends(database.get_db)) -> JSONResponse:
    summary = reporting.summarize_fuel(crud.snapshots(db, models.FuelRecord))
    return respond(
        "Fuel efficiency statistics retrieved successfully",
        schemas.FuelEfficiencyRead.model_validate(summary),
    )


@app.get("/fuel-records/monthly/{year}/{month}")
def monthly_fuel_records(
    year: int,
    month: int,
    db: Session = Depends(database.get_db),
) -> JSONResponse:
    _check_period(year, month)
    summary = reporting.summarize_monthly_fuel(year, month, crud.snapshots(db, models.FuelRecord))
    return respond(
        f"Fuel records for {month}/{year} retrieved successfully",
        schemas.MonthlyFuelRead.model_validate(summary),
    )


@app.get("/fuel-records/{record_id}")
def get_fuel_record(record_id: int, db: Session = Depends(database.get_db)) -> JSONResponse:
    record = crud.get_fuel_record(db, record_id)
    return respond("Fuel record retrieved successfully", schemas.FuelRecordRecord.model_validate(record))


@app.put("/fuel-records/{record_id}")
def update_fuel_record(
    record_id: int,
    update_in: schemas.FuelRecordUpdate,
    db: Session = Depends(database.get_db),
) -> JSONResponse:
    record = crud.update_fuel_record(db, record_id, update_in)
    return respond("Fuel record updated successfully", schemas.FuelRecordRecord.model_validate(record))


@app.delete("/fuel-records/{record_id}")
def delete_fuel_record(record_id: int, db: Session = Depends(database.get_db)) -> JSONResponse:
    crud.delete_fuel_record(db, record_id)
    return respond("Fuel record deleted successfully")


# ---------------------------------------------------------------------------- reminders


@app.get("/reminders")
def list_reminders(page: int = Query(1, ge=1), db: Session = Depends(database.get_db)) -> JSONResponse:
    result = crud.paginate(db, models.Reminder, page=page)
    return respond("Reminders retrieved successfully", _page(result, schemas.ReminderRecord))


@app.post("/reminders", status_code=status.HTTP_201_CREATED)
def create_reminder(
    reminder_in: schemas.ReminderCreate,
    db: Session = Depends(database.get_db),
    now: datetime = Depends(get_now),
) -> JSONResponse:
    reminder = crud.create_reminder(db, reminder_in, today=now.date())
    return respond(
        "Reminder created successfully",
        schemas.ReminderRecord.model_validate(reminder),
        status.HTTP_201_CREATED,
    )


@app.get("/reminders/pending")
def pending_reminders(
    db: Session = Depends(database.get_db),
    now: datetime = Depends(get_now),
) -> JSONResponse:
    overview = reporting.summarize_pending(crud.snapshots(db, models.Reminder), now)
    return respond(
        "Pending reminders retrieved successfully",
        schemas.PendingRemindersRead.model_validate(overview),
    )


@app.get("/reminders/upcoming")
@app.get("/reminders/upcoming/{days}")
def upcoming_reminders(
    days: int = UPCOMING_WINDOW_DAYS,
    db: Session = Depends(database.get_db),
    now: datetime = Depends(get_now),
) -> JSONResponse:
    if not 0 <= days <= MAX_UPCOMING_DAYS:
        raise crud.ValidationFailed({"days": [f"The window must be between 0 and {MAX_UPCOMING_DAYS} days."]})
    selected = reporting.select_upcoming(crud.snapshots(db, models.Reminder), now, days)
    return respond(
        f"Upcoming reminders (next {days} days) retrieved successfully",
        [schemas.ReminderRead.model_validate(item) for item in selected],
    )


@app.get("/reminders/{reminder_id}")
def get_reminder(reminder_id: int, db: Session = Depends(database.get_db)) -> JSONResponse:
    reminder = crud.get_reminder(db, reminder_id)
    return respond("Reminder retrieved successfully", schemas.ReminderRecord.model_validate(reminder))


@app.put("/reminders/{reminder_id}/complete")
def complete_reminder(reminder_id: int, db: Session = Depends(database.get_db)) -> JSONResponse:
    reminder = crud.complete_reminder(db, reminder_id)
    return respond("Reminder marked as completed", schemas.ReminderRecord.model_validate(reminder))


@app.put("/reminders/{reminder_id}")
def update_reminder(
    reminder_id: int,
    update_in: schemas.ReminderUpdate,
    db: Session = Depends(database.get_db),
) -> JSONResponse:
    reminder = crud.update_reminder(db, reminder_id, update_in)
    return respond("Reminder updated successfully", schemas.ReminderRecord.model_validate(reminder))


@app.delete("/reminders/{reminder_id}")
def delete_reminder(reminder_id: int, db: Session = Depends(database.get_db)) -> JSONResponse:
    crud.delete_reminder(db, reminder_id)
    return respond("Reminder deleted successfully")


# ---------------------------------------------------------------------------- dashboard


def _check_period(year: int, month: Optional[int] = None) -> None:
    errors: Dict[str, List[str]] = {}
    if not MIN_YEAR <= year <= MAX_YEAR:
        errors["year"] = [f"The year must be between {MIN_YEAR} and {MAX_YEAR}."]
    if month is not None and not 1 <= month <= 12:
        errors["month"] = ["The month must be between 1 and 12."]
    if errors:
        raise crud.ValidationFailed(errors)


@app.get("/dashboard")
def dashboard(
    db: Session = Depends(database.get_db),
    now: datetime = Depends(get_now),
) -> JSONResponse:
    snapshot = reporting.build_dashboard(
        crud.snapshots(db, models.Expense),
        crud.snapshots(db, models.FuelRecord),
        crud.snapshots(db, models.Reminder),
        now,
    )
    return respond("Dashboard data retrieved successfully", schemas.DashboardRead.model_validate(snapshot))


@app.get("/dashboard/monthly-report/{year}/{month}")
def monthly_report(year: int, month: int, db: Session = Depends(database.get_db)) -> JSONResponse:
    _check_period(year, month)
    report = reporting.build_monthly_report(
        year,
        month,
        crud.snapshots(db, models.Expense),
        crud.snapshots(db, models.FuelRecord),
        crud.snapshots(db, models.Reminder),
    )
    return respond(
        f"Monthly report for {month}/{year} generated successfully",
        schemas.MonthlyReportRead.model_validate(report),
    )


@app.get("/dashboard/yearly-report/{year}")
def yearly_report(year: int, db: Session = Depends(database.get_db)) -> JSONResponse:
    _check_period(year)
    report = reporting.build_yearly_report(
        year,
        crud.snapshots(db, models.Expense),
        crud.snapshots(db, models.FuelRecord),
        crud.snapshots(db, models.Reminder),
    )
    return respond(
        f"Yearly report for {year} generated successfully",
        schemas.YearlyReportRead.model_validate(report),
    )


@app.get("/health", tags=["system"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
