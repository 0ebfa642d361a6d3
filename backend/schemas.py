"""Pydantic schemas for validating and serialising carledger data."""

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, ClassVar, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, model_validator

from carledger.engine.metrics import present

# Decimals keep full precision internally and are rounded half-up to two
# digits only when rendered to JSON, e.g. ``"45.10"``.
Money = Annotated[
    Decimal,
    PlainSerializer(lambda value: str(present(value)), return_type=str, when_used="json"),
]

T = TypeVar("T")


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class PartialUpdate(BaseModel):
    """Base class for PUT payloads where any subset of fields may be sent.

    Fields listed in ``required_fields`` may be omitted but not set to null.
    """

    required_fields: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _reject_null_required(self) -> "PartialUpdate":
        for name in self.required_fields:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} may not be null")
        return self


# --------------------------------------------------------------------------- expenses


class ExpenseBase(BaseModel):
    category: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    description: str = Field(..., min_length=1)
    date: date
    mileage: Optional[int] = Field(None, ge=0)


class ExpenseCreate(ExpenseBase):
    pass


class ExpenseUpdate(PartialUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("category", "amount", "description", "date")

    category: Optional[str] = Field(None, min_length=1, max_length=255)
    amount: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    description: Optional[str] = Field(None, min_length=1)
    date: Optional[dt.date] = None
    mileage: Optional[int] = Field(None, ge=0)


class ExpenseRead(ORMModel):
    id: Optional[int] = None
    category: str
    amount: Money
    description: str
    date: date
    mileage: Optional[int] = None


class ExpenseRecord(ExpenseRead):
    created_at: datetime
    updated_at: datetime


# ----------------------------------------------------------------------- fuel records


class FuelRecordBase(BaseModel):
    date: date
    gallons: Decimal = Field(..., ge=0, max_digits=8, decimal_places=2)
    cost: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    mileage: int = Field(..., ge=0)
    gas_station: Optional[str] = Field(None, max_length=255)
    price_per_gallon: Decimal = Field(..., ge=0, max_digits=8, decimal_places=2)


class FuelRecordCreate(FuelRecordBase):
    pass


class FuelRecordUpdate(PartialUpdate):
    required_fields: ClassVar[tuple[str, ...]] = ("date", "gallons", "cost", "mileage", "price_per_gallon")

    date: Optional[dt.date] = None
    gallons: Optional[Decimal] = Field(None, ge=0, max_digits=8, decimal_places=2)
    cost: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    mileage: Optional[int] = Field(None, ge=0)
    gas_station: Optional[str] = Field(None, max_length=255)
    price_per_gallon: Optional[Decimal] = Field(None, ge=0, max_digits=8, decimal_places=2)


class FuelRecordRead(ORMModel):
    id: Optional[int] = None
    date: date
    gallons: Money
    cost: Money
    mileage: int
    gas_station: Optional[str] = None
    price_per_gallon: Money


class FuelRecordRecord(FuelRecordRead):
    created_at: datetime
    updated_at: datetime


# -------------------------------------------------------------------------- reminders


class ReminderCreate(BaseModel):
    type: str = Field(..., min_length=1, max_length=255)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: date
    mileage_interval: Optional[int] = Field(None, ge=1)
    current_mileage: Optional[int] = Field(None, ge=0)


class ReminderUpdate(PartialUpdate):
    """Partial reminder update; completion goes through ``PUT /reminders/{id}/complete``."""

    required_fields: ClassVar[tuple[str, ...]] = ("type", "title", "due_date")

    type: Optional[str] = Field(None, min_length=1, max_length=255)
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[date] = None
    mileage_interval: Optional[int] = Field(None, ge=1)
    current_mileage: Optional[int] = Field(None, ge=0)


class ReminderRead(ORMModel):
    id: Optional[int] = None
    type: str
    title: str
    description: Optional[str] = None
    due_date: date
    is_completed: bool
    email_sent: bool
    mileage_interval: Optional[int] = None
    current_mileage: Optional[int] = None


class ReminderRecord(ReminderRead):
    created_at: datetime
    updated_at: datetime


# ------------------------------------------------------------------- list endpoints


class Page(BaseModel, Generic[T]):
    current_page: int
    per_page: int
    total: int
    last_page: int
    data: List[T]


class MonthlyExpensesRead(ORMModel):
    expenses: List[ExpenseRead]
    total: Money
    category_totals: Dict[str, Money]
    count: int


class MonthlyFuelRead(ORMModel):
    records: List[FuelRecordRead]
    total: Money
    total_gallons: Money
    average_price: Money
    count: int


class FuelEfficiencyRead(ORMModel):
    efficiency: Money
    records: List[FuelRecordRead]
    average_cost_per_gallon: Money
    total_spent: Money
    total_gallons: Money
    records_count: int


class PendingRemindersRead(ORMModel):
    reminders: List[ReminderRead]
    overdue_count: int
    upcoming_count: int
    total_pending: int


# ------------------------------------------------------------------------- reports


class MonthlyTotalRead(ORMModel):
    year: int
    month: int
    label: str
    amount: Money


class DashboardRead(ORMModel):
    total_expenses: Money
    monthly_expenses: Money
    fuel_expenses: Money
    maintenance_expenses: Money
    pending_reminders: int
    overdue_reminders: int
    recent_fuel_records: List[FuelRecordRead]
    recent_expenses: List[ExpenseRead]
    fuel_efficiency: Money
    average_cost_per_gallon: Money
    expenses_by_category: Dict[str, Money]
    monthly_trend: List[MonthlyTotalRead]


class ExpenseSectionRead(ORMModel):
    total: Money
    count: int
    by_category: Dict[str, Money]
    details: List[ExpenseRead]


class FuelSectionRead(ORMModel):
    total_cost: Money
    total_gallons: Money
    average_price: Money
    records_count: int
    details: List[FuelRecordRead]


class ReminderSectionRead(ORMModel):
    total: int
    completed: int
    pending: int
    details: List[ReminderRead]


class ReminderCountsRead(ORMModel):
    total: int
    completed: int
    pending: int


class MonthlyReportRead(ORMModel):
    year: int
    month: int
    period: str
    expenses: ExpenseSectionRead
    fuel: FuelSectionRead
    reminders: ReminderSectionRead


class YearlySummaryRead(ORMModel):
    total_expenses: Money
    total_fuel_cost: Money
    total_gallons: Money
    average_monthly_expense: Money
    fuel_efficiency: Money


class YearlyReportRead(ORMModel):
    year: int
    summary: YearlySummaryRead
    monthly_expenses: List[MonthlyTotalRead]
    expenses_by_category: Dict[str, Money]
    reminders: ReminderCountsRead


# ------------------------------------------------------------------------ envelope


class Envelope(BaseModel):
    """Body shared by every response of the API."""

    success: bool
    message: str
    data: Any = None
    errors: Optional[Dict[str, List[str]]] = None
    error: Optional[str] = None

    def render(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        if self.errors is not None:
            payload["errors"] = self.errors
        if self.error is not None:
            payload["error"] = self.error
        return payload
