from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from hypothesis import given
from hypothesis import strategies as st

from carledger.engine.criteria import in_month, in_year
from carledger.engine.entities import Expense, FuelRecord
from carledger.engine.metrics import fuel_efficiency, time_windowed_sum

AMOUNTS = st.decimals(min_value=0, max_value=10_000, places=2, allow_nan=False, allow_infinity=False)
DAYS = st.dates(min_value=date(2022, 1, 1), max_value=date(2025, 12, 31))


@st.composite
def fuel_histories(draw: st.DrawFn) -> list[FuelRecord]:
    size = draw(st.integers(min_value=0, max_value=12))
    start = draw(DAYS)
    mileage = draw(st.integers(min_value=0, max_value=200_000))
    records = []
    for index in range(size):
        mileage += draw(st.integers(min_value=0, max_value=800))
        gallons = draw(st.decimals(min_value=0, max_value=30, places=2, allow_nan=False, allow_infinity=False))
        records.append(
            FuelRecord(
                id=index + 1,
                date=start + timedelta(days=index * draw(st.integers(min_value=0, max_value=3))),
                gallons=gallons,
                cost=gallons * 3,
                mileage=mileage,
                price_per_gallon=Decimal("3.00"),
            )
        )
    return records


@given(records=fuel_histories(), seed=st.randoms(use_true_random=False))
def test_fuel_efficiency_is_order_invariant(records: list[FuelRecord], seed) -> None:
    shuffled = list(records)
    seed.shuffle(shuffled)
    assert fuel_efficiency(shuffled) == fuel_efficiency(records)


@given(records=fuel_histories())
def test_fuel_efficiency_is_zero_without_a_pair(records: list[FuelRecord]) -> None:
    assert fuel_efficiency(records[:1]) == 0
    assert fuel_efficiency(records) >= 0


@given(
    year=st.integers(min_value=2022, max_value=2025),
    items=st.lists(st.tuples(DAYS, AMOUNTS), max_size=40),
)
def test_monthly_totals_add_up_to_the_year(year: int, items: list[tuple[date, Decimal]]) -> None:
    expenses = [
        Expense(id=index, category="Combustible", amount=amount, description="x", date=day)
        for index, (day, amount) in enumerate(items, start=1)
    ]
    months = sum(
        (time_windowed_sum(expenses, "amount", in_month(year, month)) for month in range(1, 13)),
        Decimal("0"),
    )
    assert months == time_windowed_sum(expenses, "amount", in_year(year))
