"""
Reporting Aggregator (Domain Logic).

Pure projections of the finished-trip log into KPI summaries, daily revenue
trend, product mix and paginated pages. Inputs are plain records loaded by
the reporting service; nothing here mutates them or touches the database.
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Generic, Iterable, List, Optional, Sequence, TypeVar

from dispatch_backend.app.core.exceptions import (
    InvalidPaginationError, InvalidRangeError, RangeTooLongError
)

T = TypeVar("T")
ZERO = Decimal("0")


def day_after(day: date) -> Optional[datetime]:
    if day == date.max:
        return None
    return datetime.combine(day + timedelta(days=1), datetime.min.time())


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-day range."""
    date_from: date
    date_to: date

    @property
    def start(self) -> datetime:
        return datetime.combine(self.date_from, datetime.min.time())

    @property
    def end_exclusive(self) -> Optional[datetime]:
        """Midnight after `date_to`; None when `date_to` is the last representable day."""
        return day_after(self.date_to)

    @property
    def span_days(self) -> int:
        return (self.date_to - self.date_from).days + 1

    def days(self) -> List[date]:
        return [self.date_from + timedelta(days=offset) for offset in range(self.span_days)]


@dataclass(frozen=True)
class FinishedTripRecord:
    trip_id: int
    finished_at: datetime
    total_revenue: Decimal


@dataclass(frozen=True)
class ClosedLineRecord:
    """One reconciled line item joined with its trip context."""
    trip_id: int
    line_item_id: int
    line_number: int
    finished_at: datetime
    driver_name: str
    vehicle_plate: str
    team_name: Optional[str]
    product_id: int
    product_name: str
    opening_quantity: int
    closing_quantity: int
    unit_price: Decimal
    revenue: Decimal

    @property
    def units_sold(self) -> int:
        return self.opening_quantity - self.closing_quantity

    @property
    def closed_on(self) -> date:
        return self.finished_at.date()


@dataclass(frozen=True)
class KpiSummary:
    total_finished_trips: int
    trips_in_progress: int
    total_revenue: Decimal
    load_effectiveness: Optional[float]


@dataclass(frozen=True)
class DailyRevenue:
    date: date
    revenue: Decimal


@dataclass(frozen=True)
class ProductMixEntry:
    product_id: int
    product_name: str
    units_sold: int
    revenue: Decimal


@dataclass(frozen=True)
class Page(Generic[T]):
    content: List[T]
    total_elements: int
    total_pages: int
    number: int
    size: int


def validate_range(date_from: date, date_to: date, max_days: Optional[int] = None) -> DateRange:
    if date_from > date_to:
        raise InvalidRangeError(date_from, date_to)
    date_range = DateRange(date_from, date_to)
    if max_days is not None and date_range.span_days > max_days:
        raise RangeTooLongError(date_from, date_to, max_days)
    return date_range


def validate_page(page: int, size: int) -> None:
    if page < 0 or size < 1:
        raise InvalidPaginationError(page, size)


def build_page(content: Sequence[T], total_elements: int, page: int, size: int) -> Page[T]:
    """Wrap one already-sliced page with offset pagination metadata."""
    validate_page(page, size)
    return Page(
        content=list(content),
        total_elements=total_elements,
        total_pages=math.ceil(total_elements / size) if total_elements else 0,
        number=page,
        size=size,
    )


def load_effectiveness(lines: Iterable[ClosedLineRecord]) -> Optional[float]:
    """Percentage of loaded units that were sold; None when nothing was loaded."""
    sold = 0
    loaded = 0
    for line in lines:
        sold += line.units_sold
        loaded += line.opening_quantity
    if loaded == 0:
        return None
    return sold / loaded * 100


def kpi_summary(
    trips: Sequence[FinishedTripRecord],
    lines: Sequence[ClosedLineRecord],
    trips_in_progress: int,
) -> KpiSummary:
    return KpiSummary(
        total_finished_trips=len({trip.trip_id for trip in trips}),
        trips_in_progress=trips_in_progress,
        total_revenue=sum((trip.total_revenue for trip in trips), ZERO),
        load_effectiveness=load_effectiveness(lines),
    )


def daily_trend(date_range: DateRange, trips: Iterable[FinishedTripRecord]) -> List[DailyRevenue]:
    """One point per day in range; days without finished trips are 0."""
    by_day = defaultdict(lambda: ZERO)
    for trip in trips:
        by_day[trip.finished_at.date()] += trip.total_revenue
    return [DailyRevenue(date=day, revenue=by_day.get(day, ZERO)) for day in date_range.days()]


def product_mix(lines: Iterable[ClosedLineRecord]) -> List[ProductMixEntry]:
    """Units and revenue per product, revenue descending then name ascending."""
    units = defaultdict(int)
    revenue = defaultdict(lambda: ZERO)
    names = {}
    for line in lines:
        units[line.product_id] += line.units_sold
        revenue[line.product_id] += line.revenue
        names[line.product_id] = line.product_name

    entries = [
        ProductMixEntry(
            product_id=product_id,
            product_name=names[product_id],
            units_sold=units[product_id],
            revenue=revenue[product_id],
        )
        for product_id in names
    ]
    entries.sort(key=lambda e: (-e.revenue, e.product_name))
    return entries
