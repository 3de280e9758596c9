"""
Reconciliation Calculator (Domain Logic).

Validates the final quantities reported for an IN_PROGRESS trip and computes
units sold and revenue with exact decimal arithmetic. The result is a pure
value; the trip store applies it in a single transaction.

Flow:
1. Reject FINISHED trips (closing twice would double-release resources)
2. Completeness: the request names exactly the trip's line items
3. Bounds: 0 <= closing <= opening for every line
4. Compute units sold, line revenue and trip total
"""

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from dispatch_backend.app.core.exceptions import (
    AlreadyFinishedError,
    ClosingExceedsOpeningError,
    DuplicateClosingLineError,
    IncompleteReconciliationError,
    NegativeClosingQuantityError,
    UnknownLineItemError,
)
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.models.trip_enums import TripStatus

ZERO = Decimal("0")


@dataclass(frozen=True)
class ClosingLine:
    """Final quantity reported for one line item."""
    line_item_id: int
    closing_quantity: int


@dataclass(frozen=True)
class LineSettlement:
    line_item_id: int
    product_id: int
    opening_quantity: int
    closing_quantity: int
    units_sold: int
    unit_price: Decimal
    revenue: Decimal


@dataclass(frozen=True)
class ReconciliationResult:
    trip_id: int
    lines: Tuple[LineSettlement, ...]
    total_revenue: Decimal

    @property
    def total_units_sold(self) -> int:
        return sum(line.units_sold for line in self.lines)


def line_revenue(opening_quantity: int, closing_quantity: int, unit_price: Decimal) -> Decimal:
    """(opening - closing) * unit price, exact."""
    return (opening_quantity - closing_quantity) * Decimal(unit_price)


def _check_completeness(trip: Trip, closing: Sequence[ClosingLine]) -> Dict[int, int]:
    counts = Counter(line.line_item_id for line in closing)
    duplicates = sorted(line_id for line_id, n in counts.items() if n > 1)
    if duplicates:
        raise DuplicateClosingLineError(trip.id, duplicates)

    trip_line_ids = {item.id for item in trip.line_items}
    requested = set(counts)

    unknown = sorted(requested - trip_line_ids)
    if unknown:
        raise UnknownLineItemError(trip.id, unknown)

    missing = sorted(trip_line_ids - requested)
    if missing:
        raise IncompleteReconciliationError(trip.id, missing)

    return {line.line_item_id: line.closing_quantity for line in closing}


def _check_bounds(trip: Trip, quantities: Dict[int, int], product_names: Dict[int, str]) -> None:
    violations: List[dict] = []
    first: Optional[Tuple[type, dict]] = None

    for item in trip.line_items:
        closing = quantities[item.id]
        if closing < 0:
            error_cls = NegativeClosingQuantityError
        elif closing > item.opening_quantity:
            error_cls = ClosingExceedsOpeningError
        else:
            continue

        violation = {
            "line_item_id": item.id,
            "product_name": product_names.get(item.product_id, f"product {item.product_id}"),
            "closing_quantity": closing,
            "opening_quantity": item.opening_quantity,
        }
        violations.append({**violation, "rule": error_cls.__name__})
        if first is None:
            first = (error_cls, violation)

    if first is not None:
        error_cls, violation = first
        raise error_cls(violations=violations, **violation)


def reconcile(
    trip: Trip,
    closing: Sequence[ClosingLine],
    product_names: Optional[Dict[int, str]] = None,
) -> ReconciliationResult:
    """
    Validate final quantities for a trip and compute its revenue.

    Args:
        trip: Trip with its line items loaded
        closing: One ClosingLine per line item of the trip
        product_names: Optional product id -> name map for error messages

    Raises:
        AlreadyFinishedError, DuplicateClosingLineError, UnknownLineItemError,
        IncompleteReconciliationError, NegativeClosingQuantityError,
        ClosingExceedsOpeningError
    """
    if trip.status == TripStatus.FINISHED:
        raise AlreadyFinishedError(trip.id)

    quantities = _check_completeness(trip, closing)
    _check_bounds(trip, quantities, product_names or {})

    settlements = []
    total = ZERO
    for item in trip.line_items:
        closing_quantity = quantities[item.id]
        revenue = line_revenue(item.opening_quantity, closing_quantity, item.unit_price)
        total += revenue
        settlements.append(LineSettlement(
            line_item_id=item.id,
            product_id=item.product_id,
            opening_quantity=item.opening_quantity,
            closing_quantity=closing_quantity,
            units_sold=item.opening_quantity - closing_quantity,
            unit_price=Decimal(item.unit_price),
            revenue=revenue,
        ))

    return ReconciliationResult(trip_id=trip.id, lines=tuple(settlements), total_revenue=total)
