"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.

Error families:
    - input validation (malformed quantities, ranges, pagination)
    - business rules (manifest, eligibility, reconciliation)
    - consistency / concurrency (already finished, concurrent modification)
    - catalog lookups (unknown ids, foreign price tiers)

Only ConcurrentModificationError is retryable: the caller should refetch
state and resubmit.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("dispatch.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 500,
        details: Dict[str, Any] = None,
        retryable: bool = False,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        self.retryable = retryable
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


# --- Input validation ---

class InvalidQuantityError(AppException):
    """Opening quantity is not a positive integer."""

    def __init__(self, line_index: int, quantity: Any):
        super().__init__(
            message=f"Cargo line {line_index}: opening quantity must be a positive integer, got {quantity!r}",
            error_code="ERR_INPUT_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"line_index": line_index, "field": "opening_quantity", "value": quantity}
        )


class InvalidRangeError(AppException):
    """Report range where from is after to."""

    def __init__(self, date_from, date_to):
        super().__init__(
            message=f"Invalid date range: from ({date_from}) is after to ({date_to})",
            error_code="ERR_INPUT_002",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"from": str(date_from), "to": str(date_to)}
        )


class RangeTooLongError(AppException):
    """Report range spanning more days than a per-day series may hold."""

    def __init__(self, date_from, date_to, max_days: int):
        super().__init__(
            message=f"Date range from {date_from} to {date_to} exceeds {max_days} days",
            error_code="ERR_INPUT_005",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"from": str(date_from), "to": str(date_to), "max_days": max_days}
        )


class InvalidPaginationError(AppException):
    """Offset pagination parameters out of range."""

    def __init__(self, page: int, size: int):
        super().__init__(
            message=f"Invalid pagination: page must be >= 0 and size >= 1 (page={page}, size={size})",
            error_code="ERR_INPUT_003",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"page": page, "size": size}
        )


class CatalogValidationError(AppException):
    """Master data field violates its rule."""

    def __init__(self, field: str, message: str, value: Any = None):
        super().__init__(
            message=message,
            error_code="ERR_INPUT_004",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"field": field, "value": value}
        )


# --- Trip opening rules ---

class EmptyManifestError(AppException):
    def __init__(self):
        super().__init__(
            message="A trip requires at least one cargo line",
            error_code="ERR_TRIP_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY
        )


class DuplicateCargoLineError(AppException):
    """Same (product, price tier) pair submitted twice."""

    def __init__(self, product_id: int, price_tier_id: int):
        super().__init__(
            message=f"Product {product_id} with price tier {price_tier_id} appears more than once in the manifest",
            error_code="ERR_TRIP_002",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"product_id": product_id, "price_tier_id": price_tier_id}
        )


class UnknownProductError(AppException):
    def __init__(self, product_id: int):
        super().__init__(
            message=f"Product {product_id} does not exist",
            error_code="ERR_TRIP_003",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"product_id": product_id}
        )


class InactiveProductError(AppException):
    def __init__(self, product_id: int, product_name: str):
        super().__init__(
            message=f"Product '{product_name}' is inactive and cannot be loaded",
            error_code="ERR_TRIP_004",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"product_id": product_id, "product_name": product_name}
        )


class InvalidPriceTierError(AppException):
    """Price tier is not an active tier of the referenced product."""

    def __init__(self, product_id: int, price_tier_id: int):
        super().__init__(
            message=f"Price tier {price_tier_id} is not an active tier of product {product_id}",
            error_code="ERR_TRIP_005",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"product_id": product_id, "price_tier_id": price_tier_id}
        )


class ResourceUnavailableError(AppException):
    """Vehicle or driver is not eligible for a new trip."""

    def __init__(
        self,
        resource: str,
        resource_id: int,
        reason: str,
        error_code: str = "ERR_TRIP_006",
    ):
        self.resource = resource
        self.resource_id = resource_id
        self.reason = reason
        super().__init__(
            message=f"{resource.capitalize()} {resource_id} is unavailable: {reason}",
            error_code=error_code,
            status_code=status.HTTP_409_CONFLICT,
            details={"resource": resource, "id": resource_id, "reason": reason}
        )


class MissingSupervisorError(ResourceUnavailableError):
    """Driver has no team, so no supervisor can be derived."""

    def __init__(self, driver_id: int, reason: str = "driver is not assigned to a team"):
        super().__init__(
            resource="driver",
            resource_id=driver_id,
            reason=reason,
            error_code="ERR_TRIP_007",
        )


# --- Trip closing rules ---

class AlreadyFinishedError(AppException):
    """Closing a trip twice. Not retryable."""

    def __init__(self, trip_id: int):
        super().__init__(
            message=f"Trip {trip_id} is already FINISHED",
            error_code="ERR_CLOSE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"trip_id": trip_id}
        )


class IncompleteReconciliationError(AppException):
    def __init__(self, trip_id: int, missing_line_ids: List[int]):
        super().__init__(
            message=f"Closing request for trip {trip_id} is missing line items {missing_line_ids}",
            error_code="ERR_CLOSE_002",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"trip_id": trip_id, "missing_line_ids": missing_line_ids}
        )


class UnknownLineItemError(AppException):
    def __init__(self, trip_id: int, unknown_line_ids: List[int]):
        super().__init__(
            message=f"Line items {unknown_line_ids} do not belong to trip {trip_id}",
            error_code="ERR_CLOSE_003",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"trip_id": trip_id, "unknown_line_ids": unknown_line_ids}
        )


class DuplicateClosingLineError(AppException):
    def __init__(self, trip_id: int, duplicate_line_ids: List[int]):
        super().__init__(
            message=f"Line items {duplicate_line_ids} are reported more than once",
            error_code="ERR_CLOSE_004",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"trip_id": trip_id, "duplicate_line_ids": duplicate_line_ids}
        )


class ClosingQuantityError(AppException):
    """Base for closing quantity bound violations."""

    def __init__(
        self,
        message: str,
        error_code: str,
        line_item_id: int,
        product_name: str,
        closing_quantity: int,
        opening_quantity: int,
        violations: List[Dict[str, Any]] = None,
    ):
        self.line_item_id = line_item_id
        self.closing_quantity = closing_quantity
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={
                "line_item_id": line_item_id,
                "product_name": product_name,
                "closing_quantity": closing_quantity,
                "opening_quantity": opening_quantity,
                "violations": violations or [],
            }
        )


class NegativeClosingQuantityError(ClosingQuantityError):
    def __init__(self, line_item_id, product_name, closing_quantity, opening_quantity, violations=None):
        super().__init__(
            message=f"Closing quantity for '{product_name}' cannot be negative (got {closing_quantity})",
            error_code="ERR_CLOSE_005",
            line_item_id=line_item_id,
            product_name=product_name,
            closing_quantity=closing_quantity,
            opening_quantity=opening_quantity,
            violations=violations,
        )


class ClosingExceedsOpeningError(ClosingQuantityError):
    def __init__(self, line_item_id, product_name, closing_quantity, opening_quantity, violations=None):
        super().__init__(
            message=(
                f"Closing quantity for '{product_name}' ({closing_quantity}) "
                f"exceeds opening quantity ({opening_quantity})"
            ),
            error_code="ERR_CLOSE_006",
            line_item_id=line_item_id,
            product_name=product_name,
            closing_quantity=closing_quantity,
            opening_quantity=opening_quantity,
            violations=violations,
        )


# --- Consistency ---

class ConcurrentModificationError(AppException):
    """Optimistic concurrency conflict. Retry after refetching state."""

    def __init__(self, resource: str, resource_id: Any = None, reason: str = "modified concurrently"):
        super().__init__(
            message=f"{resource.capitalize()} {resource_id} was {reason}; refetch and retry",
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource": resource, "id": resource_id, "reason": reason},
            retryable=True,
        )


class InvalidStatusTransitionError(AppException):
    def __init__(self, resource: str, resource_id: Any, current: str, target: str):
        super().__init__(
            message=f"{resource.capitalize()} {resource_id} cannot move from {current} to {target}",
            error_code="ERR_STATE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource": resource, "id": resource_id, "from": current, "to": target}
        )


class DuplicatePlateError(AppException):
    def __init__(self, plate: str):
        super().__init__(
            message=f"A vehicle with plate {plate} is already registered",
            error_code="ERR_CATALOG_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"plate": plate}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(
            {
                "error_code": exc.error_code,
                "message": exc.message,
                "details": exc.details,
                "retryable": exc.retryable,
            },
            custom_encoder={Decimal: str},
        )
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {},
            "retryable": False,
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder({
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": exc.errors()
            },
            "retryable": False,
        })
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception(
        "Unhandled exception",
        extra={"path": request.url.path, "exc_type": type(exc).__name__},
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {},
            "retryable": False,
        }
    )
