"""
Common / shared Pydantic schemas and field types.

- Error envelopes, so the OpenAPI docs describe the error contract.
- ``Money``: Decimal internally, a JSON number on the wire.
- Stored precision of amounts and rates, and ``quantize_amount``.
- ``UTCDateTime``: always timezone-aware UTC (SQLite hands back naive values).
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Annotated, Any, List, Optional

from pydantic import AfterValidator, BaseModel, Field, PlainSerializer


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UTCDateTime = Annotated[datetime, AfterValidator(ensure_utc)]

# Serialised as a JSON number rather than pydantic's default string form.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

# Stored amounts are NUMERIC(28, 8) and rates NUMERIC(9, 4).
AMOUNT_QUANTUM = Decimal("0.00000001")
RATE_QUANTUM = Decimal("0.0001")
MAX_AMOUNT = Decimal(10) ** 20

StoredAmount = Annotated[Decimal, Field(max_digits=28, decimal_places=8)]
StoredRate = Annotated[Decimal, Field(max_digits=9, decimal_places=4)]


def quantize_amount(value: Decimal) -> Decimal:
    """Round ``value`` (below ``MAX_AMOUNT``) to the 8 places an amount is stored with."""
    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_EVEN)


class ErrorResponse(BaseModel):
    """Standard error envelope returned by all non-validation error handlers."""

    error: bool = Field(default=True, description="Always ``true`` for errors")
    message: str = Field(
        ...,
        description="Human-readable error description",
        examples=["Invoice '…' is already funded and cannot be financed again"],
    )
    details: Optional[Any] = Field(
        default=None,
        description="Context for the failure, e.g. the conflicting invoice id and status",
    )


class ValidationErrorDetail(BaseModel):
    """Single field-level validation failure."""

    field: str = Field(
        ...,
        description="Path to the invalid field",
        examples=["body -> due_date"],
    )
    message: str = Field(
        ...,
        description="Explanation of the validation failure",
        examples=["Input should be a valid datetime"],
    )


class ValidationErrorResponse(BaseModel):
    """Response body for 422 Unprocessable Entity (validation failure)."""

    error: bool = Field(default=True, description="Always ``true`` for errors")
    message: str = Field(default="Validation failed", description="Summary message")
    details: List[ValidationErrorDetail] = Field(..., description="Per-field validation failures")
