"""
Base Schema Classes for Pydantic Models

RULE: Rows coming back from the managed backend are validated with a
BaseRecordSchema subclass before any service code touches them. Request
bodies use BaseCreateSchema; API responses use BaseResponseSchema.
"""

from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict

from app.core.money import to_decimal


def _coerce_amount(value):
    """Numbers arrive as JSON numbers or numeric strings; both become Decimal."""
    if value is None:
        return None
    return to_decimal(value)


# Decimal that also accepts numeric strings and blanks (blank -> 0)
Amount = Annotated[Decimal, BeforeValidator(_coerce_amount)]
OptionalAmount = Annotated[Optional[Decimal], BeforeValidator(_coerce_amount)]
# Decimal where a missing value reads as zero (totals not yet computed)
AmountOrZero = Annotated[Decimal, BeforeValidator(to_decimal)]


class BaseRecordSchema(BaseModel):
    """
    Base class for rows and RPC payloads read from the backend.

    Unknown columns are ignored so that adding a column server-side never
    breaks parsing here.
    """
    model_config = ConfigDict(
        extra='ignore',
        populate_by_name=True,
    )


class BaseResponseSchema(BaseModel):
    """
    Base class for all API response schemas.

    Usage:
        class InvoiceTotalsResponse(BaseResponseSchema):
            taxable_amount: Decimal
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    These schemas accept string UUIDs from frontend and convert to UUID objects.
    """
    model_config = ConfigDict(
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
    )
