"""Pydantic schemas for sales invoices (backend rows, requests, responses)."""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from pydantic import Field, ValidationError, field_validator

from app.core.backend import BackendPayloadError
from app.core.gst_states import is_valid_gstin, normalize_state_code
from app.schemas.base import (
    Amount, AmountOrZero, OptionalAmount, BaseCreateSchema, BaseRecordSchema, BaseResponseSchema,
)


def _clean_gstin(v: Optional[str]) -> Optional[str]:
    if v is None or not v.strip():
        return None
    v = v.strip().upper()
    if not is_valid_gstin(v):
        raise ValueError("Invalid GSTIN format")
    return v


# ==================== Backend Records ====================

class InvoiceLineRecord(BaseRecordSchema):
    """A persisted invoice line as returned by ``erp_invoice_lines``."""
    id: Optional[UUID] = None
    line_no: Optional[int] = None
    item_type: str = "manual"
    variant_id: Optional[UUID] = None
    sku: Optional[str] = None
    title: Optional[str] = None
    hsn: Optional[str] = None
    qty: Amount
    unit_rate: Amount
    discount_percent: OptionalAmount = None
    tax_percent: OptionalAmount = None
    tax_rate: OptionalAmount = None  # Older rows store the rate here

    # Backend-computed amounts (authoritative when present)
    line_subtotal: OptionalAmount = None
    line_tax: OptionalAmount = None
    line_total: OptionalAmount = None
    taxable_amount: OptionalAmount = None
    cgst_amount: OptionalAmount = None
    sgst_amount: OptionalAmount = None
    igst_amount: OptionalAmount = None


class InvoiceHeaderRecord(BaseRecordSchema):
    """A persisted invoice header as returned by ``erp_invoices``."""
    id: UUID
    doc_no: Optional[str] = None
    status: str
    invoice_date: date
    customer_name: str
    customer_gstin: Optional[str] = None
    place_of_supply: str
    place_of_supply_state_code: Optional[str] = None
    place_of_supply_state_name: Optional[str] = None

    billing_address_line1: Optional[str] = None
    billing_address_line2: Optional[str] = None
    billing_city: Optional[str] = None
    billing_state: Optional[str] = None
    billing_state_code: Optional[str] = None
    billing_state_name: Optional[str] = None
    billing_pincode: Optional[str] = None
    billing_country: Optional[str] = None

    shipping_address_line1: Optional[str] = None
    shipping_address_line2: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_state_code: Optional[str] = None
    shipping_state_name: Optional[str] = None
    shipping_pincode: Optional[str] = None
    shipping_country: Optional[str] = None

    currency: str = "INR"

    # Legacy aggregate columns
    subtotal: OptionalAmount = None
    tax_total: OptionalAmount = None
    igst_total: OptionalAmount = None
    cgst_total: OptionalAmount = None
    sgst_total: OptionalAmount = None
    total: OptionalAmount = None

    # Current aggregate columns
    taxable_amount: OptionalAmount = None
    cgst_amount: OptionalAmount = None
    sgst_amount: OptionalAmount = None
    igst_amount: OptionalAmount = None
    gst_amount: OptionalAmount = None
    total_amount: OptionalAmount = None
    is_inter_state: Optional[bool] = None

    issued_at: Optional[datetime] = None
    issued_by: Optional[UUID] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[UUID] = None
    cancel_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InvoiceListRow(BaseRecordSchema):
    id: UUID
    doc_no: Optional[str] = None
    status: str
    invoice_date: date
    customer_name: str
    subtotal: AmountOrZero = Decimal("0")
    tax_total: AmountOrZero = Decimal("0")
    total: AmountOrZero = Decimal("0")
    issued_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class InvoiceDocument(BaseRecordSchema):
    """Header plus its lines ordered by ``line_no``."""
    header: InvoiceHeaderRecord
    lines: List[InvoiceLineRecord] = []


LINES_KEY = "erp_invoice_lines"


def parse_invoice_document(raw: Any) -> InvoiceDocument:
    """
    Validate an ``erp_invoices`` row with embedded ``erp_invoice_lines``.

    Raises:
        BackendPayloadError: If header or lines do not match the expected shape
    """
    if not isinstance(raw, dict):
        raise BackendPayloadError("Failed to parse invoice payload.", details={"reason": "not an object"})

    header_record = {k: v for k, v in raw.items() if k != LINES_KEY}
    line_records = raw.get(LINES_KEY) or []

    try:
        header = InvoiceHeaderRecord.model_validate(header_record)
        lines = [InvoiceLineRecord.model_validate(line) for line in line_records]
    except ValidationError as e:
        raise BackendPayloadError(
            "Failed to parse invoice payload.",
            details={"issues": [
                {"path": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]},
        )

    lines.sort(key=lambda line: line.line_no if line.line_no is not None else 0)
    return InvoiceDocument(header=header, lines=lines)


def parse_invoice_list(raw: Any) -> List[InvoiceListRow]:
    if not isinstance(raw, list):
        raise BackendPayloadError("Failed to parse invoice list.")
    try:
        return [InvoiceListRow.model_validate(row) for row in raw]
    except ValidationError as e:
        raise BackendPayloadError(
            "Failed to parse invoice list.",
            details={"issues": [err["msg"] for err in e.errors()]},
        )


# ==================== Requests ====================

class InvoiceLineInput(BaseCreateSchema):
    """One line of the invoice form (manual or catalog-linked)."""
    id: Optional[UUID] = None
    line_no: Optional[int] = Field(None, ge=1)
    item_type: str = Field("manual", max_length=30)
    variant_id: Optional[UUID] = None
    sku: str = Field("", max_length=100)
    title: str = Field("", max_length=300)
    hsn: str = Field("", max_length=8)
    qty: Amount = Field(..., ge=0)
    unit_rate: Amount = Field(..., ge=0)
    discount_percent: Amount = Field(Decimal("0"), ge=0, le=100)
    tax_percent: Amount = Field(Decimal("0"), ge=0, le=100)


class InvoiceFormPayload(BaseCreateSchema):
    """Invoice header fields and lines as submitted by the form."""
    id: Optional[UUID] = None
    invoice_date: date
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_gstin: Optional[str] = None
    place_of_supply: str = Field(..., min_length=1, max_length=100)
    place_of_supply_state_code: Optional[str] = None
    place_of_supply_state_name: Optional[str] = None
    currency: str = Field("INR", min_length=3, max_length=3)

    billing_address_line1: Optional[str] = None
    billing_address_line2: Optional[str] = None
    billing_city: Optional[str] = None
    billing_state: Optional[str] = None
    billing_state_code: Optional[str] = None
    billing_state_name: Optional[str] = None
    billing_pincode: Optional[str] = None
    billing_country: Optional[str] = None

    shipping_address_line1: Optional[str] = None
    shipping_address_line2: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_state_code: Optional[str] = None
    shipping_state_name: Optional[str] = None
    shipping_pincode: Optional[str] = None
    shipping_country: Optional[str] = None

    lines: List[InvoiceLineInput] = []

    @field_validator("customer_gstin")
    @classmethod
    def validate_gstin(cls, v):
        return _clean_gstin(v)

    @field_validator("place_of_supply_state_code", "billing_state_code", "shipping_state_code")
    @classmethod
    def validate_state_code(cls, v):
        return normalize_state_code(v)


class LineCalculationRequest(BaseCreateSchema):
    """A single line for the stateless calculator, with optional stored amounts."""
    qty: Amount = Field(..., ge=0)
    unit_rate: Amount = Field(..., ge=0)
    discount_percent: Amount = Field(Decimal("0"), ge=0, le=100)
    tax_percent: Amount = Field(Decimal("0"), ge=0, le=100)
    is_inter_state: Optional[bool] = False

    taxable_amount: OptionalAmount = None
    cgst_amount: OptionalAmount = None
    sgst_amount: OptionalAmount = None
    igst_amount: OptionalAmount = None
    line_total: OptionalAmount = None


class InvoiceCancelRequest(BaseCreateSchema):
    reason: str = Field(..., min_length=1, max_length=500)


# ==================== Responses ====================

class LineAmountsResponse(BaseResponseSchema):
    gross_amount: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    line_total: Decimal


class InvoiceTotalsResponse(BaseResponseSchema):
    taxable_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    gst_amount: Decimal
    total_amount: Decimal


class InvoicePreviewResponse(BaseResponseSchema):
    """Running totals for an unsaved invoice form."""
    is_inter_state: Optional[bool] = None
    supply_type: str
    lines: List[LineAmountsResponse]
    totals: InvoiceTotalsResponse


class InvoiceActionResponse(BaseResponseSchema):
    status: str
    label: str


class InvoiceDetailResponse(BaseResponseSchema):
    header: InvoiceHeaderRecord
    lines: List[InvoiceLineRecord]
    line_amounts: List[LineAmountsResponse]
    totals: InvoiceTotalsResponse
    is_editable: bool
    allowed_transitions: List[str]
    allowed_actions: List[InvoiceActionResponse] = []


class InvoicePrintLine(BaseResponseSchema):
    line_no: int
    sku: Optional[str] = None
    title: Optional[str] = None
    hsn: Optional[str] = None
    qty: Decimal
    unit_rate: Decimal
    tax_percent: Decimal
    amounts: LineAmountsResponse


class InvoicePrintResponse(BaseResponseSchema):
    """Everything a print-ready tax invoice shows, amounts already resolved."""
    header: InvoiceHeaderRecord
    currency: str
    is_inter_state: Optional[bool] = None
    supply_type: str
    lines: List[InvoicePrintLine]
    totals: InvoiceTotalsResponse
    amount_in_words: str
    billing_address_lines: List[str]
    shipping_address_lines: List[str]


class InvoiceListResponse(BaseResponseSchema):
    items: List[InvoiceListRow]
    total: int
