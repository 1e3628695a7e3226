"""Pydantic schemas for HR final settlements."""
from datetime import date
from decimal import Decimal
from typing import Any, List, Literal, Optional

from pydantic import Field, ValidationError

from app.core.backend import BackendPayloadError
from app.schemas.base import (
    Amount, OptionalAmount, BaseCreateSchema, BaseRecordSchema, BaseResponseSchema,
)


LineKind = Literal["earning", "deduction"]

TEMP_ID_PREFIX = "temp-"


# ==================== Backend Records ====================

class SettlementLineRecord(BaseRecordSchema):
    id: str
    kind: LineKind
    code: Optional[str] = None
    name: str
    amount: Amount = Decimal("0")
    notes: Optional[str] = None
    sort_order: Optional[int] = 0


class SettlementClearanceRecord(BaseRecordSchema):
    id: str
    department: str
    item: str
    is_done: bool = False
    notes: Optional[str] = None
    sort_order: Optional[int] = 0


class SettlementEmployeeRecord(BaseRecordSchema):
    id: str
    employee_code: str
    full_name: str


class SettlementExitRecord(BaseRecordSchema):
    id: str
    employee_id: str
    status: str
    last_working_day: Optional[date] = None


class SettlementHeaderRecord(BaseRecordSchema):
    id: str
    exit_id: str
    status: str = "draft"
    notes: Optional[str] = None


class SettlementPayload(BaseRecordSchema):
    """Result of ``erp_hr_final_settlement_get``."""
    settlement: Optional[SettlementHeaderRecord] = None
    lines: List[SettlementLineRecord] = []
    clearances: List[SettlementClearanceRecord] = []
    employee: Optional[SettlementEmployeeRecord] = None
    exit: Optional[SettlementExitRecord] = None
    earnings_total: OptionalAmount = None
    deductions_total: OptionalAmount = None
    net_amount: OptionalAmount = None


def parse_settlement_payload(raw: Any) -> SettlementPayload:
    """
    Raises:
        BackendPayloadError: If the RPC result does not match the expected shape
    """
    if raw is None:
        raw = {}
    try:
        payload = SettlementPayload.model_validate(raw)
    except ValidationError as e:
        raise BackendPayloadError(
            "Failed to parse settlement payload.",
            details={"issues": [err["msg"] for err in e.errors()]},
        )
    payload.lines.sort(key=lambda line: line.sort_order or 0)
    return payload


# ==================== Requests ====================

class SettlementLineInput(BaseCreateSchema):
    """An editable line. New lines carry no id (or a ``temp-`` placeholder)."""
    id: Optional[str] = None
    kind: LineKind
    title: str = ""
    amount: Amount = Decimal("0")
    remarks: Optional[str] = None
    sort_order: Optional[int] = 0

    @property
    def persisted_id(self) -> Optional[str]:
        if not self.id or self.id.startswith(TEMP_ID_PREFIX):
            return None
        return self.id


class SettlementSaveRequest(BaseCreateSchema):
    exit_id: str = Field(..., min_length=1)
    notes: Optional[str] = None
    lines: List[SettlementLineInput] = []
    deleted_line_ids: List[str] = []


class SettlementLinesRequest(BaseCreateSchema):
    """Lines plus any stored totals, for the stateless net calculator."""
    lines: List[SettlementLineInput] = []
    earnings_total: OptionalAmount = None
    deductions_total: OptionalAmount = None
    net_amount: OptionalAmount = None


# ==================== Responses ====================

class SettlementTotalsResponse(BaseResponseSchema):
    earnings_total: Decimal
    deductions_total: Decimal
    net_amount: Decimal


class SettlementResponse(BaseResponseSchema):
    settlement: Optional[SettlementHeaderRecord] = None
    lines: List[SettlementLineRecord]
    clearances: List[SettlementClearanceRecord]
    employee: Optional[SettlementEmployeeRecord] = None
    exit: Optional[SettlementExitRecord] = None
    totals: SettlementTotalsResponse
