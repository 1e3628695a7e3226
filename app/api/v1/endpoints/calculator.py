"""Stateless GST line and settlement net calculators."""
from dataclasses import asdict

from fastapi import APIRouter

from app.api.deps import CurrentContext
from app.schemas.invoice import LineAmountsResponse, LineCalculationRequest
from app.schemas.settlement import SettlementLinesRequest, SettlementTotalsResponse
from app.services.gst_calculator import LineOverrides, calculate_line
from app.services.settlement_service import SettlementService


router = APIRouter()


@router.post("/line", response_model=LineAmountsResponse)
async def calculate_line_amounts(request: LineCalculationRequest, context: CurrentContext):
    """Taxable amount, tax and GST split for one line. Stored amounts in the request win."""
    amounts = calculate_line(
        qty=request.qty,
        unit_rate=request.unit_rate,
        discount_percent=request.discount_percent,
        tax_percent=request.tax_percent,
        is_inter_state=request.is_inter_state,
        overrides=LineOverrides(
            taxable_amount=request.taxable_amount,
            cgst_amount=request.cgst_amount,
            sgst_amount=request.sgst_amount,
            igst_amount=request.igst_amount,
            line_total=request.line_total,
        ),
    )
    return LineAmountsResponse.model_validate(asdict(amounts))


@router.post("/settlement", response_model=SettlementTotalsResponse)
async def calculate_settlement_net(request: SettlementLinesRequest, context: CurrentContext):
    """Earnings, deductions and net payable for a set of lines."""
    return SettlementService.totals(request)
