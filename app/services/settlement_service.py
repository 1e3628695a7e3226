"""Final settlement orchestration.

Save is a fixed sequence of remote calls awaited in order: the header
upsert, one upsert per line (in display order), then one delete per
removed persisted line, then a reload. The first failure aborts the rest.
"""
import logging
from typing import List, Optional

from fastapi import HTTPException, status

from app.core.backend import SupabaseBackend
from app.core.company_context import CompanyContext
from app.schemas.settlement import (
    SettlementLinesRequest, SettlementPayload, SettlementResponse,
    SettlementSaveRequest, SettlementTotalsResponse, parse_settlement_payload,
)
from app.services.settlement_calculator import (
    SettlementTotals, calculate_net, validate_settlement_lines,
)

logger = logging.getLogger(__name__)


DRAFT_STATUS = "draft"


def settlement_totals(payload: SettlementPayload) -> SettlementTotals:
    return calculate_net(
        payload.lines,
        earnings_total=payload.earnings_total,
        deductions_total=payload.deductions_total,
        net_amount=payload.net_amount,
    )


def totals_response(totals: SettlementTotals) -> SettlementTotalsResponse:
    return SettlementTotalsResponse(
        earnings_total=totals.earnings_total,
        deductions_total=totals.deductions_total,
        net_amount=totals.net_amount,
    )


class SettlementService:
    """Final settlement reads, saves and finalization for one signed-in user."""

    def __init__(self, backend: SupabaseBackend, context: CompanyContext):
        self.backend = backend
        self.context = context

    async def get_settlement(self, settlement_id: str) -> SettlementPayload:
        """
        Raises:
            HTTPException 404: If the backend returns no settlement
            BackendPayloadError: If the RPC result does not parse
        """
        raw = await self.backend.rpc(
            "erp_hr_final_settlement_get",
            {"p_settlement_id": settlement_id},
        )
        payload = parse_settlement_payload(raw)
        if payload.settlement is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Settlement not found",
            )
        return payload

    async def get_response(self, settlement_id: str) -> SettlementResponse:
        payload = await self.get_settlement(settlement_id)
        return self.build_response(payload)

    @staticmethod
    def build_response(payload: SettlementPayload) -> SettlementResponse:
        return SettlementResponse(
            settlement=payload.settlement,
            lines=payload.lines,
            clearances=payload.clearances,
            employee=payload.employee,
            exit=payload.exit,
            totals=totals_response(settlement_totals(payload)),
        )

    @staticmethod
    def totals(request: SettlementLinesRequest) -> SettlementTotalsResponse:
        """Net for unsaved lines; stored figures in the request win."""
        return totals_response(calculate_net(
            request.lines,
            earnings_total=request.earnings_total,
            deductions_total=request.deductions_total,
            net_amount=request.net_amount,
        ))

    @staticmethod
    def _ensure_draft(payload: SettlementPayload) -> None:
        current = payload.settlement.status if payload.settlement else DRAFT_STATUS
        if (current or DRAFT_STATUS) != DRAFT_STATUS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Settlement is '{current}' and can no longer be changed",
            )

    async def save(
        self,
        settlement_id: Optional[str],
        request: SettlementSaveRequest,
    ) -> SettlementPayload:
        """
        Persist header, lines and removals, then reload.

        Raises:
            HTTPException 400: If a line is invalid or the settlement is locked
            HTTPException 502: If the header upsert returns no id
            BackendError: On the first failing remote call
        """
        errors: List[str] = validate_settlement_lines(request.lines)
        if errors:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": "Invalid settlement lines", "errors": errors},
            )

        if settlement_id:
            self._ensure_draft(await self.get_settlement(settlement_id))

        saved_id = await self.backend.rpc(
            "erp_hr_final_settlement_upsert_header",
            {
                "p_settlement_id": settlement_id,
                "p_exit_id": request.exit_id,
                "p_notes": request.notes or None,
            },
        )
        if not saved_id:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Unable to save settlement header.",
            )
        saved_id = str(saved_id)

        for line in request.lines:
            await self.backend.rpc(
                "erp_hr_final_settlement_line_upsert",
                {
                    "p_settlement_id": saved_id,
                    "p_line_id": line.persisted_id,
                    "p_line_type": line.kind,
                    "p_title": line.title.strip(),
                    "p_amount": line.amount,
                    "p_remarks": line.remarks or None,
                    "p_sort": line.sort_order or 0,
                },
            )

        for line_id in request.deleted_line_ids:
            await self.backend.rpc(
                "erp_hr_final_settlement_line_delete",
                {"p_settlement_id": saved_id, "p_line_id": line_id},
            )

        logger.info(
            f"Settlement {saved_id} saved by {self.context.user_id}: "
            f"{len(request.lines)} lines, {len(request.deleted_line_ids)} removed"
        )
        return await self.get_settlement(saved_id)

    async def finalize(self, settlement_id: str) -> SettlementPayload:
        payload = await self.get_settlement(settlement_id)
        self._ensure_draft(payload)

        await self.backend.rpc(
            "erp_hr_final_settlement_finalize",
            {"p_settlement_id": settlement_id},
        )
        logger.info(f"Settlement {settlement_id} finalized by {self.context.user_id}")
        return await self.get_settlement(settlement_id)
