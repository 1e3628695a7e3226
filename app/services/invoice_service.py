"""Invoice Service: orchestration of the invoice RPCs.

The backend owns persistence and the authoritative totals. Each user action
here maps to a fixed sequence of remote calls, awaited one after another:

- save draft:  erp_invoice_upsert -> erp_invoice_line_upsert (per line)
               -> erp_invoice_recompute_totals -> reload
- issue:       erp_invoice_recompute_totals -> erp_invoice_issue -> reload
- cancel:      erp_invoice_cancel -> reload

The first failing call aborts the sequence; nothing is retried or rolled
back client-side.
"""
import logging
from dataclasses import asdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from num2words import num2words

from app.core.backend import SupabaseBackend
from app.core.company_context import CompanyContext
from app.core.gst_states import (
    determine_inter_state, get_state_code, get_state_name, state_code_from_gstin,
)
from app.schemas.invoice import (
    InvoiceActionResponse, InvoiceDocument, InvoiceFormPayload, InvoiceLineInput, InvoiceListRow,
    InvoicePrintLine, InvoicePrintResponse, InvoicePreviewResponse,
    InvoiceDetailResponse, LineAmountsResponse, InvoiceTotalsResponse,
    parse_invoice_document, parse_invoice_list,
)
from app.services import invoice_state_machine as state_machine
from app.services.gst_calculator import (
    LineAmounts, InvoiceTotals, aggregate_invoice_totals, calculate_invoice_line,
    calculate_line, resolve_invoice_totals,
)
from app.services.invoice_state_machine import InvoiceStatus

logger = logging.getLogger(__name__)


INVOICE_TABLE = "erp_invoices"

HEADER_COLUMNS = (
    "id, doc_no, status, invoice_date, customer_name, customer_gstin, place_of_supply, "
    "place_of_supply_state_code, place_of_supply_state_name, "
    "billing_address_line1, billing_address_line2, billing_city, billing_state, "
    "billing_state_code, billing_pincode, billing_country, "
    "shipping_address_line1, shipping_address_line2, shipping_city, shipping_state, "
    "shipping_state_code, shipping_pincode, shipping_country, currency, "
    "subtotal, tax_total, igst_total, cgst_total, sgst_total, total, "
    "taxable_amount, cgst_amount, sgst_amount, igst_amount, gst_amount, total_amount, "
    "is_inter_state, issued_at, issued_by, cancelled_at, cancelled_by, cancel_reason, "
    "created_at, updated_at"
)
LINE_COLUMNS = (
    "id, line_no, item_type, variant_id, sku, title, hsn, qty, unit_rate, "
    "discount_percent, tax_percent, tax_rate, line_subtotal, line_tax, line_total, "
    "taxable_amount, cgst_amount, sgst_amount, igst_amount"
)
LIST_COLUMNS = "id, doc_no, status, invoice_date, customer_name, subtotal, tax_total, total, issued_at, created_at"


def supply_type_label(is_inter_state: Optional[bool]) -> str:
    if is_inter_state is None:
        return "Unknown"
    return "Inter-state (IGST)" if is_inter_state else "Intra-state (CGST + SGST)"


def amount_to_words(amount: Decimal) -> str:
    """Convert amount to words (Indian numbering system). Negative amounts read "Minus ..."."""
    prefix = "Minus " if amount < 0 else ""
    amount = abs(amount)
    rupees = int(amount)
    paise = int(((amount - rupees) * 100).to_integral_value())

    words = num2words(rupees, lang='en_IN').replace(",", "")
    if paise > 0:
        paise_words = num2words(paise, lang='en_IN').replace(",", "")
        return f"{prefix}Rupees {words.title()} and {paise_words.title()} Paise Only"
    return f"{prefix}Rupees {words.title()} Only"


def _address_lines(*parts: Optional[str]) -> List[str]:
    return [part.strip() for part in parts if part and part.strip()]


def line_amounts_response(amounts: LineAmounts) -> LineAmountsResponse:
    return LineAmountsResponse.model_validate(asdict(amounts))


def totals_response(totals: InvoiceTotals) -> InvoiceTotalsResponse:
    return InvoiceTotalsResponse.model_validate(totals.as_dict())


class InvoiceService:
    """Invoice reads, draft saves and status changes for one signed-in user."""

    def __init__(self, backend: SupabaseBackend, context: CompanyContext):
        self.backend = backend
        self.context = context

    # ==================== Reads ====================

    async def list_invoices(
        self,
        status_filter: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
    ) -> List[InvoiceListRow]:
        filters: Dict[str, Any] = {}
        if status_filter:
            filters["status"] = status_filter.lower()
        date_conditions = []
        if date_from:
            date_conditions.append(("gte", date_from.isoformat()))
        if date_to:
            date_conditions.append(("lte", date_to.isoformat()))
        if date_conditions:
            filters["invoice_date"] = date_conditions

        rows = await self.backend.select(
            INVOICE_TABLE,
            columns=LIST_COLUMNS,
            filters=filters,
            order=["invoice_date.desc", "created_at.desc"],
            limit=limit,
        )
        return parse_invoice_list(rows)

    async def find_invoice(self, invoice_id: UUID) -> Optional[InvoiceDocument]:
        row = await self.backend.select(
            INVOICE_TABLE,
            columns=f"{HEADER_COLUMNS}, erp_invoice_lines({LINE_COLUMNS})",
            filters={"id": str(invoice_id)},
            order=["erp_invoice_lines:line_no.asc"],
            single=True,
        )
        if row is None:
            return None
        return parse_invoice_document(row)

    async def get_invoice(self, invoice_id: UUID) -> InvoiceDocument:
        """
        Load an invoice with its lines.

        Raises:
            HTTPException 404: If the invoice does not exist (or RLS hides it)
            BackendPayloadError: If the row does not parse
        """
        document = await self.find_invoice(invoice_id)
        if document is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
        return document

    async def get_company_gst_state_code(self) -> Optional[str]:
        profile = await self.backend.rpc("erp_company_gst_profile")
        if isinstance(profile, list):
            profile = profile[0] if profile else None
        if not isinstance(profile, dict):
            return None
        return profile.get("gst_state_code") or None

    async def resolve_inter_state(self, document: InvoiceDocument) -> Optional[bool]:
        """Stored flag first, otherwise compare place of supply with the company's GST state."""
        if document.header.is_inter_state is not None:
            return document.header.is_inter_state
        company_code = await self.get_company_gst_state_code()
        return determine_inter_state(document.header.place_of_supply_state_code, company_code)

    # ==================== Local computation ====================

    @staticmethod
    def compute_document(
        document: InvoiceDocument,
        is_inter_state: Optional[bool],
    ) -> tuple[List[LineAmounts], InvoiceTotals]:
        """Per-line amounts (stored values preferred) and resolved invoice totals."""
        amounts = [calculate_invoice_line(line, is_inter_state) for line in document.lines]
        local = aggregate_invoice_totals(amounts)
        return amounts, resolve_invoice_totals(document.header, local)

    async def preview(self, payload: InvoiceFormPayload) -> InvoicePreviewResponse:
        """Running totals for an unsaved form; nothing is persisted."""
        company_code = await self.get_company_gst_state_code()
        pos_code = (
            payload.place_of_supply_state_code
            or get_state_code(payload.place_of_supply)
            or state_code_from_gstin(payload.customer_gstin)
        )
        is_inter_state = determine_inter_state(pos_code, company_code)

        amounts = [
            calculate_line(
                qty=line.qty,
                unit_rate=line.unit_rate,
                discount_percent=line.discount_percent,
                tax_percent=line.tax_percent,
                is_inter_state=is_inter_state,
            )
            for line in payload.lines
        ]
        return InvoicePreviewResponse(
            is_inter_state=is_inter_state,
            supply_type=supply_type_label(is_inter_state),
            lines=[line_amounts_response(a) for a in amounts],
            totals=totals_response(aggregate_invoice_totals(amounts)),
        )

    async def get_detail(self, invoice_id: UUID) -> InvoiceDetailResponse:
        document = await self.get_invoice(invoice_id)
        return await self.detail_response(document)

    async def detail_response(self, document: InvoiceDocument) -> InvoiceDetailResponse:
        is_inter_state = await self.resolve_inter_state(document)
        amounts, totals = self.compute_document(document, is_inter_state)
        return InvoiceDetailResponse(
            header=document.header,
            lines=document.lines,
            line_amounts=[line_amounts_response(a) for a in amounts],
            totals=totals_response(totals),
            is_editable=state_machine.is_editable(document.header.status),
            allowed_transitions=state_machine.get_allowed_transitions(document.header.status),
            allowed_actions=[
                InvoiceActionResponse(
                    status=target,
                    label=state_machine.get_transition_action(document.header.status, target),
                )
                for target in state_machine.get_allowed_transitions(document.header.status)
            ],
        )

    async def build_print_view(self, invoice_id: UUID) -> InvoicePrintResponse:
        document = await self.get_invoice(invoice_id)
        header = document.header
        is_inter_state = await self.resolve_inter_state(document)
        amounts, totals = self.compute_document(document, is_inter_state)

        print_lines = []
        for index, (line, line_amounts) in enumerate(zip(document.lines, amounts), start=1):
            tax_percent = line.tax_percent if line.tax_percent is not None else line.tax_rate
            print_lines.append(InvoicePrintLine(
                line_no=line.line_no or index,
                sku=line.sku,
                title=line.title,
                hsn=line.hsn,
                qty=line.qty,
                unit_rate=line.unit_rate,
                tax_percent=tax_percent or Decimal("0"),
                amounts=line_amounts_response(line_amounts),
            ))

        return InvoicePrintResponse(
            header=header,
            currency=header.currency,
            is_inter_state=is_inter_state,
            supply_type=supply_type_label(is_inter_state),
            lines=print_lines,
            totals=totals_response(totals),
            amount_in_words=amount_to_words(totals.total_amount),
            billing_address_lines=_address_lines(
                header.billing_address_line1, header.billing_address_line2,
                header.billing_city, header.billing_state, header.billing_pincode,
                header.billing_country,
            ),
            shipping_address_lines=_address_lines(
                header.shipping_address_line1, header.shipping_address_line2,
                header.shipping_city, header.shipping_state, header.shipping_pincode,
                header.shipping_country,
            ),
        )

    # ==================== Writes ====================

    @staticmethod
    def _header_params(payload: InvoiceFormPayload, invoice_id: Optional[UUID]) -> Dict[str, Any]:
        header = payload.model_dump(exclude={"lines"})
        header["id"] = invoice_id
        if header.get("place_of_supply_state_code") and not header.get("place_of_supply_state_name"):
            header["place_of_supply_state_name"] = get_state_name(header["place_of_supply_state_code"])
        return header

    @staticmethod
    def _line_params(line: InvoiceLineInput, invoice_id: UUID, position: int) -> Dict[str, Any]:
        return {
            "id": line.id,
            "invoice_id": invoice_id,
            "line_no": line.line_no or position,
            "item_type": line.item_type,
            "variant_id": line.variant_id,
            "sku": line.sku,
            "title": line.title,
            "hsn": line.hsn,
            "qty": line.qty,
            "unit_rate": line.unit_rate,
            "discount_percent": line.discount_percent,
            "tax_percent": line.tax_percent,
        }

    async def _upsert_header_and_lines(
        self,
        payload: InvoiceFormPayload,
        invoice_id: Optional[UUID],
    ) -> UUID:
        result = await self.backend.rpc(
            "erp_invoice_upsert",
            {"p_invoice": self._header_params(payload, invoice_id)},
        )
        saved_id = UUID(str(result)) if result else invoice_id
        if saved_id is None:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Invoice save did not return an id",
            )

        # At most one write in flight per invoice
        for position, line in enumerate(payload.lines, start=1):
            await self.backend.rpc(
                "erp_invoice_line_upsert",
                {"p_line": self._line_params(line, saved_id, position)},
            )

        await self.recompute_totals(saved_id)
        return saved_id

    async def create_draft(self, payload: InvoiceFormPayload) -> InvoiceDocument:
        """
        Create a draft invoice. A client-supplied id that already exists is
        treated as an edit of that invoice and goes through the draft guard.
        """
        if payload.id is not None:
            existing = await self.find_invoice(payload.id)
            if existing is not None:
                return await self._save_existing(existing, payload)

        invoice_id = await self._upsert_header_and_lines(payload, payload.id)
        logger.info(f"Invoice draft {invoice_id} saved with {len(payload.lines)} lines")
        return await self.get_invoice(invoice_id)

    async def save_draft(self, invoice_id: UUID, payload: InvoiceFormPayload) -> InvoiceDocument:
        """
        Save header and lines of a draft invoice.

        Saving a non-draft invoice is a no-op: no remote call is made and the
        invoice is returned as stored.
        """
        document = await self.get_invoice(invoice_id)
        return await self._save_existing(document, payload)

    async def _save_existing(self, document: InvoiceDocument, payload: InvoiceFormPayload) -> InvoiceDocument:
        invoice_id = document.header.id
        if not state_machine.is_editable(document.header.status):
            logger.warning(
                f"Ignoring edit of invoice {invoice_id} in '{document.header.status}' status"
            )
            return document

        await self._upsert_header_and_lines(payload, invoice_id)
        logger.info(f"Invoice draft {invoice_id} updated with {len(payload.lines)} lines")
        return await self.get_invoice(invoice_id)

    async def recompute_totals(self, invoice_id: UUID) -> None:
        await self.backend.rpc("erp_invoice_recompute_totals", {"p_invoice_id": invoice_id})

    async def issue(self, invoice_id: UUID) -> InvoiceDocument:
        document = await self.get_invoice(invoice_id)
        state_machine.validate_transition(document.header.status, InvoiceStatus.ISSUED)

        await self.recompute_totals(invoice_id)
        await self.backend.rpc("erp_invoice_issue", {"p_invoice_id": invoice_id})
        logger.info(f"Invoice {invoice_id} issued by {self.context.user_id}")
        return await self.get_invoice(invoice_id)

    async def cancel(self, invoice_id: UUID, reason: str) -> InvoiceDocument:
        document = await self.get_invoice(invoice_id)
        state_machine.validate_transition(
            document.header.status, InvoiceStatus.CANCELLED, reason=reason
        )

        await self.backend.rpc(
            "erp_invoice_cancel",
            {"p_invoice_id": invoice_id, "p_reason": reason.strip()},
        )
        logger.info(f"Invoice {invoice_id} cancelled by {self.context.user_id}: {reason.strip()}")
        return await self.get_invoice(invoice_id)
