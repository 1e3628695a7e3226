"""GST line and invoice totals calculation.

One place for the taxable / CGST / SGST / IGST arithmetic that the invoice
form, the detail view and the print view all display.

Rounding is applied after every step (gross, discount, taxable, tax, split),
half away from zero, so totals shown here agree cent-for-cent with the
amounts the backend stores per line. Backend-stored amounts always win over
recomputed ones; recomputation is a display fallback.
"""
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Iterable, Optional, TYPE_CHECKING

from app.core.money import ZERO, Number, percent_of, round2, to_decimal

if TYPE_CHECKING:
    from app.schemas.invoice import InvoiceHeaderRecord, InvoiceLineRecord


@dataclass(frozen=True)
class LineOverrides:
    """Backend-authoritative per-line amounts. None means "not stored"."""
    taxable_amount: Optional[Decimal] = None
    cgst_amount: Optional[Decimal] = None
    sgst_amount: Optional[Decimal] = None
    igst_amount: Optional[Decimal] = None
    line_total: Optional[Decimal] = None


@dataclass(frozen=True)
class LineAmounts:
    """Result of calculating one invoice line."""
    gross_amount: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    """Invoice-level sums of already-rounded line amounts."""
    taxable_amount: Decimal = ZERO
    cgst_amount: Decimal = ZERO
    sgst_amount: Decimal = ZERO
    igst_amount: Decimal = ZERO
    gst_amount: Decimal = ZERO
    total_amount: Decimal = ZERO

    def as_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


NO_OVERRIDES = LineOverrides()


def _override(value: Optional[Number], fallback: Decimal) -> Decimal:
    if value is None:
        return fallback
    return to_decimal(value)


def calculate_line(
    qty: Number,
    unit_rate: Number,
    discount_percent: Number = ZERO,
    tax_percent: Number = ZERO,
    is_inter_state: Optional[bool] = False,
    overrides: Optional[LineOverrides] = None,
) -> LineAmounts:
    """
    Derive taxable amount, tax and the GST split for one line.

    Inputs are not validated: negative quantities or rates are the caller's
    problem. ``is_inter_state=None`` means the supply type is unknown, in
    which case tax is computed but not split.

    Without overrides, ``cgst + sgst + igst == tax`` exactly; the SGST half
    takes the odd cent.
    """
    overrides = overrides or NO_OVERRIDES

    qty = to_decimal(qty)
    unit_rate = to_decimal(unit_rate)
    discount_percent = to_decimal(discount_percent)
    tax_percent = to_decimal(tax_percent)

    gross = round2(qty * unit_rate)
    discount = round2(percent_of(gross, discount_percent))
    taxable = _override(overrides.taxable_amount, round2(gross - discount))
    tax = round2(percent_of(taxable, tax_percent))
    line_total = _override(overrides.line_total, round2(taxable + tax))

    if is_inter_state is None:
        cgst = sgst = igst = ZERO
    elif is_inter_state:
        igst = _override(overrides.igst_amount, tax)
        cgst = sgst = ZERO
    else:
        cgst = _override(overrides.cgst_amount, round2(tax / 2))
        sgst = _override(overrides.sgst_amount, round2(tax - cgst))
        igst = ZERO

    return LineAmounts(
        gross_amount=gross,
        discount_amount=discount,
        taxable_amount=taxable,
        tax_amount=tax,
        cgst_amount=cgst,
        sgst_amount=sgst,
        igst_amount=igst,
        line_total=line_total,
    )


def overrides_from_line(line: "InvoiceLineRecord") -> LineOverrides:
    """Collect the amounts a persisted line already carries."""
    return LineOverrides(
        taxable_amount=line.taxable_amount if line.taxable_amount is not None else line.line_subtotal,
        cgst_amount=line.cgst_amount,
        sgst_amount=line.sgst_amount,
        igst_amount=line.igst_amount,
        line_total=line.line_total,
    )


def calculate_invoice_line(
    line: "InvoiceLineRecord",
    is_inter_state: Optional[bool],
) -> LineAmounts:
    """Calculate a persisted line, preferring the amounts stored with it."""
    tax_percent = line.tax_percent if line.tax_percent is not None else line.tax_rate
    return calculate_line(
        qty=line.qty,
        unit_rate=line.unit_rate,
        discount_percent=line.discount_percent or ZERO,
        tax_percent=tax_percent or ZERO,
        is_inter_state=is_inter_state,
        overrides=overrides_from_line(line),
    )


def aggregate_invoice_totals(lines: Iterable[LineAmounts]) -> InvoiceTotals:
    """
    Fold line results into invoice sums.

    Sums are not re-rounded: each line is already at currency precision, so
    any drift is whatever the per-line values carry.
    """
    taxable = cgst = sgst = igst = gst = total = ZERO
    for line in lines:
        taxable += line.taxable_amount
        cgst += line.cgst_amount
        sgst += line.sgst_amount
        igst += line.igst_amount
        gst += line.tax_amount
        total += line.line_total

    return InvoiceTotals(
        taxable_amount=taxable,
        cgst_amount=cgst,
        sgst_amount=sgst,
        igst_amount=igst,
        gst_amount=gst,
        total_amount=total,
    )


def _first_present(*values: Optional[Decimal]) -> Optional[Decimal]:
    for value in values:
        if value is not None:
            return value
    return None


def resolve_invoice_totals(
    header: Optional["InvoiceHeaderRecord"],
    local: InvoiceTotals,
) -> InvoiceTotals:
    """
    Prefer the header's stored aggregates, field by field, over local sums.

    Newer rows carry ``taxable_amount``/``gst_amount``/...; older rows only
    the ``subtotal``/``tax_total``/... columns. Either counts as stored.
    """
    if header is None:
        return local

    def pick(stored: Optional[Decimal], fallback: Decimal) -> Decimal:
        return stored if stored is not None else fallback

    return InvoiceTotals(
        taxable_amount=pick(_first_present(header.taxable_amount, header.subtotal), local.taxable_amount),
        cgst_amount=pick(_first_present(header.cgst_amount, header.cgst_total), local.cgst_amount),
        sgst_amount=pick(_first_present(header.sgst_amount, header.sgst_total), local.sgst_amount),
        igst_amount=pick(_first_present(header.igst_amount, header.igst_total), local.igst_amount),
        gst_amount=pick(_first_present(header.gst_amount, header.tax_total), local.gst_amount),
        total_amount=pick(_first_present(header.total_amount, header.total), local.total_amount),
    )
