from datetime import date
from decimal import Decimal

import pytest

from app.core.money import round2, to_decimal
from app.schemas.invoice import InvoiceHeaderRecord, InvoiceLineRecord
from app.services.gst_calculator import (
    InvoiceTotals, LineOverrides, aggregate_invoice_totals, calculate_invoice_line,
    calculate_line, resolve_invoice_totals,
)


D = Decimal


def header(**fields):
    record = {
        "id": "33333333-3333-3333-3333-333333333333",
        "status": "draft",
        "invoice_date": date(2024, 4, 15),
        "customer_name": "Acme Traders",
        "place_of_supply": "Maharashtra",
    }
    record.update(fields)
    return InvoiceHeaderRecord.model_validate(record)


class TestRounding:
    def test_half_rounds_away_from_zero(self):
        assert round2("2.675") == D("2.68")
        assert round2("0.125") == D("0.13")
        assert round2("-1.005") == D("-1.01")

    def test_floats_go_through_str(self):
        assert to_decimal(0.1) == D("0.1")

    def test_blank_and_none_are_zero(self):
        assert to_decimal(None) == D("0")
        assert to_decimal("  ") == D("0")

    def test_invalid_amount(self):
        with pytest.raises(ValueError):
            to_decimal("12abc")


class TestCalculateLine:
    def test_intra_state_scenario(self):
        amounts = calculate_line(qty=3, unit_rate=100, discount_percent=10, tax_percent=18, is_inter_state=False)

        assert amounts.gross_amount == D("300.00")
        assert amounts.discount_amount == D("30.00")
        assert amounts.taxable_amount == D("270.00")
        assert amounts.tax_amount == D("48.60")
        assert amounts.cgst_amount == D("24.30")
        assert amounts.sgst_amount == D("24.30")
        assert amounts.igst_amount == D("0")
        assert amounts.line_total == D("318.60")

    def test_inter_state_scenario(self):
        amounts = calculate_line(qty=3, unit_rate=100, discount_percent=10, tax_percent=18, is_inter_state=True)

        assert amounts.cgst_amount == D("0")
        assert amounts.sgst_amount == D("0")
        assert amounts.igst_amount == D("48.60")
        assert amounts.line_total == D("318.60")

    def test_odd_cent_split(self):
        # tax = 0.51, cgst rounds 0.255 up, sgst takes the remainder
        amounts = calculate_line(qty=1, unit_rate="10.10", tax_percent=5, is_inter_state=False)

        assert amounts.tax_amount == D("0.51")
        assert amounts.cgst_amount == D("0.26")
        assert amounts.sgst_amount == D("0.25")
        assert amounts.cgst_amount + amounts.sgst_amount == amounts.tax_amount

    @pytest.mark.parametrize("qty,rate,discount,tax", [
        ("1", "0.50", "0", "18"),
        ("7", "13.33", "2.5", "12"),
        ("0.333", "10", "0", "18"),
        ("12", "99.99", "15", "28"),
        ("0", "250", "10", "5"),
    ])
    @pytest.mark.parametrize("inter_state", [True, False])
    def test_split_adds_up_to_tax(self, qty, rate, discount, tax, inter_state):
        amounts = calculate_line(qty, rate, discount, tax, is_inter_state=inter_state)

        expected_tax = round2(amounts.taxable_amount * D(tax) / 100)
        assert amounts.cgst_amount + amounts.sgst_amount + amounts.igst_amount == expected_tax
        if inter_state:
            assert amounts.cgst_amount == amounts.sgst_amount == D("0")
            assert amounts.igst_amount == amounts.tax_amount
        else:
            assert amounts.igst_amount == D("0")
            assert abs(amounts.cgst_amount - amounts.sgst_amount) <= D("0.01")

    def test_rounds_after_each_step(self):
        # gross 3.33 (not 3.33 * 0.18 unrounded): tax 0.5994 -> 0.60
        amounts = calculate_line(qty="0.333", unit_rate=10, tax_percent=18)
        assert amounts.gross_amount == D("3.33")
        assert amounts.tax_amount == D("0.60")
        assert amounts.line_total == D("3.93")

    def test_unknown_supply_type_does_not_split(self):
        amounts = calculate_line(qty=3, unit_rate=100, discount_percent=10, tax_percent=18, is_inter_state=None)

        assert amounts.tax_amount == D("48.60")
        assert amounts.cgst_amount == amounts.sgst_amount == amounts.igst_amount == D("0")
        assert amounts.line_total == D("318.60")

    def test_is_pure(self):
        first = calculate_line(qty=2, unit_rate="49.99", tax_percent=12)
        second = calculate_line(qty=2, unit_rate="49.99", tax_percent=12)
        assert first == second


class TestOverrides:
    def test_line_total_override_wins(self):
        amounts = calculate_line(
            qty=3, unit_rate=100, discount_percent=10, tax_percent=18,
            overrides=LineOverrides(line_total=D("500")),
        )
        assert amounts.line_total == D("500")
        assert amounts.tax_amount == D("48.60")

    def test_taxable_override_drives_tax(self):
        amounts = calculate_line(
            qty=3, unit_rate=100, discount_percent=10, tax_percent=18,
            overrides=LineOverrides(taxable_amount=D("250")),
        )
        assert amounts.taxable_amount == D("250")
        assert amounts.tax_amount == D("45.00")
        assert amounts.cgst_amount == D("22.50")
        assert amounts.sgst_amount == D("22.50")
        assert amounts.line_total == D("295.00")

    def test_cgst_override_leaves_remainder_to_sgst(self):
        amounts = calculate_line(
            qty=3, unit_rate=100, discount_percent=10, tax_percent=18,
            overrides=LineOverrides(cgst_amount=D("20")),
        )
        assert amounts.cgst_amount == D("20")
        assert amounts.sgst_amount == D("28.60")

    def test_igst_override(self):
        amounts = calculate_line(
            qty=3, unit_rate=100, discount_percent=10, tax_percent=18, is_inter_state=True,
            overrides=LineOverrides(igst_amount=D("40"), cgst_amount=D("5")),
        )
        assert amounts.igst_amount == D("40")
        assert amounts.cgst_amount == D("0")


class TestPersistedLines:
    def test_legacy_tax_rate_is_used(self):
        line = InvoiceLineRecord.model_validate({
            "qty": "3", "unit_rate": "100", "discount_percent": 10, "tax_rate": 18,
        })
        amounts = calculate_invoice_line(line, is_inter_state=False)
        assert amounts.tax_amount == D("48.60")
        assert amounts.line_total == D("318.60")

    def test_line_subtotal_counts_as_taxable(self):
        line = InvoiceLineRecord.model_validate({
            "qty": 3, "unit_rate": 100, "discount_percent": 10, "tax_percent": 18,
            "line_subtotal": "260.00",
        })
        amounts = calculate_invoice_line(line, is_inter_state=False)
        assert amounts.taxable_amount == D("260.00")
        assert amounts.tax_amount == D("46.80")
        assert amounts.cgst_amount == D("23.40")

    def test_stored_amounts_win(self):
        line = InvoiceLineRecord.model_validate({
            "qty": 3, "unit_rate": 100, "discount_percent": 10, "tax_percent": 18,
            "taxable_amount": "270", "cgst_amount": "24.30", "sgst_amount": "24.30",
            "line_total": "318.61",
        })
        amounts = calculate_invoice_line(line, is_inter_state=False)
        assert amounts.line_total == D("318.61")


class TestInvoiceTotals:
    def test_sums_line_amounts(self):
        lines = [
            calculate_line(qty=3, unit_rate=100, discount_percent=10, tax_percent=18),
            calculate_line(qty=2, unit_rate="49.99", tax_percent=12),
        ]
        totals = aggregate_invoice_totals(lines)

        assert totals.taxable_amount == D("369.98")
        assert totals.cgst_amount == D("30.30")
        assert totals.sgst_amount == D("30.30")
        assert totals.igst_amount == D("0")
        assert totals.gst_amount == D("60.60")
        assert totals.total_amount == D("430.58")
        assert totals.taxable_amount == sum(line.taxable_amount for line in lines)

    def test_empty_invoice(self):
        assert aggregate_invoice_totals([]) == InvoiceTotals()

    def test_header_aggregates_win(self):
        local = aggregate_invoice_totals([calculate_line(qty=3, unit_rate=100, discount_percent=10, tax_percent=18)])
        resolved = resolve_invoice_totals(header(total_amount="1000.00"), local)

        assert resolved.total_amount == D("1000.00")
        assert resolved.taxable_amount == D("270.00")

    def test_legacy_header_columns_count_as_stored(self):
        local = aggregate_invoice_totals([calculate_line(qty=3, unit_rate=100, discount_percent=10, tax_percent=18)])
        resolved = resolve_invoice_totals(header(subtotal="500", tax_total="90"), local)

        assert resolved.taxable_amount == D("500")
        assert resolved.gst_amount == D("90")
        assert resolved.total_amount == D("318.60")

    def test_without_header_local_sums_are_used(self):
        local = InvoiceTotals(total_amount=D("12.34"))
        assert resolve_invoice_totals(None, local) is local
