from dataclasses import dataclass
from decimal import Decimal

from app.schemas.settlement import SettlementLineInput
from app.services.settlement_calculator import calculate_net, sum_by_kind, validate_settlement_lines


def lines():
    return [
        SettlementLineInput(kind="earning", title="Leave encashment", amount="1000"),
        SettlementLineInput(kind="earning", title="Gratuity", amount=500),
        SettlementLineInput(kind="deduction", title="Notice shortfall", amount="200.50"),
    ]


def test_sum_by_kind():
    assert sum_by_kind(lines(), "earning") == Decimal("1500")
    assert sum_by_kind(lines(), "deduction") == Decimal("200.50")
    assert sum_by_kind([], "earning") == Decimal("0")


def test_net_from_lines():
    totals = calculate_net(lines())
    assert totals.earnings_total == Decimal("1500")
    assert totals.deductions_total == Decimal("200.50")
    assert totals.net_amount == Decimal("1299.50")


def test_stored_totals_win_independently():
    totals = calculate_net(lines(), earnings_total="2000")
    assert totals.earnings_total == Decimal("2000")
    assert totals.deductions_total == Decimal("200.50")
    assert totals.net_amount == Decimal("1799.50")

    totals = calculate_net(lines(), net_amount=999)
    assert totals.earnings_total == Decimal("1500")
    assert totals.net_amount == Decimal("999")


def test_validate_lines():
    errors = validate_settlement_lines([
        SettlementLineInput(kind="earning", title="  ", amount=10),
        SettlementLineInput(kind="deduction", title="Advance", amount=-5),
        SettlementLineInput(kind="deduction", title="Loan", amount=0),
    ])
    assert errors == [
        "Line 1: title is required",
        "Line 2: amount must be non-negative",
    ]


@dataclass
class PayrollItem:
    kind: str
    amount: Decimal
    component: str = ""


def test_net_for_payroll_items():
    items = [
        PayrollItem("earning", Decimal("42000"), "Basic"),
        PayrollItem("earning", Decimal("8400.50"), "HRA"),
        PayrollItem("deduction", Decimal("1800"), "PF"),
        PayrollItem("deduction", Decimal("200"), "Professional tax"),
    ]

    totals = calculate_net(items)

    assert totals.earnings_total == Decimal("50400.50")
    assert totals.deductions_total == Decimal("2000")
    assert totals.net_amount == Decimal("48400.50")
