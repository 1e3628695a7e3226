"""Earnings/deductions net calculation for final settlements and payroll items."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Protocol

from app.core.money import ZERO, Number, to_decimal


EARNING = "earning"
DEDUCTION = "deduction"


class AmountLine(Protocol):
    kind: str
    amount: Decimal


@dataclass(frozen=True)
class SettlementTotals:
    earnings_total: Decimal
    deductions_total: Decimal
    net_amount: Decimal


def sum_by_kind(lines: Iterable[AmountLine], kind: str) -> Decimal:
    """Sum the amounts of all lines of one kind."""
    return sum(
        (to_decimal(line.amount) for line in lines if line.kind == kind),
        ZERO,
    )


def calculate_net(
    lines: Iterable[AmountLine],
    earnings_total: Optional[Number] = None,
    deductions_total: Optional[Number] = None,
    net_amount: Optional[Number] = None,
) -> SettlementTotals:
    """
    Earnings, deductions and net payable for a set of lines.

    Each backend-supplied figure wins on its own. The net is only derived
    (from the resolved earnings and deductions) when no stored net exists.
    """
    lines = list(lines)

    earnings = (
        to_decimal(earnings_total) if earnings_total is not None
        else sum_by_kind(lines, EARNING)
    )
    deductions = (
        to_decimal(deductions_total) if deductions_total is not None
        else sum_by_kind(lines, DEDUCTION)
    )
    net = to_decimal(net_amount) if net_amount is not None else earnings - deductions

    return SettlementTotals(
        earnings_total=earnings,
        deductions_total=deductions,
        net_amount=net,
    )


def validate_settlement_lines(lines: Iterable) -> List[str]:
    """Return one message per invalid line; an empty list means all good."""
    errors = []
    for index, line in enumerate(lines, start=1):
        if not (line.title or "").strip():
            errors.append(f"Line {index}: title is required")
        if line.amount is None or to_decimal(line.amount) < 0:
            errors.append(f"Line {index}: amount must be non-negative")
    return errors
