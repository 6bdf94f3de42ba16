"""Settlement arithmetic: gross value, loan deduction and FIFO allocation"""

from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence, Tuple
from coop_settlement.domain.models import Loan
from coop_settlement.domain.exceptions import InvalidDeliveryError

MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0")


def compute_gross_amount(weight: Optional[Decimal], price_per_kg: Optional[Decimal]) -> Decimal:
    """
    Gross value of a delivery, quantized to cents.

    Raises:
        InvalidDeliveryError: If weight or price is missing or not positive, or the gross rounds to zero
    """
    if weight is None or price_per_kg is None:
        raise InvalidDeliveryError("Delivery weight and price per kg are required")
    if Decimal(weight) <= ZERO:
        raise InvalidDeliveryError(f"Delivery weight must be positive, got {weight}")
    if Decimal(price_per_kg) <= ZERO:
        raise InvalidDeliveryError(f"Delivery price per kg must be positive, got {price_per_kg}")

    gross = (Decimal(weight) * Decimal(price_per_kg)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)
    if gross <= ZERO:
        raise InvalidDeliveryError(f"Delivery gross amount must be positive, got {gross}")

    return gross


def total_outstanding(loans: Sequence[Loan]) -> Decimal:
    """Sum of positive outstanding balances"""
    return sum((loan.outstanding_balance for loan in loans if loan.outstanding_balance > ZERO), ZERO)


def compute_deduction(gross_amount: Decimal, loans: Sequence[Loan]) -> Tuple[Decimal, Decimal]:
    """
    Split gross amount into (loan_deduction, net_paid).

    The deduction never exceeds the gross amount nor the group's outstanding total,
    and gross == deduction + net holds exactly.
    """
    deduction = min(total_outstanding(loans), gross_amount)
    return deduction, gross_amount - deduction


def order_loans(loans: Sequence[Loan]) -> List[Loan]:
    """Oldest loan first; id breaks ties so the order is deterministic"""
    return sorted(loans, key=lambda loan: (loan.created_at, loan.id))


def deduction_step(remaining: Decimal, balance: Decimal) -> Decimal:
    """Amount to take from one loan: never more than it owes, never below zero"""
    return max(min(remaining, balance), ZERO)

