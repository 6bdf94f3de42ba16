"""GET /v1/payouts - payout feed, recovery summary and payout detail"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from coop_settlement.api.v1.schemas import (
    LedgerEntrySchema,
    PayoutDetailResponse,
    PayoutListItem,
    PayoutListResponse,
    PayoutSummaryResponse,
)
from coop_settlement.api.v1.settlement import payout_schema
from coop_settlement.config import settings
from coop_settlement.domain.models import LoanLedgerEntry
from coop_settlement.infrastructure.database.session import get_db
from coop_settlement.infrastructure.database.repositories import LedgerRepository, PayoutRepository

router = APIRouter()


def ledger_entry_schema(
    entry: LoanLedgerEntry, farmer_name: Optional[str] = None, season_name: Optional[str] = None
) -> LedgerEntrySchema:
    return LedgerEntrySchema(
        id=entry.id,
        farmer_id=entry.farmer_id,
        loan_id=entry.loan_id,
        season_id=entry.season_id,
        entry_type=entry.entry_type,
        amount=float(entry.amount),
        balance_after=float(entry.balance_after) if entry.balance_after is not None else None,
        reference_table=entry.reference_table,
        reference_id=entry.reference_id,
        created_by=entry.created_by,
        created_at=entry.created_at.isoformat() if entry.created_at else None,
        farmer_name=farmer_name,
        season_name=season_name,
    )


@router.get("/payouts", response_model=PayoutListResponse)
def list_payouts(
    limit: int = Query(settings.recent_payouts_limit, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Most recent payouts first, with farmer and group names"""
    payout_repo = PayoutRepository(db)
    rows = payout_repo.list_recent_payouts(limit=limit)

    payouts = [
        PayoutListItem(
            id=p.id,
            delivery_id=p.delivery_id,
            gross_amount=float(p.gross_amount),
            loan_deduction=float(p.loan_deduction),
            net_paid=float(p.net_paid),
            method=p.method,
            reference_number=p.reference_number,
            created_by=p.created_by,
            created_at=p.created_at.isoformat() if p.created_at else None,
            farmer_name=farmer_name,
            farmer_group_name=group_name,
        )
        for p, farmer_name, group_name in rows
    ]

    return PayoutListResponse(payouts=payouts)


@router.get("/payouts/summary", response_model=PayoutSummaryResponse)
def get_payout_summary(db: Session = Depends(get_db)):
    """
    Totals across all payouts.

    Recovery rate is the share of gross value withheld for loans, in percent
    to one decimal place; 0 when nothing has been paid.
    """
    count, net_total, deduction_total = PayoutRepository(db).summarize_payouts()

    gross_total = net_total + deduction_total
    recovery_rate = Decimal("0")
    if gross_total > 0:
        recovery_rate = (deduction_total / gross_total * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)

    return PayoutSummaryResponse(
        total_payments=count,
        total_net_paid=float(net_total),
        total_loan_deductions=float(deduction_total),
        recovery_rate=float(recovery_rate),
    )


@router.get("/payouts/{payout_id}", response_model=PayoutDetailResponse)
def get_payout(payout_id: str, db: Session = Depends(get_db)):
    """Payout with the ledger lines it produced"""
    payout = PayoutRepository(db).get_payout(payout_id)
    if payout is None:
        raise HTTPException(status_code=404, detail="Payout not found")

    entries = LedgerRepository(db).list_entries_for_payout(payout.id)

    return PayoutDetailResponse(
        payout=payout_schema(payout),
        ledger_entries=[ledger_entry_schema(e) for e in entries],
    )
