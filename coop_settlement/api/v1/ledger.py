"""GET /v1/loan-ledger - recent loan ledger lines"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from coop_settlement.api.v1.schemas import LedgerListResponse
from coop_settlement.api.v1.payouts import ledger_entry_schema
from coop_settlement.config import settings
from coop_settlement.infrastructure.database.session import get_db
from coop_settlement.infrastructure.database.repositories import LedgerRepository

router = APIRouter()


@router.get("/loan-ledger", response_model=LedgerListResponse)
def list_ledger_entries(
    farmer_id: Optional[str] = Query(None, description="Restrict to one farmer"),
    limit: int = Query(settings.ledger_entries_limit, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """Newest entries first, with farmer and season names"""
    rows = LedgerRepository(db).list_recent_entries(limit=limit, farmer_id=farmer_id)
    return LedgerListResponse(
        entries=[ledger_entry_schema(entry, farmer_name, season_name) for entry, farmer_name, season_name in rows]
    )
