"""GET /v1/diagnostics/tables - probe the tables settlement depends on"""

import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coop_settlement.api.errors import error_response
from coop_settlement.api.v1.schemas import DiagnosticsResponse, TableCheck
from coop_settlement.infrastructure.database.models import Base
from coop_settlement.infrastructure.database.session import get_db

router = APIRouter()

SETTLEMENT_TABLES = ["deliveries", "payouts", "loans", "loan_ledgers", "farmers", "farmer_groups", "seasons"]


@router.get("/diagnostics/tables", response_model=DiagnosticsResponse)
def check_tables(db: Session = Depends(get_db)):
    """
    Check connectivity, then read one row from each settlement table.

    A missing or unreadable table is reported per table rather than failing
    the whole check; only a dead connection answers 500.
    """
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db.rollback()
        logging.error(f"Database connection test failed: {e}")
        return error_response(500, f"Database connection failed: {e}")

    table_checks = {}
    for name in SETTLEMENT_TABLES:
        try:
            db.execute(select(Base.metadata.tables[name]).limit(1)).first()
            table_checks[name] = TableCheck(exists=True)
        except SQLAlchemyError as e:
            db.rollback()
            table_checks[name] = TableCheck(exists=False, error=str(e.orig) if getattr(e, "orig", None) else str(e))

    return DiagnosticsResponse(
        success=True,
        message="Database connection successful",
        table_checks=table_checks,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
