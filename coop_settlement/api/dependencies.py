"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from coop_settlement.infrastructure.database.session import get_db
from coop_settlement.services.settlement import SettlementEngine


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_settlement_engine(db: Session = Depends(get_db)) -> SettlementEngine:
    """Provide a settlement engine bound to the request's session"""
    return SettlementEngine(db)
