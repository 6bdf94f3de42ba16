"""Pytest fixtures for testing"""

import pytest
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from typing import Callable, Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from coop_settlement.api.main import create_app
from coop_settlement.infrastructure.database.models import (
    Base,
    DeliveryRecord,
    FarmerGroupRecord,
    FarmerRecord,
    LoanRecord,
    SeasonRecord,
)
from coop_settlement.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

OFFICER_ID = "officer-1"


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def coop(db: Session) -> SimpleNamespace:
    """One farmer group with one member"""
    group = FarmerGroupRecord(name="Mwanza Cotton Club", location="Chikwawa")
    db.add(group)
    db.flush()
    farmer = FarmerRecord(full_name="Grace Banda", farmer_group_id=group.id, phone="0888000111")
    db.add(farmer)
    db.commit()
    return SimpleNamespace(group_id=group.id, farmer_id=farmer.id)


@pytest.fixture
def make_loan(db: Session, coop: SimpleNamespace) -> Callable[..., str]:
    """Create a group loan; returns its id"""

    def _make_loan(balance: str, created_at: datetime, group_id: Optional[str] = None, amount: Optional[str] = None) -> str:
        loan = LoanRecord(
            farmer_group_id=group_id or coop.group_id,
            amount=Decimal(amount or balance),
            outstanding_balance=Decimal(balance),
            loan_type="inputs",
            created_at=created_at,
        )
        db.add(loan)
        db.commit()
        return loan.id

    return _make_loan


@pytest.fixture
def make_delivery(db: Session, coop: SimpleNamespace) -> Callable[..., str]:
    """Create a delivery for the coop farmer; returns its id"""

    def _make_delivery(
        weight: str,
        price_per_kg: Optional[str],
        farmer_id: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> str:
        delivery = DeliveryRecord(
            farmer_id=farmer_id or coop.farmer_id,
            farmer_group_id=group_id or coop.group_id,
            officer_id=OFFICER_ID,
            weight=Decimal(weight),
            price_per_kg=Decimal(price_per_kg) if price_per_kg is not None else None,
        )
        db.add(delivery)
        db.commit()
        return delivery.id

    return _make_delivery


@pytest.fixture
def active_season(db: Session) -> str:
    season = SeasonRecord(name="2025/26", is_active=True)
    db.add(season)
    db.commit()
    return season.id


@pytest.fixture
def balance_of(db: Session) -> Callable[[str], Decimal]:
    """Committed outstanding balance of a loan"""

    def _balance_of(loan_id: str) -> Decimal:
        db.expire_all()
        return db.query(LoanRecord.outstanding_balance).filter(LoanRecord.id == loan_id).scalar()

    return _balance_of
