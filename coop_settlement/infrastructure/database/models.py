"""SQLAlchemy ORM models for the cooperative settlement tables"""

import uuid
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, Date, ForeignKey, Text
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class FarmerGroupRecord(Base):
    """Farmer group (club) that loans are extended to"""

    __tablename__ = "farmer_groups"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    location = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    farmers = relationship("FarmerRecord", back_populates="farmer_group")


class FarmerRecord(Base):
    """Individual farmer, member of one group"""

    __tablename__ = "farmers"

    id = Column(String(36), primary_key=True, default=_uuid)
    farmer_group_id = Column(String(36), ForeignKey("farmer_groups.id"), nullable=False, index=True)
    full_name = Column(Text, nullable=False)
    phone = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    farmer_group = relationship("FarmerGroupRecord", back_populates="farmers")


class SeasonRecord(Base):
    """Cropping season"""

    __tablename__ = "seasons"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class DeliveryRecord(Base):
    """Goods handover captured at the buying post"""

    __tablename__ = "deliveries"

    id = Column(String(36), primary_key=True, default=_uuid)
    farmer_id = Column(String(36), ForeignKey("farmers.id"), nullable=False, index=True)
    farmer_group_id = Column(String(36), ForeignKey("farmer_groups.id"), nullable=False, index=True)
    season_id = Column(String(36), ForeignKey("seasons.id"), nullable=True)
    officer_id = Column(Text, nullable=False)
    weight = Column(Numeric(12, 3), nullable=False)
    price_per_kg = Column(Numeric(12, 4), nullable=True)
    delivery_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    farmer = relationship("FarmerRecord")
    farmer_group = relationship("FarmerGroupRecord")


class LoanRecord(Base):
    """Credit extended to a farmer group"""

    __tablename__ = "loans"

    id = Column(String(36), primary_key=True, default=_uuid)
    farmer_group_id = Column(String(36), ForeignKey("farmer_groups.id"), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    outstanding_balance = Column(Numeric(14, 2), nullable=False)
    loan_type = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class PayoutRecord(Base):
    """Settlement of one delivery; delivery_id is unique"""

    __tablename__ = "payouts"

    id = Column(String(36), primary_key=True, default=_uuid)
    delivery_id = Column(String(36), ForeignKey("deliveries.id"), nullable=False, unique=True)
    gross_amount = Column(Numeric(14, 2), nullable=False)
    loan_deduction = Column(Numeric(14, 2), nullable=False)
    net_paid = Column(Numeric(14, 2), nullable=False)
    method = Column(Text, nullable=False)
    reference_number = Column(Text, nullable=True)
    created_by = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    delivery = relationship("DeliveryRecord")


class LoanLedgerRecord(Base):
    """Append-only loan balance movement (no updated_at)"""

    __tablename__ = "loan_ledgers"

    id = Column(String(36), primary_key=True, default=_uuid)
    farmer_id = Column(String(36), ForeignKey("farmers.id"), nullable=False, index=True)
    season_id = Column(String(36), ForeignKey("seasons.id"), nullable=True)
    loan_id = Column(String(36), ForeignKey("loans.id"), nullable=True, index=True)
    entry_type = Column(Text, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    balance_after = Column(Numeric(14, 2), nullable=True)
    reference_table = Column(Text, nullable=True)
    reference_id = Column(String(36), nullable=True, index=True)
    created_by = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    farmer = relationship("FarmerRecord")
    season = relationship("SeasonRecord")
