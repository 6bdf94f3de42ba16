"""Data access layer for settlement entities"""

from decimal import Decimal
from typing import List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, contains_eager
from coop_settlement.infrastructure.database.models import (
    DeliveryRecord,
    FarmerGroupRecord,
    FarmerRecord,
    LoanLedgerRecord,
    LoanRecord,
    PayoutRecord,
    SeasonRecord,
)
from coop_settlement.domain.models import Delivery, Loan, LoanLedgerEntry, Payout, Season
from coop_settlement.domain.exceptions import AlreadyProcessedError, PersistenceFailureError


def _to_payout(record: PayoutRecord) -> Payout:
    return Payout(
        id=record.id,
        delivery_id=record.delivery_id,
        gross_amount=record.gross_amount,
        loan_deduction=record.loan_deduction,
        net_paid=record.net_paid,
        method=record.method,
        reference_number=record.reference_number,
        created_by=record.created_by,
        created_at=record.created_at,
    )


def _to_ledger_entry(record: LoanLedgerRecord) -> LoanLedgerEntry:
    return LoanLedgerEntry(
        id=record.id,
        farmer_id=record.farmer_id,
        loan_id=record.loan_id,
        season_id=record.season_id,
        entry_type=record.entry_type,
        amount=record.amount,
        balance_after=record.balance_after,
        reference_table=record.reference_table,
        reference_id=record.reference_id,
        created_by=record.created_by,
        created_at=record.created_at,
    )


class DeliveryRepository:
    """Repository for deliveries (read-only for settlement)"""

    def __init__(self, db: Session):
        self.db = db

    def get_delivery(self, delivery_id: str, with_relations: bool = True) -> Optional[Delivery]:
        """
        Fetch a delivery, optionally joined to its farmer and group.

        The joined form is an inner join: a delivery whose farmer or group row
        is missing comes back as None, and callers retry without relations.
        """
        query = self.db.query(DeliveryRecord).filter(DeliveryRecord.id == delivery_id)
        if with_relations:
            query = (
                query.join(DeliveryRecord.farmer)
                .join(DeliveryRecord.farmer_group)
                .options(contains_eager(DeliveryRecord.farmer), contains_eager(DeliveryRecord.farmer_group))
            )

        record = query.first()
        if record is None:
            return None

        return Delivery(
            id=record.id,
            farmer_id=record.farmer_id,
            farmer_group_id=record.farmer_group_id,
            officer_id=record.officer_id,
            weight=record.weight,
            price_per_kg=record.price_per_kg,
            created_at=record.created_at,
            season_id=record.season_id,
            farmer_name=record.farmer.full_name if with_relations else None,
            farmer_group_name=record.farmer_group.name if with_relations else None,
        )


class SeasonRepository:
    """Repository for seasons"""

    def __init__(self, db: Session):
        self.db = db

    def get_active_season(self) -> Optional[Season]:
        """Most recently created active season, if any"""
        record = (
            self.db.query(SeasonRecord)
            .filter(SeasonRecord.is_active.is_(True))
            .order_by(SeasonRecord.created_at.desc())
            .first()
        )
        if record is None:
            return None
        return Season(id=record.id, name=record.name, is_active=record.is_active)


class LoanRepository:
    """Repository for group loans"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _to_loan(record: LoanRecord) -> Loan:
        return Loan(
            id=record.id,
            farmer_group_id=record.farmer_group_id,
            amount=record.amount,
            outstanding_balance=record.outstanding_balance,
            created_at=record.created_at,
            status=record.status,
        )

    def get_outstanding_loans(self, farmer_group_id: str) -> List[Loan]:
        """Loans with a positive balance, oldest first"""
        records = (
            self.db.query(LoanRecord)
            .filter(LoanRecord.farmer_group_id == farmer_group_id, LoanRecord.outstanding_balance > 0)
            .order_by(LoanRecord.created_at.asc(), LoanRecord.id.asc())
            .all()
        )
        return [self._to_loan(r) for r in records]

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Fresh read of a single loan"""
        record = self.db.query(LoanRecord).filter(LoanRecord.id == loan_id).first()
        return self._to_loan(record) if record else None

    def decrement_balance(self, loan_id: str, amount: Decimal) -> Optional[Decimal]:
        """
        Atomically subtract amount from a loan's outstanding balance.

        The UPDATE only matches while the balance still covers the amount, so the
        balance can never go negative even when settlements race on a stale
        snapshot. Not committed here.

        Returns:
            Balance after the decrement, or None if the row no longer covers the amount
        """
        updated = (
            self.db.query(LoanRecord)
            .filter(LoanRecord.id == loan_id, LoanRecord.outstanding_balance >= amount)
            .update(
                {LoanRecord.outstanding_balance: LoanRecord.outstanding_balance - amount},
                synchronize_session=False,
            )
        )
        if updated == 0:
            return None

        return (
            self.db.query(LoanRecord.outstanding_balance)
            .filter(LoanRecord.id == loan_id)
            .scalar()
        )


class PayoutRepository:
    """Repository for payouts"""

    def __init__(self, db: Session):
        self.db = db

    def get_payout_by_delivery(self, delivery_id: str) -> Optional[Payout]:
        """Existence check used before settling"""
        record = self.db.query(PayoutRecord).filter(PayoutRecord.delivery_id == delivery_id).first()
        return _to_payout(record) if record else None

    def get_payout(self, payout_id: str) -> Optional[Payout]:
        record = self.db.query(PayoutRecord).filter(PayoutRecord.id == payout_id).first()
        return _to_payout(record) if record else None

    def create_payout(
        self,
        delivery_id: str,
        gross_amount: Decimal,
        loan_deduction: Decimal,
        net_paid: Decimal,
        method: str,
        reference_number: Optional[str],
        created_by: str,
    ) -> Payout:
        """
        Insert and commit the payout row. This commit is the settlement's point of no return.

        Raises:
            AlreadyProcessedError: A payout for this delivery already exists (unique constraint on delivery_id)
            PersistenceFailureError: Any other database failure, including other integrity
                violations such as an unknown delivery_id; nothing was written
        """
        db_payout = PayoutRecord(
            delivery_id=delivery_id,
            gross_amount=gross_amount,
            loan_deduction=loan_deduction,
            net_paid=net_paid,
            method=method,
            reference_number=reference_number,
            created_by=created_by,
        )
        try:
            self.db.add(db_payout)
            self.db.flush()
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            existing = self.db.query(PayoutRecord).filter(PayoutRecord.delivery_id == delivery_id).first()
            if existing is None:
                raise PersistenceFailureError(f"Failed to create payout: {e}") from e
            raise AlreadyProcessedError(delivery_id, payout_id=existing.id) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailureError(f"Failed to create payout: {e}") from e

        self.db.refresh(db_payout)
        return _to_payout(db_payout)

    def list_recent_payouts(self, limit: int = 50) -> List[Tuple[PayoutRecord, Optional[str], Optional[str]]]:
        """Newest payouts with farmer and group names for display"""
        return (
            self.db.query(PayoutRecord, FarmerRecord.full_name, FarmerGroupRecord.name)
            .outerjoin(DeliveryRecord, PayoutRecord.delivery_id == DeliveryRecord.id)
            .outerjoin(FarmerRecord, DeliveryRecord.farmer_id == FarmerRecord.id)
            .outerjoin(FarmerGroupRecord, DeliveryRecord.farmer_group_id == FarmerGroupRecord.id)
            .order_by(PayoutRecord.created_at.desc())
            .limit(limit)
            .all()
        )

    def summarize_payouts(self) -> Tuple[int, Decimal, Decimal]:
        """(payout count, total net paid, total loan deductions)"""
        count, net_total, deduction_total = self.db.query(
            func.count(PayoutRecord.id),
            func.coalesce(func.sum(PayoutRecord.net_paid), 0),
            func.coalesce(func.sum(PayoutRecord.loan_deduction), 0),
        ).one()
        return count, Decimal(str(net_total)), Decimal(str(deduction_total))


class LedgerRepository:
    """Repository for loan ledger entries (insert and read only)"""

    def __init__(self, db: Session):
        self.db = db

    def create_entry(
        self,
        farmer_id: str,
        loan_id: str,
        season_id: Optional[str],
        entry_type: str,
        amount: Decimal,
        balance_after: Decimal,
        reference_table: str,
        reference_id: str,
        created_by: str,
    ) -> LoanLedgerEntry:
        """Stage a ledger line in the current transaction"""
        db_entry = LoanLedgerRecord(
            farmer_id=farmer_id,
            loan_id=loan_id,
            season_id=season_id,
            entry_type=entry_type,
            amount=amount,
            balance_after=balance_after,
            reference_table=reference_table,
            reference_id=reference_id,
            created_by=created_by,
        )
        self.db.add(db_entry)
        self.db.flush()
        return _to_ledger_entry(db_entry)

    def list_entries_for_payout(self, payout_id: str) -> List[LoanLedgerEntry]:
        records = (
            self.db.query(LoanLedgerRecord)
            .filter(LoanLedgerRecord.reference_table == "payouts", LoanLedgerRecord.reference_id == payout_id)
            .order_by(LoanLedgerRecord.created_at.asc())
            .all()
        )
        return [_to_ledger_entry(r) for r in records]

    def list_recent_entries(
        self, limit: int = 100, farmer_id: Optional[str] = None
    ) -> List[Tuple[LoanLedgerEntry, Optional[str], Optional[str]]]:
        """Newest ledger lines with farmer and season names"""
        query = (
            self.db.query(LoanLedgerRecord, FarmerRecord.full_name, SeasonRecord.name)
            .outerjoin(FarmerRecord, LoanLedgerRecord.farmer_id == FarmerRecord.id)
            .outerjoin(SeasonRecord, LoanLedgerRecord.season_id == SeasonRecord.id)
        )
        if farmer_id:
            query = query.filter(LoanLedgerRecord.farmer_id == farmer_id)
        rows = query.order_by(LoanLedgerRecord.created_at.desc()).limit(limit).all()
        return [(_to_ledger_entry(r), farmer_name, season_name) for r, farmer_name, season_name in rows]
