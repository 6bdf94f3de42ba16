"""
Delivery settlement engine.

Turns one unsettled delivery into a payout and applies the loan deduction
across the owning group's loans, oldest first.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coop_settlement.config import settings
from coop_settlement.domain.allocation import (
    ZERO,
    compute_deduction,
    compute_gross_amount,
    deduction_step,
    order_loans,
)
from coop_settlement.domain.exceptions import (
    AlreadyProcessedError,
    DeliveryNotFoundError,
    InvalidPaymentMethodError,
    StoreUnavailableError,
)
from coop_settlement.domain.models import Delivery, Loan, LoanLedgerEntry, Payout, Season, SettlementResult
from coop_settlement.infrastructure.database.repositories import (
    DeliveryRepository,
    LedgerRepository,
    LoanRepository,
    PayoutRepository,
    SeasonRepository,
)
from coop_settlement.infrastructure.observability.metrics import (
    balance_update_conflicts_counter,
    ledger_failure_counter,
)

SALE_DEDUCTION = "sale_deduction"
PAYOUT_REFERENCE_TABLE = "payouts"


class SettlementEngine:
    """Settles deliveries against a single database session"""

    def __init__(
        self,
        db: Session,
        payment_methods: Optional[Sequence[str]] = None,
        max_balance_attempts: Optional[int] = None,
    ):
        self.db = db
        self.payment_methods = list(payment_methods or settings.payment_methods)
        self.max_balance_attempts = max_balance_attempts or settings.balance_update_max_attempts

        self.deliveries = DeliveryRepository(db)
        self.seasons = SeasonRepository(db)
        self.loans = LoanRepository(db)
        self.payouts = PayoutRepository(db)
        self.ledger = LedgerRepository(db)

    def settle_delivery(
        self,
        delivery_id: str,
        payment_method: Optional[str] = None,
        reference_number: Optional[str] = None,
    ) -> SettlementResult:
        """
        Settle a delivery exactly once.

        Flow:
        1. Fetch delivery (joined lookup, falling back to the bare row)
        2. Reject if a payout already exists
        3. Resolve active season (optional)
        4. Load outstanding group loans, oldest first (empty on failure)
        5. Compute gross, deduction and net
        6. Commit the payout (unique on delivery_id)
        7. Apply the deduction loan by loan; failures are logged and skipped

        Raises:
            InvalidPaymentMethodError: Unknown payment method
            DeliveryNotFoundError: No such delivery
            AlreadyProcessedError: A payout exists, or a concurrent call committed first
            InvalidDeliveryError: Weight or price missing, or gross not positive
            PersistenceFailureError: Payout insert failed; safe to retry
            StoreUnavailableError: Delivery or payout state could not be read
        """
        method = payment_method or settings.default_payment_method
        if method not in self.payment_methods:
            raise InvalidPaymentMethodError(
                f"Unsupported payment method '{method}', expected one of {', '.join(self.payment_methods)}"
            )

        delivery = self._fetch_delivery(delivery_id)

        # Fast path only; the unique constraint on payouts.delivery_id is what serializes settlements
        try:
            existing = self.payouts.get_payout_by_delivery(delivery_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnavailableError(f"Failed to check existing payout: {e}") from e
        if existing is not None:
            raise AlreadyProcessedError(delivery_id, payout_id=existing.id)

        season = self._resolve_active_season(delivery_id)
        loans = self._load_outstanding_loans(delivery)

        gross_amount = compute_gross_amount(delivery.weight, delivery.price_per_kg)
        loan_deduction, net_paid = compute_deduction(gross_amount, loans)

        payout = self.payouts.create_payout(
            delivery_id=delivery_id,
            gross_amount=gross_amount,
            loan_deduction=loan_deduction,
            net_paid=net_paid,
            method=method,
            reference_number=reference_number,
            created_by=delivery.officer_id,
        )

        result = SettlementResult(payout=payout, deduction_applied=loan_deduction, net_paid=net_paid)
        if loan_deduction > ZERO and loans:
            entries, failed, unallocated = self._apply_deduction(delivery, payout, loans, loan_deduction, season)
            result.ledger_entries = entries
            result.failed_loan_ids = failed
            result.unallocated = unallocated

        return result

    def _fetch_delivery(self, delivery_id: str) -> Delivery:
        """Joined lookup first; names are decoration and must not block settlement"""
        delivery = None
        try:
            delivery = self.deliveries.get_delivery(delivery_id, with_relations=True)
        except SQLAlchemyError as e:
            self.db.rollback()
            logging.warning(
                f"Joined delivery lookup failed, using bare row: {e}",
                extra={"delivery_id": delivery_id},
            )

        if delivery is None:
            try:
                delivery = self.deliveries.get_delivery(delivery_id, with_relations=False)
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StoreUnavailableError(f"Failed to fetch delivery: {e}") from e

        if delivery is None:
            raise DeliveryNotFoundError(delivery_id)

        return delivery

    def _resolve_active_season(self, delivery_id: str) -> Optional[Season]:
        try:
            season = self.seasons.get_active_season()
        except SQLAlchemyError as e:
            self.db.rollback()
            logging.warning(f"Active season lookup failed: {e}", extra={"delivery_id": delivery_id})
            return None

        if season is None:
            logging.info("No active season, ledger entries will carry no season", extra={"delivery_id": delivery_id})
        return season

    def _load_outstanding_loans(self, delivery: Delivery) -> List[Loan]:
        try:
            return self.loans.get_outstanding_loans(delivery.farmer_group_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logging.warning(
                f"Loan lookup failed, settling with no deduction: {e}",
                extra={"delivery_id": delivery.id, "farmer_group_id": delivery.farmer_group_id},
            )
            return []

    def _apply_deduction(
        self,
        delivery: Delivery,
        payout: Payout,
        loans: Sequence[Loan],
        loan_deduction: Decimal,
        season: Optional[Season],
    ) -> Tuple[List[LoanLedgerEntry], List[str], Decimal]:
        """
        Walk loans oldest first, committing each loan's decrement together with its ledger line.

        Returns:
            (ledger entries written, ids of loans that failed, deduction left unallocated)
        """
        entries = []
        failed_loan_ids = []
        remaining = loan_deduction

        for loan in order_loans(loans):
            if remaining <= ZERO:
                break

            try:
                applied, balance_after = self._decrement_loan(loan, remaining)
                if applied <= ZERO:
                    continue

                entry = self.ledger.create_entry(
                    farmer_id=delivery.farmer_id,
                    loan_id=loan.id,
                    season_id=season.id if season else None,
                    entry_type=SALE_DEDUCTION,
                    amount=-applied,
                    balance_after=balance_after,
                    reference_table=PAYOUT_REFERENCE_TABLE,
                    reference_id=payout.id,
                    created_by=delivery.officer_id,
                )
                self.db.commit()
            except SQLAlchemyError as e:
                # Payout is already committed; this loan is left for reconciliation
                self.db.rollback()
                ledger_failure_counter.inc()
                failed_loan_ids.append(loan.id)
                logging.error(
                    f"Loan deduction failed: {e}",
                    extra={"delivery_id": delivery.id, "payout_id": payout.id, "loan_id": loan.id},
                )
                continue

            entries.append(entry)
            remaining -= applied

        if remaining > ZERO:
            logging.warning(
                "Loan deduction not fully allocated",
                extra={
                    "delivery_id": delivery.id,
                    "payout_id": payout.id,
                    "loan_deduction": str(loan_deduction),
                    "unallocated": str(remaining),
                },
            )

        return entries, failed_loan_ids, remaining

    def _decrement_loan(self, loan: Loan, remaining: Decimal) -> Tuple[Decimal, Decimal]:
        """
        Apply min(remaining, balance) to one loan with a conditional decrement.

        When a concurrent settlement moved the balance since the snapshot, the
        loan is re-read and the step recomputed, up to max_balance_attempts.

        Returns:
            (amount applied, balance after); amount is zero when nothing could be applied
        """
        balance = loan.outstanding_balance

        for _ in range(self.max_balance_attempts):
            amount = deduction_step(remaining, balance)
            if amount <= ZERO:
                return ZERO, balance

            balance_after = self.loans.decrement_balance(loan.id, amount)
            if balance_after is not None:
                return amount, balance_after

            balance_update_conflicts_counter.inc()
            fresh = self.loans.get_loan(loan.id)
            balance = fresh.outstanding_balance if fresh else ZERO

        logging.warning(
            "Loan balance kept changing, giving up on this loan",
            extra={"loan_id": loan.id, "attempts": self.max_balance_attempts},
        )
        return ZERO, balance
