"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional


@dataclass
class Delivery:
    """Completed goods handover recorded by field staff"""

    id: str
    farmer_id: str
    farmer_group_id: str
    officer_id: str
    weight: Optional[Decimal]
    price_per_kg: Optional[Decimal]
    created_at: Optional[datetime] = None
    season_id: Optional[str] = None
    farmer_name: Optional[str] = None  # Only set by the joined lookup
    farmer_group_name: Optional[str] = None


@dataclass
class Season:
    """Cropping season; at most one is active"""

    id: str
    name: str
    is_active: bool


@dataclass
class Loan:
    """Snapshot of a group loan as read at settlement start"""

    id: str
    farmer_group_id: str
    amount: Decimal
    outstanding_balance: Decimal
    created_at: datetime
    status: str


@dataclass
class Payout:
    """Immutable settlement of one delivery"""

    id: str
    delivery_id: str
    gross_amount: Decimal
    loan_deduction: Decimal
    net_paid: Decimal
    method: str
    reference_number: Optional[str]
    created_by: str
    created_at: Optional[datetime] = None


@dataclass
class LoanLedgerEntry:
    """Append-only record of a single loan's balance change"""

    id: str
    farmer_id: str
    loan_id: Optional[str]
    season_id: Optional[str]
    entry_type: str  # "sale_deduction"
    amount: Decimal  # Negative for deductions
    balance_after: Optional[Decimal]
    reference_table: Optional[str]
    reference_id: Optional[str]
    created_by: str
    created_at: Optional[datetime] = None


@dataclass
class SettlementResult:
    """Output of settling one delivery"""

    payout: Payout
    deduction_applied: Decimal
    net_paid: Decimal
    ledger_entries: List[LoanLedgerEntry] = field(default_factory=list)
    failed_loan_ids: List[str] = field(default_factory=list)
    unallocated: Decimal = Decimal("0")
