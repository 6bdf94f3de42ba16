"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional


class ProcessDeliveryRequest(BaseModel):
    """Request body for POST /v1/process-delivery"""

    model_config = ConfigDict(populate_by_name=True)

    delivery_id: str = Field(..., alias="deliveryId", min_length=1, description="Delivery identifier")
    payment_method: Optional[str] = Field(None, alias="paymentMethod", description="Defaults to bank")
    reference_number: Optional[str] = Field(None, alias="referenceNumber", description="Stored as-is")


class PayoutSchema(BaseModel):
    """Payout row as stored"""

    id: str
    delivery_id: str
    gross_amount: float
    loan_deduction: float
    net_paid: float
    method: str
    reference_number: Optional[str] = None
    created_by: str
    created_at: Optional[str] = None


class ProcessDeliveryResponse(BaseModel):
    """Success response for POST /v1/process-delivery"""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    payout: PayoutSchema
    deduction_applied: float = Field(..., alias="deductionApplied")
    net_paid: float = Field(..., alias="netPaid")
    message: str


class ErrorResponse(BaseModel):
    """Failure envelope for every 4xx/5xx"""

    error: str
    details: Optional[str] = None
    timestamp: str


class PayoutListItem(PayoutSchema):
    """Payout with display names"""

    farmer_name: Optional[str] = None
    farmer_group_name: Optional[str] = None


class PayoutListResponse(BaseModel):
    """Response for GET /v1/payouts"""

    payouts: List[PayoutListItem]


class PayoutSummaryResponse(BaseModel):
    """Response for GET /v1/payouts/summary"""

    total_payments: int
    total_net_paid: float
    total_loan_deductions: float
    recovery_rate: float  # Percent of gross withheld for loans


class LedgerEntrySchema(BaseModel):
    """Single loan ledger line"""

    id: str
    farmer_id: str
    loan_id: Optional[str] = None
    season_id: Optional[str] = None
    entry_type: str
    amount: float
    balance_after: Optional[float] = None
    reference_table: Optional[str] = None
    reference_id: Optional[str] = None
    created_by: str
    created_at: Optional[str] = None
    farmer_name: Optional[str] = None
    season_name: Optional[str] = None


class PayoutDetailResponse(BaseModel):
    """Response for GET /v1/payouts/{payout_id}"""

    payout: PayoutSchema
    ledger_entries: List[LedgerEntrySchema]


class LedgerListResponse(BaseModel):
    """Response for GET /v1/loan-ledger"""

    entries: List[LedgerEntrySchema]


class TableCheck(BaseModel):
    """Probe result for one table"""

    exists: bool
    error: Optional[str] = None


class DiagnosticsResponse(BaseModel):
    """Response for GET /v1/diagnostics/tables"""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    table_checks: Dict[str, TableCheck] = Field(..., alias="tableChecks")
    timestamp: str
