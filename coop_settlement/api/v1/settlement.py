"""POST /v1/process-delivery - settle one delivery against group loans"""

import time
from fastapi import APIRouter, Depends, Request

from coop_settlement.api.v1.schemas import ErrorResponse, ProcessDeliveryRequest, ProcessDeliveryResponse, PayoutSchema
from coop_settlement.api.dependencies import get_request_id, get_settlement_engine
from coop_settlement.services.settlement import SettlementEngine
from coop_settlement.domain.models import Payout
from coop_settlement.domain.exceptions import (
    AlreadyProcessedError,
    DeliveryNotFoundError,
    InvalidDeliveryError,
    PersistenceFailureError,
)
from coop_settlement.infrastructure.observability.metrics import record_settlement
from coop_settlement.infrastructure.observability.logging import log_settlement

router = APIRouter()

OUTCOME_BY_EXCEPTION = {
    AlreadyProcessedError: "already_processed",
    DeliveryNotFoundError: "not_found",
    InvalidDeliveryError: "invalid_delivery",
    PersistenceFailureError: "persistence_failure",
}


def payout_schema(payout: Payout) -> PayoutSchema:
    return PayoutSchema(
        id=payout.id,
        delivery_id=payout.delivery_id,
        gross_amount=float(payout.gross_amount),
        loan_deduction=float(payout.loan_deduction),
        net_paid=float(payout.net_paid),
        method=payout.method,
        reference_number=payout.reference_number,
        created_by=payout.created_by,
        created_at=payout.created_at.isoformat() if payout.created_at else None,
    )


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Malformed request or unknown payment method"},
    404: {"model": ErrorResponse, "description": "Delivery not found"},
    409: {"model": ErrorResponse, "description": "Delivery already processed"},
    422: {"model": ErrorResponse, "description": "Delivery weight or price missing or not positive"},
    503: {"model": ErrorResponse, "description": "Payout could not be stored or delivery store unreachable"},
}


@router.post("/process-delivery", response_model=ProcessDeliveryResponse, responses=ERROR_RESPONSES)
def process_delivery(
    request_body: ProcessDeliveryRequest,
    request: Request,
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """
    Settle a delivery: compute its value, withhold outstanding group loans
    oldest first, and record the payout plus per-loan ledger lines.

    A delivery settles at most once; a second call answers 409.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        result = engine.settle_delivery(
            request_body.delivery_id,
            payment_method=request_body.payment_method,
            reference_number=request_body.reference_number,
        )
    except Exception as e:
        # Envelope and logging are handled by the app exception handlers
        record_settlement(OUTCOME_BY_EXCEPTION.get(type(e), "error"))
        raise

    duration_ms = (time.time() - start_time) * 1000
    record_settlement("settled", result.payout.gross_amount, result.deduction_applied)
    log_settlement(request_id, request_body.delivery_id, result, duration_ms)

    return ProcessDeliveryResponse(
        payout=payout_schema(result.payout),
        deduction_applied=float(result.deduction_applied),
        net_paid=float(result.net_paid),
        message=f"Payment processed successfully. Deducted {result.deduction_applied} from outstanding loans.",
    )
