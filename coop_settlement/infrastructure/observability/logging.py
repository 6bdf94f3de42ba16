"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger
from coop_settlement.config import settings
from coop_settlement.domain.models import SettlementResult


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_settlement(request_id: str, delivery_id: str, result: SettlementResult, duration_ms: float) -> None:
    """Log structured settlement outcome for reconciliation"""
    logging.info(
        "Settlement completed",
        extra={
            "request_id": request_id,
            "delivery_id": delivery_id,
            "payout_id": result.payout.id,
            "step": "settlement_complete",
            "gross_amount": str(result.payout.gross_amount),
            "loan_deduction": str(result.deduction_applied),
            "net_paid": str(result.net_paid),
            "ledger_entries": len(result.ledger_entries),
            "failed_loans": result.failed_loan_ids,
            "unallocated": str(result.unallocated),
            "duration_ms": duration_ms,
        },
    )
