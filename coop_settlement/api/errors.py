"""Translate domain and validation errors into the {error, details, timestamp} envelope"""

import logging
from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from coop_settlement.domain.exceptions import (
    AlreadyProcessedError,
    DeliveryNotFoundError,
    DomainException,
    InvalidDeliveryError,
    InvalidPaymentMethodError,
    PersistenceFailureError,
    StoreUnavailableError,
)

# Client-caused failures are 4xx, store-side failures 5xx
STATUS_BY_EXCEPTION = {
    DeliveryNotFoundError: 404,
    AlreadyProcessedError: 409,
    InvalidDeliveryError: 422,
    InvalidPaymentMethodError: 400,
    PersistenceFailureError: 503,
    StoreUnavailableError: 503,
}


def error_response(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    """Build the failure envelope"""
    body = {"error": error, "timestamp": datetime.now(timezone.utc).isoformat()}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    status_code = STATUS_BY_EXCEPTION.get(type(exc), 500)
    request_id = getattr(request.state, "request_id", "unknown")

    details = None
    if isinstance(exc, AlreadyProcessedError) and exc.payout_id:
        details = f"payout_id={exc.payout_id}"

    if status_code >= 500:
        logging.error(f"{type(exc).__name__}: {exc}", extra={"request_id": request_id})
    else:
        logging.warning(f"{type(exc).__name__}: {exc}", extra={"request_id": request_id})

    return error_response(status_code, str(exc), details)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    missing = [".".join(str(p) for p in err["loc"][1:]) for err in exc.errors() if err["type"] == "missing"]
    if "deliveryId" in missing:
        return error_response(400, "Delivery ID is required")
    return error_response(400, "Invalid request", str(exc.errors()))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    logging.error(f"Unexpected error: {exc}", extra={"request_id": request_id})
    return error_response(500, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
