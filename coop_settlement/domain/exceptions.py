"""Domain-specific exceptions"""

from typing import Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class DeliveryNotFoundError(DomainException):
    """Delivery id does not reference an existing delivery"""

    def __init__(self, delivery_id: str):
        super().__init__(f"Delivery {delivery_id} not found")
        self.delivery_id = delivery_id


class AlreadyProcessedError(DomainException):
    """Delivery already has a payout"""

    def __init__(self, delivery_id: str, payout_id: Optional[str] = None):
        super().__init__(f"Delivery {delivery_id} has already been processed")
        self.delivery_id = delivery_id
        self.payout_id = payout_id


class InvalidDeliveryError(DomainException):
    """Weight or price missing/zero, needs upstream data correction"""

    pass


class InvalidPaymentMethodError(DomainException):
    """Payment method outside the accepted set"""

    pass


class PersistenceFailureError(DomainException):
    """Payout insert failed; no payout exists so the call is retryable"""

    pass


class StoreUnavailableError(DomainException):
    """Data store could not be read"""

    pass
