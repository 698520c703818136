"""
Error taxonomy shared by the store core.

Every error carries an HTTP status and a structured payload so the API layer
can answer with ``{"error": ..., "details": ...}`` instead of crashing.
"""
from typing import Any, Dict, Optional


class StoreError(Exception):
    status_code = 500

    def __init__(self, error: str, details: Any = None):
        super().__init__(error)
        self.error = error
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "details": self.details}


class ValidationError(StoreError):
    """Missing shipping fields, empty cart, unknown status/priority value."""

    status_code = 400


class NotFoundError(StoreError):
    status_code = 404


class StockConflictError(StoreError):
    """Requested quantity exceeds live stock when the order is created.

    ``details`` lists every affected line item.
    """

    status_code = 409


class PaymentError(StoreError):
    status_code = 402


class PaymentCancelled(PaymentError):
    """The shopper closed the gateway before it finished."""


class NotificationError(StoreError):
    status_code = 502


class DatabaseUnavailable(StoreError):
    status_code = 503

    def __init__(self, details: Optional[str] = None):
        super().__init__("Database not available", details)
