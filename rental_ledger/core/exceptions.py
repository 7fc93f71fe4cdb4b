"""Billing Error Taxonomy

Every error raised by the service layer carries an HTTP status and a stable
machine-readable code; the exception handlers in ``main`` render them as
``{"success": false, "error": {"code": ..., "message": ...}}``.
"""

from typing import Any, Optional


class LedgerError(Exception):
    """Base class for errors surfaced to API clients"""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> dict:
        error = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"success": False, "error": error}


class ValidationError(LedgerError):
    """Malformed or out-of-range input, rejected before any write"""

    status_code = 422
    code = "VALIDATION_ERROR"


class NotFoundError(LedgerError):
    """Missing contract, invoice, payment, payment method or allocation"""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(LedgerError):
    """Business-rule violation detected against current stored state"""

    status_code = 409
    code = "CONFLICT"


class StorageError(LedgerError):
    """Underlying persistence failure"""

    status_code = 500
    code = "DATABASE_ERROR"


# Conflict codes
INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
EXCEEDS_INVOICE_BALANCE = "EXCEEDS_INVOICE_BALANCE"
INVALID_INVOICE_STATE = "INVALID_INVOICE_STATE"
ALREADY_REVERSED = "ALREADY_REVERSED"
PAYMENT_HAS_ALLOCATIONS = "PAYMENT_HAS_ALLOCATIONS"
CONTRACT_CANCELLED = "CONTRACT_CANCELLED"
CONTRACT_MISMATCH = "CONTRACT_MISMATCH"
DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
