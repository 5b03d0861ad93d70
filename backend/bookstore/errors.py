# Overview: Domain error taxonomy for the order engine.

"""
Order engine errors.

Every error is recoverable at the caller and carries the HTTP status the
API layer reports it with. A service that raises one of these has already
rolled back its transaction, so the ledger is never left half-written.

StaleOrderVersion is the only error a caller should retry automatically.
AlreadySettled and AlreadyPaid are informational: the work was done before.
"""

from __future__ import annotations


class OrderError(Exception):
    """Base class for order lifecycle and settlement errors."""
    http_status = 400
    code = "ORDER_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": str(self), "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class OrderNotFound(OrderError):
    http_status = 404
    code = "ORDER_NOT_FOUND"


class InvalidTransition(OrderError):
    http_status = 409
    code = "INVALID_TRANSITION"


class MissingTrackingNumber(OrderError):
    http_status = 422
    code = "MISSING_TRACKING_NUMBER"


class RefundExceedsBalance(OrderError):
    http_status = 422
    code = "REFUND_EXCEEDS_BALANCE"


class StaleOrderVersion(OrderError):
    http_status = 409
    code = "STALE_ORDER_VERSION"


class AlreadySettled(OrderError):
    http_status = 200
    code = "ALREADY_SETTLED"

    def __init__(self, message: str, payouts: list | None = None):
        super().__init__(message)
        self.payouts = payouts or []


class AlreadyPaid(OrderError):
    http_status = 409
    code = "ALREADY_PAID"


class PayoutNotFound(OrderError):
    http_status = 404
    code = "PAYOUT_NOT_FOUND"


class SellerMissing(OrderError):
    http_status = 422
    code = "SELLER_MISSING"

    def __init__(self, message: str, seller_id: int | None = None):
        super().__init__(message, details={"seller_id": seller_id})
        self.seller_id = seller_id
