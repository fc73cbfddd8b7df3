"""Error taxonomy of the booking core.

Every ledger operation raises one of these; the API layer maps them to HTTP
responses through ``status_code`` and ``detail``.
"""
from __future__ import annotations

from decimal import Decimal


class LedgerError(Exception):
    status_code = 400
    kind = "ledger_error"

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    @property
    def detail(self) -> dict:
        out = {"message": self.message}
        for k, v in self.extra.items():
            out[k] = str(v) if isinstance(v, Decimal) else v
        return out


class ValidationError(LedgerError):
    status_code = 400
    kind = "validation_error"


class NotFoundError(LedgerError):
    status_code = 404
    kind = "not_found"


class ConflictError(LedgerError):
    status_code = 409
    kind = "conflict"


class DuplicatePaymentError(ConflictError):
    kind = "duplicate_payment"


class AuthorizationError(LedgerError):
    status_code = 403
    kind = "forbidden"


class PaymentIncompleteError(LedgerError):
    status_code = 402
    kind = "payment_incomplete"

    def __init__(self, required: Decimal, paid: Decimal):
        self.required = required
        self.paid = paid
        self.shortfall = required - paid
        super().__init__(
            f"Payment incomplete. Required: ${required:.2f}, Paid: ${paid:.2f}",
            required=required, paid=paid, shortfall=self.shortfall,
        )


class RefundExceedsAvailableError(LedgerError):
    status_code = 400
    kind = "refund_exceeds_available"

    def __init__(self, requested: Decimal, available: Decimal):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Refund amount exceeds available amount. Available: ${available:.2f}",
            requested=requested, available=available,
        )


class InvalidTransitionError(LedgerError):
    status_code = 409
    kind = "invalid_transition"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid status transition from {from_status} to {to_status}",
            **{"from": from_status, "to": to_status},
        )


class GatewayError(LedgerError):
    status_code = 502
    kind = "gateway_error"


class GatewayTimeoutError(GatewayError):
    status_code = 504
    kind = "gateway_timeout"
