"""
Typed failures raised by the order lifecycle core.

Every error carries a machine-readable ``kind`` and a human message. The API
layer renders them as ``{"kind": ..., "message": ...}`` with ``status_code``.
"""
from typing import Any, Dict


class OrderServiceError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(OrderServiceError):
    """Malformed input. Caller-fixable, never retried automatically."""

    kind = "validation_error"
    status_code = 400


class InvalidTransition(OrderServiceError):
    """The requested status edge does not exist or the order is terminal."""

    kind = "invalid_transition"
    status_code = 409


class CancellationNotPermitted(OrderServiceError):
    kind = "cancellation_not_permitted"
    status_code = 409


class PaymentIntentFailed(OrderServiceError):
    """Gateway unreachable, timed out or rejected the intent. Order stays pending."""

    kind = "payment_intent_failed"
    status_code = 502


class PaymentVerificationFailed(OrderServiceError):
    """Capture confirmation failed verification. Never results in a paid order."""

    kind = "payment_verification_failed"
    status_code = 400


class ConcurrencyConflict(OrderServiceError):
    """Optimistic version mismatch on save; re-fetch and retry."""

    kind = "concurrency_conflict"
    status_code = 409


class NotFound(OrderServiceError):
    kind = "not_found"
    status_code = 404


class TrackingNotFound(NotFound):
    pass


class PermissionDenied(OrderServiceError):
    kind = "permission_denied"
    status_code = 403


class AuthenticationError(OrderServiceError):
    kind = "not_authenticated"
    status_code = 401
