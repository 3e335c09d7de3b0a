# Overview: Error taxonomy shared by services and routes.

"""
Bistro error taxonomy (authoritative)

Every failure a service can report is a BistroError subclass. Routes map
them to HTTP responses via `status_code`; nothing else is caught on purpose.

- ValidationError      bad input shape/range. Caller's fault, never retried.
- PermissionDenied     actor's role lacks the capability.
- NotFound             unknown reference.
- PreconditionFailed   state does not allow the operation (shift already open,
                       order not OPEN, item stop-listed, ...).
- InsufficientStock    business-rule rejection on the stock ledger.
- ConcurrencyConflict  lost a race for an exclusive resource after bounded
                       internal retries. Safe to retry the whole operation.
"""

from __future__ import annotations


class BistroError(Exception):
    """Base class for every error the core reports to its callers."""

    status_code = 500
    code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            body["details"] = self.details
        if self.retryable:
            body["retryable"] = True
        return body


# =============================================================================
# VALIDATION (400)
# =============================================================================

class ValidationError(BistroError, ValueError):
    """400-level input problem."""
    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidRoster(ValidationError):
    """Cashier/waiter/manager selection does not satisfy the roster rules."""
    code = "INVALID_ROSTER"


class InvalidQuantity(ValidationError):
    code = "INVALID_QUANTITY"


class InvalidPrice(ValidationError):
    code = "INVALID_PRICE"


# =============================================================================
# AUTHORIZATION (403) / LOOKUP (404)
# =============================================================================

class PermissionDenied(BistroError):
    status_code = 403
    code = "PERMISSION_DENIED"


class NotFound(BistroError):
    status_code = 404
    code = "NOT_FOUND"


# =============================================================================
# STATE PRECONDITIONS (409)
# =============================================================================

class PreconditionFailed(BistroError):
    """State does not allow the operation. Surfaced immediately, not retried."""
    status_code = 409
    code = "PRECONDITION_FAILED"


class NoActiveShift(PreconditionFailed):
    code = "NO_ACTIVE_SHIFT"


class NotActive(PreconditionFailed):
    """Target shift is not the active one (or has already ended)."""
    code = "SHIFT_NOT_ACTIVE"


class AlreadyListed(PreconditionFailed):
    code = "ALREADY_LISTED"


class NotListed(PreconditionFailed):
    code = "NOT_LISTED"


class InvalidState(PreconditionFailed):
    """Order transition attempted from a non-OPEN status."""
    code = "INVALID_STATE"


class ItemStopListed(PreconditionFailed):
    code = "ITEM_STOP_LISTED"


# =============================================================================
# BUSINESS RULES (422) / TRANSIENT (503)
# =============================================================================

class InsufficientStock(BistroError):
    status_code = 422
    code = "INSUFFICIENT_STOCK"


class ConcurrencyConflict(BistroError):
    """Lost a race after bounded retries; the client should try again."""
    status_code = 503
    code = "CONCURRENCY_CONFLICT"
    retryable = True
