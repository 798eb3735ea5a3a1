"""Typed errors raised by the transaction engine.

Routes translate these into HTTP responses; services never swallow them.
"""

from typing import Optional


class PosError(Exception):
    """Base class for engine errors."""


class ValidationError(PosError):
    """Malformed input that the caller should have rejected."""


class NotFoundError(PosError):
    """A referenced record does not exist."""

    def __init__(self, kind: str, record_id):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class InvalidStateError(PosError):
    """The record's status does not allow the requested operation."""


class InvalidOrderStateError(InvalidStateError):
    """The order is PAID or VOID, or otherwise not in the required status."""


class NothingToSendError(InvalidOrderStateError):
    """Send-to-kitchen was requested but every item is already printed."""


class ConcurrentModificationError(PosError):
    """The order changed since the caller read it."""


class AuthorizationError(PosError):
    """The acting user's role cannot perform the operation."""


class DiscountNotAvailableError(AuthorizationError):
    """A discount is outside its schedule and no override was possible."""

    def __init__(self, discount_name: str, reason: str):
        self.discount_name = discount_name
        self.reason = reason
        super().__init__(
            f"Discount '{discount_name}' not available: {reason}. "
            "Requires cashier or admin authorization."
        )


class TransactionFailedError(PosError):
    """The store rejected an atomic write; nothing was applied."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class SettlementError(TransactionFailedError):
    """Closing an order failed; the order is unchanged and may be retried."""
