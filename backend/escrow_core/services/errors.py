"""
Escrow service exceptions

Every exception carries a stable machine-readable code and a human message.
The API layer maps them to HTTP responses (see api/exceptions.py).
"""


class EscrowError(Exception):
    """Base class for all escrow core errors"""

    code = "ESCROW_ERROR"
    status_code = 400

    def __init__(self, message: str = "Escrow operation failed", code: str | None = None):
        if code:
            self.code = code
        self.message = message
        super().__init__(self.message)


class NotFoundError(EscrowError):
    """Raised when a wallet, order, listing, dispute or withdrawal does not exist"""

    code = "NOT_FOUND"
    status_code = 404


class ForbiddenError(EscrowError):
    """Raised when the caller is not a participant or lacks the staff role"""

    code = "FORBIDDEN"
    status_code = 403


class InvalidStateError(EscrowError):
    """Raised when the entity is not in a state that allows the operation"""

    code = "INVALID_STATE"
    status_code = 409


class ConflictError(EscrowError):
    """Raised when a concurrent operation won the race (lost status guard or unique constraint)"""

    code = "CONFLICT"
    status_code = 409


AlreadyExistsError = ConflictError


class InsufficientFundsError(EscrowError):
    """Raised when available balance is lower than the requested amount"""

    code = "INSUFFICIENT_FUNDS"
    status_code = 422


class InsufficientHeldFundsError(EscrowError):
    """
    Raised when held balance is lower than the amount being released/refunded.

    Held funds are always backed by an open order or withdrawal, so this signals a ledger
    inconsistency rather than a user error.
    """

    code = "INSUFFICIENT_HELD_FUNDS"
    status_code = 500


class ValidationError(EscrowError):
    """Raised on invalid input (non-positive amount, self-purchase, bad split, wrong type)"""

    code = "VALIDATION_ERROR"
    status_code = 400
