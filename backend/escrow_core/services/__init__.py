"""
Services layer - Application business logic
"""

from escrow_core.services.errors import (
    EscrowError,
    NotFoundError,
    ForbiddenError,
    InvalidStateError,
    ConflictError,
    AlreadyExistsError,
    InsufficientFundsError,
    InsufficientHeldFundsError,
    ValidationError,
)
from escrow_core.services.wallet_ledger import (
    get_or_create_wallet,
    credit,
    debit,
    hold,
    release,
    refund,
    settle_held,
    get_transactions,
)

__all__ = [
    # Wallet ledger
    "get_or_create_wallet",
    "credit",
    "debit",
    "hold",
    "release",
    "refund",
    "settle_held",
    "get_transactions",
    # Exceptions
    "EscrowError",
    "NotFoundError",
    "ForbiddenError",
    "InvalidStateError",
    "ConflictError",
    "AlreadyExistsError",
    "InsufficientFundsError",
    "InsufficientHeldFundsError",
    "ValidationError",
]
