"""
Models registry for Alembic - Import all models here to ensure Base.metadata is complete

This module is used by Alembic and by the test suite to discover all models.
Import order matters to avoid circular dependencies:
1. Base first
2. Models without foreign keys
3. Models with foreign keys (in dependency order)
"""

# Import Base first
from escrow_core.infrastructure.database import Base

# 1. User model (no foreign keys to other domain models)
from escrow_core.core.users.models import User, UserRole

# 2. Wallet models (depends on User)
from escrow_core.core.wallets.models import (
    Wallet, WalletTransaction,
    WalletTransactionType, WalletTransactionStatus, WalletTransactionProvider,
)

# 3. Marketplace models (depends on User)
from escrow_core.core.marketplace.models import (
    Listing, ListingStatus, MarketplaceOrder, OrderStatus, TradeConversation,
)

# 4. Dispute model (depends on MarketplaceOrder)
from escrow_core.core.disputes.models import Dispute, DisputeStatus, DisputeResolution

# 5. Notification model (depends on User)
from escrow_core.core.notifications.models import Notification

# 6. Withdrawal model (depends on User)
from escrow_core.core.withdrawals.models import WithdrawalRequest, WithdrawalStatus

# 7. AuditLog model (depends on User)
from escrow_core.core.compliance.models import AuditLog

# Export all for convenience
__all__ = [
    "Base",
    "User",
    "UserRole",
    "Wallet",
    "WalletTransaction",
    "WalletTransactionType",
    "WalletTransactionStatus",
    "WalletTransactionProvider",
    "Listing",
    "ListingStatus",
    "MarketplaceOrder",
    "OrderStatus",
    "TradeConversation",
    "Dispute",
    "DisputeStatus",
    "DisputeResolution",
    "Notification",
    "WithdrawalRequest",
    "WithdrawalStatus",
    "AuditLog",
]
