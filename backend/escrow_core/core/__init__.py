"""
Core domain models - Export all models for Alembic
"""

from escrow_core.core.users.models import User
from escrow_core.core.wallets.models import Wallet, WalletTransaction
from escrow_core.core.marketplace.models import Listing, MarketplaceOrder, TradeConversation
from escrow_core.core.disputes.models import Dispute
from escrow_core.core.notifications.models import Notification
from escrow_core.core.compliance.models import AuditLog

__all__ = [
    "User",
    "Wallet",
    "WalletTransaction",
    "Listing",
    "MarketplaceOrder",
    "TradeConversation",
    "Dispute",
    "Notification",
    "AuditLog",
]
