"""
Listing provider - the narrow view of listings the escrow core needs
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from escrow_core.core.marketplace.models import Listing, ListingStatus


def lock_listing(db: Session, listing_id: UUID) -> Optional[Listing]:
    """Select the listing row FOR UPDATE (None if missing)"""
    return db.execute(
        select(Listing)
        .where(Listing.id == listing_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def listing_amount_minor(price: Decimal) -> int:
    """Convert a TL price (2 decimals) to kuruş, rounding half up"""
    return int((Decimal(price) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def mark_listing_sold(db: Session, listing_id: UUID) -> bool:
    """
    Flip the listing ACTIVE -> SOLD.

    Conditional on the listing still being ACTIVE; returns False when another
    transaction changed it first.
    """
    result = db.execute(
        update(Listing)
        .where(Listing.id == listing_id, Listing.status == ListingStatus.ACTIVE)
        .values(status=ListingStatus.SOLD)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1
