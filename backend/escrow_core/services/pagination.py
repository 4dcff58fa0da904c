"""
Pagination helpers shared by list operations
"""

import math
from dataclasses import dataclass, field
from typing import Generic, List, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from escrow_core.services.errors import ValidationError

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of results plus totals"""

    items: List[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return math.ceil(self.total / self.limit)


def clamp_page(page: int, limit: int, max_limit: int) -> tuple[int, int]:
    """Validate page (>= 1) and cap limit at max_limit"""
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    return page, min(limit, max_limit)


def paginate(db: Session, stmt, page: int, limit: int) -> Page:
    """Run a select statement for one page and count the full result set"""
    total = db.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    items = db.execute(
        stmt.offset((page - 1) * limit).limit(limit)
    ).scalars().all()
    return Page(items=list(items), total=total, page=page, limit=limit)
