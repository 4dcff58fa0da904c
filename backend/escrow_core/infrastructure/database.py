"""
Database configuration - SQLAlchemy 2.x (sync)
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from escrow_core.infrastructure.settings import get_settings

settings = get_settings()

if settings.is_sqlite:
    # Local test database: one file shared across threads
    engine = create_engine(
        settings.DATABASE_URL,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        settings.DATABASE_URL,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models - SQLAlchemy 2.x style"""
    pass


def get_db():
    """
    Dependency to get database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session, commit: bool = True) -> Iterator[Session]:
    """
    Unit of work boundary.

    With commit=True the block owns the transaction: it commits on success and
    rolls back on any exception. With commit=False the block joins the caller's
    transaction and leaves commit/rollback to the caller.
    """
    if not commit:
        yield db
        return

    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
