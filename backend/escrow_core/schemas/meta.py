"""
Typed context attached to wallet transactions and disputes (meta column)

Known shapes form a tagged union discriminated on `kind`. Anything else is
stored as a plain JSON object.
"""

from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter, ValidationError as PydanticValidationError


class ListingHoldMeta(BaseModel):
    """Escrow hold taken when a buyer purchases a listing"""
    kind: Literal["listing_hold"] = "listing_hold"
    listing_id: UUID
    listing_title: str
    seller_id: UUID


class OrderSettlementMeta(BaseModel):
    """Release/refund that settles an order"""
    kind: Literal["order_settlement"] = "order_settlement"
    order_id: UUID
    listing_title: Optional[str] = None
    auto_release: bool = False
    dispute_id: Optional[UUID] = None
    resolution: Optional[str] = None
    partial: bool = False


class PartialSplitMeta(BaseModel):
    """Exact split recorded on a PARTIAL dispute resolution"""
    kind: Literal["partial_split"] = "partial_split"
    buyer_amount: int = Field(..., gt=0)
    seller_amount: int = Field(..., gt=0)
    note: Optional[str] = None


class WithdrawalMeta(BaseModel):
    """Hold, refund or payout belonging to a withdrawal request"""
    kind: Literal["withdrawal"] = "withdrawal"
    withdrawal_id: UUID
    iban: Optional[str] = None
    account_name: Optional[str] = None
    reject_reason: Optional[str] = None


TransactionMeta = Annotated[
    Union[ListingHoldMeta, OrderSettlementMeta, PartialSplitMeta, WithdrawalMeta],
    Field(discriminator="kind"),
]

_meta_adapter = TypeAdapter(TransactionMeta)

MetaInput = Union[ListingHoldMeta, OrderSettlementMeta, PartialSplitMeta, WithdrawalMeta, dict, None]


def dump_meta(meta: MetaInput) -> Optional[dict[str, Any]]:
    """Serialize meta for the JSON column"""
    if meta is None:
        return None
    if isinstance(meta, BaseModel):
        return meta.model_dump(mode="json")
    return dict(meta)


def load_meta(data: Optional[dict[str, Any]]):
    """Parse a stored meta object back into its typed shape (plain dict if unknown)"""
    if data is None:
        return None
    try:
        return _meta_adapter.validate_python(data)
    except PydanticValidationError:
        return data


def merge_meta(base: MetaInput, extra: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Combine a typed meta with caller-supplied free-form context"""
    dumped = dump_meta(base)
    if not extra:
        return dumped
    merged = dict(extra)
    if dumped:
        merged.update(dumped)
    return merged
