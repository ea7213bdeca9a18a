# marketplace/crud.py
"""Listing store operations and the owner index.

Status changes go through `transition`, which enforces the listing state
machine. Nothing here can move a listing to `deleted`: removal belongs to
`lifecycle.LifecycleEngine` alone.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, delete, select
from sqlalchemy.orm import Session

from .config import get_config
from .errors import InvalidTransitionError, NotFoundError, ValidationError
from .models import Listing, ListingAction, ListingStatus, OwnerListing
from .utils import logger, utcnow

TRANSITIONS = {
    (ListingStatus.PENDING, ListingAction.APPROVE): ListingStatus.APPROVED,
    (ListingStatus.REJECTED, ListingAction.APPROVE): ListingStatus.APPROVED,
    (ListingStatus.PENDING, ListingAction.REJECT): ListingStatus.REJECTED,
    (ListingStatus.APPROVED, ListingAction.SELL): ListingStatus.SOLD,
    (ListingStatus.SOLD, ListingAction.UNSELL): ListingStatus.APPROVED,
}

EDITABLE_FIELDS = {"title", "make", "model", "year", "mileage", "price", "city", "images"}
REQUIRED_FIELDS = ("title", "make", "model")
# NOT NULL columns that an edit may change but not clear
NON_NULLABLE_FIELDS = {"title", "make", "model", "images"}


def transition(listing: Listing, action: ListingAction) -> ListingStatus:
    """Apply `action` to `listing`; the source status decides whether it is allowed."""
    current = ListingStatus(listing.status)
    target = TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidTransitionError(current.value, action.value)
    listing.status = target.value
    return target


def create_listing(db: Session, owner_id: int, data: Dict[str, Any]) -> Listing:
    unknown = set(data) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"unknown or protected fields: {', '.join(sorted(unknown))}")
    missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
    if missing:
        raise ValidationError(f"missing fields: {', '.join(missing)}")
    obj = Listing(posted_by=owner_id, status=ListingStatus.PENDING.value, **data)
    db.add(obj)
    db.flush()
    db.add(OwnerListing(user_id=owner_id, listing_id=obj.id))
    db.commit()
    db.refresh(obj)
    logger.info("Created listing %s for user %s", obj.id, owner_id)
    return obj


def get_listing(db: Session, listing_id: int, public: bool = False, now: Optional[datetime] = None):
    obj = db.get(Listing, listing_id)
    if obj is None or obj.status == ListingStatus.DELETED.value:
        return None
    if public and is_sweep_eligible(obj, now or utcnow()):
        # sold and past retention: hidden until the sweep removes it
        return None
    return obj


def _get_live(db: Session, listing_id: int) -> Listing:
    obj = get_listing(db, listing_id)
    if obj is None:
        raise NotFoundError(f"listing {listing_id} not found")
    return obj


def update_listing(db: Session, listing_id: int, updates: Dict[str, Any]) -> Listing:
    blocked = set(updates) - EDITABLE_FIELDS
    if blocked:
        raise ValidationError(f"fields cannot be edited directly: {', '.join(sorted(blocked))}")
    cleared = sorted(k for k in NON_NULLABLE_FIELDS & set(updates) if updates[k] is None)
    if cleared:
        raise ValidationError(f"fields cannot be cleared: {', '.join(cleared)}")
    obj = _get_live(db, listing_id)
    for k, v in updates.items():
        setattr(obj, k, v)
    db.commit()
    db.refresh(obj)
    return obj


def approve_listing(db: Session, listing_id: int, admin_id: int, now: Optional[datetime] = None) -> Listing:
    obj = _get_live(db, listing_id)
    transition(obj, ListingAction.APPROVE)
    obj.approved_by = admin_id
    obj.approved_at = now or utcnow()
    obj.rejection_reason = None
    db.commit()
    db.refresh(obj)
    logger.info("Listing %s approved by %s", listing_id, admin_id)
    return obj


def reject_listing(db: Session, listing_id: int, admin_id: int, reason: Optional[str] = None) -> Listing:
    obj = _get_live(db, listing_id)
    transition(obj, ListingAction.REJECT)
    obj.rejection_reason = reason
    db.commit()
    db.refresh(obj)
    logger.info("Listing %s rejected by %s: %s", listing_id, admin_id, reason)
    return obj


def mark_sold(db: Session, listing_id: int, now: Optional[datetime] = None,
              retention: Optional[timedelta] = None) -> Listing:
    obj = _get_live(db, listing_id)
    transition(obj, ListingAction.SELL)
    if retention is None:
        retention = timedelta(days=get_config().retention_days)
    sold_at = now or utcnow()
    obj.sold_at = sold_at
    obj.auto_delete_date = sold_at + retention
    db.commit()
    db.refresh(obj)
    logger.info("Listing %s sold, auto-delete after %s", listing_id, obj.auto_delete_date)
    return obj


def mark_available(db: Session, listing_id: int) -> Listing:
    """Undo a sale: back to approved, sweep eligibility cleared."""
    obj = _get_live(db, listing_id)
    transition(obj, ListingAction.UNSELL)
    obj.sold_at = None
    obj.auto_delete_date = None
    db.commit()
    db.refresh(obj)
    return obj


# owner index

def list_owner_listings(db: Session, owner_id: int) -> List[Listing]:
    stmt = (
        select(Listing)
        .join(OwnerListing, OwnerListing.listing_id == Listing.id)
        .where(OwnerListing.user_id == owner_id)
        .order_by(Listing.created_at.desc(), Listing.id.desc())
    )
    return list(db.scalars(stmt))


def owner_index_ids(db: Session, owner_id: int) -> List[int]:
    stmt = select(OwnerListing.listing_id).where(OwnerListing.user_id == owner_id)
    return list(db.scalars(stmt))


def pull_from_owner_index(db: Session, owner_id: Optional[int], listing_id: int) -> int:
    """Drop `listing_id` from the owner's index. No-op when absent; never commits."""
    if owner_id is None:
        return 0
    res = db.execute(
        delete(OwnerListing).where(OwnerListing.user_id == owner_id, OwnerListing.listing_id == listing_id)
    )
    return res.rowcount or 0


# sweep eligibility

def sweep_condition(now: datetime):
    return and_(
        Listing.status == ListingStatus.SOLD.value,
        Listing.is_auto_deleted.is_(False),
        Listing.auto_delete_date.isnot(None),
        Listing.auto_delete_date < now,
    )


def is_sweep_eligible(listing, now: datetime) -> bool:
    return (
        listing.status == ListingStatus.SOLD.value
        and not listing.is_auto_deleted
        and listing.auto_delete_date is not None
        and listing.auto_delete_date < now
    )
