# marketplace/models.py
"""SQLAlchemy ORM models for persisted entities.

`Listing` is the live catalog row, `OwnerListing` the per-user index of
posted listings and `ListingHistory` the immutable snapshot written when a
listing is removed. Timestamps are naive UTC.
"""
import enum

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric,
    String, Text, UniqueConstraint,
)
from .db import Base
from .utils import utcnow


class ListingStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SOLD = "sold"
    DELETED = "deleted"


class ListingAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    SELL = "sell"
    UNSELL = "unsell"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    email = Column(Text, unique=True)
    role = Column(String(16), nullable=False, default="user")
    created_at = Column(DateTime, default=utcnow)


class Listing(Base):
    __tablename__ = "listings"
    id = Column(Integer, primary_key=True, index=True)
    posted_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(Text, nullable=False)
    make = Column(Text, nullable=False)
    model = Column(Text, nullable=False)
    year = Column(Integer)
    mileage = Column(Integer)
    price = Column(Numeric)
    city = Column(Text)
    images = Column(JSON, nullable=False, default=list)

    status = Column(String(16), nullable=False, default=ListingStatus.PENDING.value, index=True)
    is_auto_deleted = Column(Boolean, nullable=False, default=False)
    auto_delete_date = Column(DateTime, nullable=True)
    rejection_reason = Column(Text)
    approved_by = Column(Integer)
    approved_at = Column(DateTime)
    sold_at = Column(DateTime)
    deleted_at = Column(DateTime)
    deleted_by = Column(Integer)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class OwnerListing(Base):
    __tablename__ = "owner_listings"
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    listing_id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utcnow)


class ListingHistory(Base):
    __tablename__ = "listing_history"
    __table_args__ = (UniqueConstraint("old_listing_id", name="uq_listing_history_old_listing"),)

    id = Column(Integer, primary_key=True, index=True)
    # not a foreign key: the listing row is gone once this exists
    old_listing_id = Column(Integer, nullable=False)
    seller_id = Column(Integer, index=True)
    title = Column(Text)
    make = Column(Text)
    model = Column(Text)
    year = Column(Integer)
    mileage = Column(Integer)
    price = Column(Numeric)
    final_status = Column(String(16), nullable=False, index=True)
    final_selling_date = Column(DateTime, nullable=True)
    is_auto_deleted = Column(Boolean, nullable=False, default=False)
    deleted_by = Column(Integer, nullable=True)
    deleted_at = Column(DateTime, nullable=False)

Index("idx_listings_sweep", Listing.status, Listing.is_auto_deleted, Listing.auto_delete_date)
Index("idx_listing_history_deleted_at", ListingHistory.deleted_at)
