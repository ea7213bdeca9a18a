# marketplace/schemas.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ListingBase(BaseModel):
    title: str = Field(..., max_length=255)
    make: str
    model: str
    year: Optional[int] = None
    mileage: Optional[int] = None
    price: Optional[float] = None
    city: Optional[str] = None


class ListingCreate(ListingBase):
    images: List[str] = []


class ListingUpdate(BaseModel):
    title: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    mileage: Optional[int] = None
    price: Optional[float] = None
    city: Optional[str] = None
    images: Optional[List[str]] = None


class ListingOut(ListingBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    posted_by: Optional[int] = None
    images: List[str] = []
    status: str
    is_auto_deleted: bool = False
    auto_delete_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    sold_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RejectPayload(BaseModel):
    reason: Optional[str] = None


class HistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    old_listing_id: int
    seller_id: Optional[int] = None
    title: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    mileage: Optional[int] = None
    price: Optional[float] = None
    final_status: str
    final_selling_date: Optional[datetime] = None
    is_auto_deleted: bool
    deleted_by: Optional[int] = None
    deleted_at: datetime


class HistoryPage(BaseModel):
    items: List[HistoryOut]
    total: int
    page: int
    limit: int
    pages: int


class ArchiveResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    history_record_id: int
    purged_images: List[str]
    failed_images: List[str]


class DeleteOut(BaseModel):
    status: str
    result: Optional[ArchiveResultOut] = None


class SweepOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    processed: int
    failed: int
    skipped: int
    deferred: int
    failed_ids: List[int] = []
