# marketplace/services.py
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from . import crud
from .errors import NotFoundError, ValidationError
from .lifecycle import ArchiveResult, Cause, LifecycleEngine, ListingSnapshot
from .models import Listing
from .utils import logger


def _to_number(value, cast, name):
    if value is None or value == "":
        return None
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be numeric")


def ingest_listing(db: Session, owner_id: int, payload: Dict[str, Any]) -> Listing:
    # Basic normalization; full listing validation lives elsewhere
    data = dict(payload)
    data["price"] = _to_number(data.get("price"), float, "price")
    data["year"] = _to_number(data.get("year"), int, "year")
    data["mileage"] = _to_number(data.get("mileage"), int, "mileage")
    images = data.get("images") or []
    if isinstance(images, str):
        images = [images]
    data["images"] = [u for u in images if u]
    data = {k: v for k, v in data.items() if v is not None}
    obj = crud.create_listing(db, owner_id, data)
    logger.info("Ingested listing %s", obj.id)
    return obj


def delete_listing(db: Session, engine: LifecycleEngine, listing_id: int, actor_id: int) -> Optional[ArchiveResult]:
    """Owner or admin deletion. Authorization has already been checked by the caller.

    Errors propagate to the caller. Returns None if a concurrent trigger
    removed the listing first.
    """
    listing = crud.get_listing(db, listing_id)
    if listing is None:
        raise NotFoundError(f"listing {listing_id} not found")
    snap = ListingSnapshot.from_listing(listing)
    return engine.archive_and_remove(snap, actor=actor_id, cause=Cause.MANUAL)
