# marketplace/api/routes.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from .. import crud, history, schemas, services
from ..auth import Capability, OwnerOrAdminGate, require_capability
from ..config import get_config
from ..db import SessionLocal, get_db
from ..errors import AuthorizationError
from ..lifecycle import LifecycleEngine
from ..storage import build_storage_gateway
from ..sweep import SweepJob

router = APIRouter()

_engine: Optional[LifecycleEngine] = None


def get_lifecycle_engine() -> LifecycleEngine:
    global _engine
    if _engine is None:
        _engine = LifecycleEngine(SessionLocal, build_storage_gateway())
    return _engine


def get_sweep_job(engine: LifecycleEngine = Depends(get_lifecycle_engine)) -> SweepJob:
    return SweepJob(engine.session_factory, engine, batch_timeout=get_config().sweep_batch_timeout)


def current_user_id(x_user_id: Optional[int] = Header(None)) -> int:
    # authentication happens upstream; it forwards the user id
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return x_user_id


def _require_listing_access(db: Session, listing_id: int, user_id: int):
    if crud.get_listing(db, listing_id) is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    if not OwnerOrAdminGate(db).check(listing_id, user_id):
        raise AuthorizationError("You are not allowed to modify this listing")


@router.get("/health")
def health():
    return {"status": "ok"}


@router.post("/listings", response_model=schemas.ListingOut, status_code=201)
def create_listing(payload: schemas.ListingCreate, db: Session = Depends(get_db),
                   user_id: int = Depends(current_user_id)):
    return services.ingest_listing(db, user_id, payload.model_dump())


@router.get("/listings/{listing_id}", response_model=schemas.ListingOut)
def get_listing(listing_id: int, db: Session = Depends(get_db)):
    obj = crud.get_listing(db, listing_id, public=True)
    if not obj:
        raise HTTPException(status_code=404, detail="Listing not found")
    return obj


@router.patch("/listings/{listing_id}", response_model=schemas.ListingOut)
def update_listing(listing_id: int, payload: schemas.ListingUpdate, db: Session = Depends(get_db),
                   user_id: int = Depends(current_user_id)):
    _require_listing_access(db, listing_id, user_id)
    return crud.update_listing(db, listing_id, updates=payload.model_dump(exclude_unset=True))


@router.get("/users/{owner_id}/listings", response_model=List[schemas.ListingOut])
def owner_listings(owner_id: int, db: Session = Depends(get_db)):
    return crud.list_owner_listings(db, owner_id)


@router.post("/listings/{listing_id}/approve", response_model=schemas.ListingOut)
def approve_listing(listing_id: int, db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    require_capability(db, user_id, Capability.MODERATE_LISTINGS)
    return crud.approve_listing(db, listing_id, user_id)


@router.post("/listings/{listing_id}/reject", response_model=schemas.ListingOut)
def reject_listing(listing_id: int, payload: schemas.RejectPayload, db: Session = Depends(get_db),
                   user_id: int = Depends(current_user_id)):
    require_capability(db, user_id, Capability.MODERATE_LISTINGS)
    return crud.reject_listing(db, listing_id, user_id, payload.reason)


@router.post("/listings/{listing_id}/sold", response_model=schemas.ListingOut)
def mark_sold(listing_id: int, db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    _require_listing_access(db, listing_id, user_id)
    return crud.mark_sold(db, listing_id)


@router.post("/listings/{listing_id}/available", response_model=schemas.ListingOut)
def mark_available(listing_id: int, db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    _require_listing_access(db, listing_id, user_id)
    return crud.mark_available(db, listing_id)


@router.delete("/listings/{listing_id}", response_model=schemas.DeleteOut)
def delete_listing(listing_id: int, db: Session = Depends(get_db), user_id: int = Depends(current_user_id),
                   engine: LifecycleEngine = Depends(get_lifecycle_engine)):
    _require_listing_access(db, listing_id, user_id)
    result = services.delete_listing(db, engine, listing_id, user_id)
    if result is None:
        return {"status": "already_removed"}
    return {"status": "deleted", "result": result}


@router.get("/admin/listing-history", response_model=schemas.HistoryPage)
def listing_history(
    status: Optional[str] = Query(None),
    is_auto_deleted: Optional[str] = Query(None, alias="isAutoDeleted"),
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    search: Optional[str] = Query(None),
    page: int = 1,
    limit: int = 20,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    require_capability(db, user_id, Capability.VIEW_LISTING_HISTORY)
    flt = history.parse_history_filter(status, is_auto_deleted, date_from, date_to, search)
    return history.query_history(db, flt, page=page, limit=limit)


@router.get("/admin/listing-history/{history_id}", response_model=schemas.HistoryOut)
def listing_history_record(history_id: int, db: Session = Depends(get_db),
                           user_id: int = Depends(current_user_id)):
    require_capability(db, user_id, Capability.VIEW_LISTING_HISTORY)
    return history.get_history(db, history_id)


@router.post("/admin/sweep", response_model=schemas.SweepOut)
def trigger_sweep(db: Session = Depends(get_db), user_id: int = Depends(current_user_id),
                  job: SweepJob = Depends(get_sweep_job)):
    require_capability(db, user_id, Capability.RUN_SWEEP)
    return job.run()
