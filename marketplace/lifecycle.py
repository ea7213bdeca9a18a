# marketplace/lifecycle.py
"""Archive-and-remove: the only path that takes a listing out of the catalog.

One call does two things in order:

1. purge the listing's images from object storage. Best effort and outside
   any transaction; failures are logged and reported, never raised.
2. in a single transaction, claim the row with a conditional update, write
   the history snapshot, delete the listing and pull it from the owner's
   index. All of it commits or none of it does.

The conditional update is what makes concurrent triggers safe: whichever
transaction claims the row first wins, the other sees zero rows and returns
`None` instead of writing a second history record.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple, Union

from sqlalchemy import delete, update
from sqlalchemy.orm import Session, sessionmaker

from . import crud, history
from .errors import TransactionError
from .models import Listing, ListingStatus
from .storage import DeleteResult, ObjectStorageGateway
from .utils import logger, utcnow


class Cause(str, enum.Enum):
    MANUAL = "manual"
    AUTO = "auto"


@dataclass(frozen=True)
class ListingSnapshot:
    id: int
    posted_by: Optional[int]
    status: str
    is_auto_deleted: bool
    auto_delete_date: Optional[datetime]
    sold_at: Optional[datetime]
    images: Tuple[str, ...] = ()
    title: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    mileage: Optional[int] = None
    price: Optional[object] = None

    @classmethod
    def from_listing(cls, listing: Listing) -> "ListingSnapshot":
        return cls(
            id=listing.id,
            posted_by=listing.posted_by,
            status=listing.status,
            is_auto_deleted=bool(listing.is_auto_deleted),
            auto_delete_date=listing.auto_delete_date,
            sold_at=listing.sold_at,
            images=tuple(listing.images or ()),
            title=listing.title,
            make=listing.make,
            model=listing.model,
            year=listing.year,
            mileage=listing.mileage,
            price=listing.price,
        )


@dataclass
class ArchiveResult:
    history_record_id: int
    purged_images: List[str] = field(default_factory=list)
    failed_images: List[str] = field(default_factory=list)


class _Superseded(Exception):
    """The row was removed or changed by someone else; roll back quietly."""


def _claim_listing(session: Session, listing_id: int, actor: Optional[int], cause: Cause, now: datetime) -> bool:
    stmt = update(Listing).where(
        Listing.id == listing_id,
        Listing.status != ListingStatus.DELETED.value,
        Listing.is_auto_deleted.is_(False),
    )
    if cause is Cause.AUTO:
        stmt = stmt.where(crud.sweep_condition(now))
    stmt = stmt.values(
        status=ListingStatus.DELETED.value,
        is_auto_deleted=cause is Cause.AUTO,
        deleted_at=now,
        deleted_by=actor,
    ).execution_options(synchronize_session=False)
    return session.execute(stmt).rowcount == 1


def _remove_listing(session: Session, listing_id: int) -> None:
    session.execute(
        delete(Listing)
        .where(Listing.id == listing_id, Listing.status == ListingStatus.DELETED.value)
        .execution_options(synchronize_session=False)
    )


class LifecycleEngine:
    def __init__(self, session_factory: sessionmaker, storage: ObjectStorageGateway,
                 clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory
        self.storage = storage
        self.clock = clock

    def _is_live(self, listing_id: int) -> bool:
        with self.session_factory() as session:
            row = session.get(Listing, listing_id)
            return row is not None and row.status != ListingStatus.DELETED.value

    def _purge_images(self, snap: ListingSnapshot) -> DeleteResult:
        images = list(snap.images)
        if not images:
            return DeleteResult()
        try:
            result = self.storage.delete_many(images)
        except Exception as exc:
            # gateways should never raise; treat it as every image failing
            logger.warning("Image purge for listing %s raised: %s", snap.id, exc)
            result = DeleteResult(failed=images)
        if result.failed:
            logger.warning("Listing %s: %d of %d image(s) could not be purged: %s",
                           snap.id, len(result.failed), len(images), result.failed)
        return result

    def archive_and_remove(self, listing: Union[Listing, ListingSnapshot], actor: Optional[int] = None,
                           cause: Cause = Cause.MANUAL, *, now: Optional[datetime] = None) -> Optional[ArchiveResult]:
        """Archive `listing` into history and remove it from the catalog.

        `actor` is the deleting user's id, or None for the system. `now` is
        the removal time and, for the sweep, the eligibility cutoff. Returns
        None when another trigger already removed the listing (or, for the
        sweep, when it is no longer eligible). Raises `TransactionError` if
        the catalog mutation fails; the listing is then left untouched.
        """
        snap = listing if isinstance(listing, ListingSnapshot) else ListingSnapshot.from_listing(listing)
        cause = Cause(cause)
        if not self._is_live(snap.id):
            logger.info("Listing %s already removed; nothing to archive", snap.id)
            return None

        purge = self._purge_images(snap)
        now = now or self.clock()
        try:
            with self.session_factory.begin() as session:
                row = session.get(Listing, snap.id, with_for_update=True)
                if row is None:
                    raise _Superseded()
                live = ListingSnapshot.from_listing(row)
                if not _claim_listing(session, snap.id, actor, cause, now):
                    raise _Superseded()
                record = history.add_history_record(
                    session,
                    old_listing_id=live.id,
                    seller_id=live.posted_by,
                    title=live.title,
                    make=live.make,
                    model=live.model,
                    year=live.year,
                    mileage=live.mileage,
                    price=live.price,
                    final_status=live.status,
                    final_selling_date=live.sold_at,
                    is_auto_deleted=cause is Cause.AUTO,
                    deleted_by=actor,
                    deleted_at=now,
                )
                _remove_listing(session, snap.id)
                if not crud.pull_from_owner_index(session, live.posted_by, snap.id):
                    logger.debug("Listing %s was not in owner %s's index", snap.id, live.posted_by)
                record_id = record.id
        except _Superseded:
            logger.info("Listing %s was removed or changed concurrently; skipping (%s)", snap.id, cause.value)
            return None
        except Exception as exc:
            logger.exception("Archive of listing %s rolled back; %d purged image(s) cannot be restored",
                             snap.id, len(purge.deleted))
            raise TransactionError(f"archiving listing {snap.id} failed") from exc

        logger.info("Archived listing %s (%s) as history %s by %s",
                    snap.id, cause.value, record_id, actor if actor is not None else "system")
        return ArchiveResult(history_record_id=record_id,
                             purged_images=list(purge.deleted),
                             failed_images=list(purge.failed))
