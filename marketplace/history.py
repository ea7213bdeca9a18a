# marketplace/history.py
"""Read model over the immutable listing history archive.

Records are written only by the lifecycle engine (`add_history_record`,
inside its transaction) and never updated afterwards. The admin surface
reads them through `query_history`.
"""
import math
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from .errors import NotFoundError, ValidationError
from .models import ListingHistory, ListingStatus
from .utils import to_naive_utc

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class HistoryFilter:
    status: Optional[str] = None
    is_auto_deleted: Optional[bool] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None


def _parse_date(value: str, name: str, end_of_day: bool = False) -> datetime:
    value = value.strip()
    try:
        if len(value) == 10:
            d = date.fromisoformat(value)
            # a bare `to` date covers the whole day
            return datetime.combine(d, time.max if end_of_day else time.min)
        return to_naive_utc(datetime.fromisoformat(value))
    except ValueError:
        raise ValidationError(f"invalid {name} date: {value!r}")


def parse_history_filter(status: Optional[str] = None, is_auto_deleted: Optional[str] = None,
                         date_from: Optional[str] = None, date_to: Optional[str] = None,
                         search: Optional[str] = None) -> HistoryFilter:
    """Build a `HistoryFilter` from raw query-string values."""
    if status and status != "all":
        if status not in {s.value for s in ListingStatus}:
            raise ValidationError(f"invalid status filter: {status!r}")
    else:
        status = None

    auto = None
    if is_auto_deleted == "true":
        auto = True
    elif is_auto_deleted == "false":
        auto = False
    elif is_auto_deleted not in (None, "", "all"):
        raise ValidationError(f"isAutoDeleted must be 'true' or 'false', got {is_auto_deleted!r}")

    start = _parse_date(date_from, "from") if date_from else None
    end = _parse_date(date_to, "to", end_of_day=True) if date_to else None
    if start and end and start > end:
        raise ValidationError("'from' is after 'to'")

    term = search.strip() if isinstance(search, str) else None
    return HistoryFilter(status=status, is_auto_deleted=auto, date_from=start, date_to=end,
                         search=term or None)


def _range(column, start, end):
    conds = []
    if start is not None:
        conds.append(column >= start)
    if end is not None:
        conds.append(column <= end)
    return and_(*conds)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def history_conditions(flt: HistoryFilter) -> list:
    """Each element is ANDed; the date range and the search are separate OR groups."""
    conds = []
    if flt.status:
        conds.append(ListingHistory.final_status == flt.status)
    if flt.is_auto_deleted is not None:
        conds.append(ListingHistory.is_auto_deleted.is_(flt.is_auto_deleted))
    if flt.date_from is not None or flt.date_to is not None:
        # sold date when present, otherwise the deletion date
        conds.append(or_(
            _range(ListingHistory.final_selling_date, flt.date_from, flt.date_to),
            and_(ListingHistory.final_selling_date.is_(None),
                 _range(ListingHistory.deleted_at, flt.date_from, flt.date_to)),
        ))
    if flt.search:
        pattern = f"%{_escape_like(flt.search)}%"
        conds.append(or_(
            ListingHistory.title.ilike(pattern, escape="\\"),
            ListingHistory.make.ilike(pattern, escape="\\"),
            ListingHistory.model.ilike(pattern, escape="\\"),
        ))
    return conds


def query_history(db: Session, flt: Optional[HistoryFilter] = None, page: int = 1, limit: int = 20) -> Dict[str, Any]:
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    conds = history_conditions(flt or HistoryFilter())

    total = db.scalar(select(func.count()).select_from(ListingHistory).where(*conds))
    stmt = (
        select(ListingHistory)
        .where(*conds)
        .order_by(ListingHistory.deleted_at.desc(), ListingHistory.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = list(db.scalars(stmt))
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


def get_history(db: Session, history_id: int) -> ListingHistory:
    obj = db.get(ListingHistory, history_id)
    if obj is None:
        raise NotFoundError(f"history record {history_id} not found")
    return obj


def find_by_listing(db: Session, listing_id: int) -> Optional[ListingHistory]:
    return db.scalar(select(ListingHistory).where(ListingHistory.old_listing_id == listing_id))


def add_history_record(db: Session, **values) -> ListingHistory:
    """Insert a snapshot and flush so its id is known. Caller owns the transaction."""
    record = ListingHistory(**values)
    db.add(record)
    db.flush()
    return record
