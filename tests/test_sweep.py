# tests/test_sweep.py
from datetime import timedelta

from sqlalchemy import func, select

from marketplace import crud, lifecycle
from marketplace.models import Listing, ListingHistory
from marketplace.sweep import SweepJob
from marketplace.utils import utcnow
from conftest import listing_exists


def history_rows(db):
    return list(db.scalars(select(ListingHistory)))


def test_sweep_archives_expired_sold_listing(db, session_factory, engine, make_listing, owner):
    obj = make_listing(status="sold", sold_days_ago=8)
    job = SweepJob(session_factory, engine)

    result = job.run()

    assert (result.processed, result.failed) == (1, 0)
    assert not listing_exists(session_factory, obj.id)
    assert crud.owner_index_ids(db, owner.id) == []
    rows = history_rows(db)
    assert len(rows) == 1
    assert rows[0].old_listing_id == obj.id
    assert rows[0].is_auto_deleted is True
    assert rows[0].deleted_by is None
    assert rows[0].final_status == "sold"


def test_sweep_ignores_ineligible(db, session_factory, engine, make_listing):
    recent = make_listing(status="sold", sold_days_ago=2)
    approved = make_listing(status="approved")
    pending = make_listing()
    job = SweepJob(session_factory, engine)

    result = job.run()

    assert result.processed == 0
    for obj in (recent, approved, pending):
        assert crud.get_listing(db, obj.id) is not None
    assert history_rows(db) == []


def test_sweep_twice_is_idempotent(db, session_factory, engine, make_listing):
    make_listing(status="sold")
    make_listing(status="sold", sold_days_ago=30)
    job = SweepJob(session_factory, engine)
    now = utcnow()

    first = job.run(now)
    second = job.run(now)

    assert first.processed == 2
    assert (second.processed, second.failed, second.skipped) == (0, 0, 0)
    assert len(history_rows(db)) == 2


def test_sweep_continues_after_a_failure(db, session_factory, engine, make_listing, monkeypatch):
    bad = make_listing(status="sold", sold_days_ago=10)
    good = make_listing(status="sold", sold_days_ago=9)
    original = lifecycle._remove_listing

    def flaky(session, listing_id):
        if listing_id == bad.id:
            raise RuntimeError("deadlock detected")
        return original(session, listing_id)

    monkeypatch.setattr(lifecycle, "_remove_listing", flaky)
    result = SweepJob(session_factory, engine).run()

    assert (result.processed, result.failed) == (1, 1)
    assert result.failed_ids == [bad.id]
    db.expire_all()
    assert crud.get_listing(db, bad.id).status == "sold"
    assert not listing_exists(session_factory, good.id)
    assert [r.old_listing_id for r in history_rows(db)] == [good.id]


def test_eligible_respects_clock(session_factory, engine, make_listing):
    obj = make_listing(status="sold", sold_days_ago=3)
    job = SweepJob(session_factory, engine)
    assert job.eligible() == []
    later = utcnow() + timedelta(days=5)
    assert [s.id for s in job.eligible(later)] == [obj.id]


def test_batch_timeout_defers_rest(db, session_factory, engine, make_listing):
    make_listing(status="sold")
    make_listing(status="sold")
    ticks = iter([0.0, 0.0, 100.0, 100.0])
    job = SweepJob(session_factory, engine, batch_timeout=5, timer=lambda: next(ticks))

    result = job.run()

    assert result.processed == 1
    assert result.deferred == 1
    assert db.scalar(select(func.count()).select_from(Listing)) == 1
