# tests/conftest.py
import os

# must be set before marketplace.db is imported
os.environ["POSTGRES_URL"] = "sqlite://"
os.environ["SWEEP_ENABLED"] = "0"

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from marketplace import crud
from marketplace.db import Base, create_db_engine
from marketplace.lifecycle import LifecycleEngine
from marketplace.models import Listing, User
from marketplace.storage import DeleteResult
from marketplace.utils import utcnow


class FakeStorage:
    """Records purge calls; URIs in `failing` are reported as failed."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []

    def delete_many(self, uris):
        uris = list(uris)
        self.calls.append(uris)
        return DeleteResult(
            deleted=[u for u in uris if u not in self.failing],
            failed=[u for u in uris if u in self.failing],
        )


def listing_exists(session_factory, listing_id):
    """Row check through a fresh session; a long-lived one may still hold the object."""
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(Listing).where(Listing.id == listing_id)) == 1


@pytest.fixture
def db_engine():
    eng = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def engine(session_factory, storage):
    return LifecycleEngine(session_factory, storage)


def _user(db, name, role):
    user = User(name=name, email=f"{name.lower()}@example.com", role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def owner(db):
    return _user(db, "Seller", "user")


@pytest.fixture
def other_user(db):
    return _user(db, "Stranger", "user")


@pytest.fixture
def admin(db):
    return _user(db, "Admin", "admin")


@pytest.fixture
def make_listing(db, owner, admin):
    """Create a listing and walk it to `status`; `sold_days_ago` back-dates the sale."""

    def _make(status="pending", sold_days_ago=8, images=(), **fields):
        data = {"title": "2015 Toyota Camry", "make": "Toyota", "model": "Camry", "year": 2015}
        data.update(fields)
        if images:
            data["images"] = list(images)
        obj = crud.create_listing(db, owner.id, data)
        if status == "rejected":
            crud.reject_listing(db, obj.id, admin.id, "blurry photos")
        if status in ("approved", "sold"):
            crud.approve_listing(db, obj.id, admin.id)
        if status == "sold":
            crud.mark_sold(db, obj.id, now=utcnow() - timedelta(days=sold_days_ago))
        return obj

    return _make
