# tests/test_crud.py
from datetime import datetime, timedelta

import pytest

from marketplace import crud
from marketplace.errors import InvalidTransitionError, NotFoundError, ValidationError
from marketplace.models import Listing, ListingAction, ListingStatus


def test_create_and_get(db, owner):
    obj = crud.create_listing(db, owner.id, {"title": "Test Car", "make": "Honda", "model": "Civic", "price": 1000})
    got = crud.get_listing(db, obj.id)
    assert got is not None
    assert got.title == "Test Car"
    assert got.status == "pending"
    assert got.is_auto_deleted is False
    assert crud.owner_index_ids(db, owner.id) == [obj.id]


def test_create_requires_descriptive_fields(db, owner):
    with pytest.raises(ValidationError):
        crud.create_listing(db, owner.id, {"title": "No make"})


def test_create_rejects_status_field(db, owner):
    with pytest.raises(ValidationError):
        crud.create_listing(db, owner.id, {"title": "x", "make": "y", "model": "z", "status": "sold"})


def test_update_non_status_fields(db, make_listing):
    obj = make_listing()
    updated = crud.update_listing(db, obj.id, {"price": 8500, "city": "Dubai"})
    assert float(updated.price) == 8500
    assert updated.city == "Dubai"


@pytest.mark.parametrize("field", ["status", "is_auto_deleted", "auto_delete_date", "deleted_by", "posted_by"])
def test_update_refuses_protected_fields(db, make_listing, field):
    obj = make_listing()
    with pytest.raises(ValidationError):
        crud.update_listing(db, obj.id, {field: "deleted"})
    assert crud.get_listing(db, obj.id).status == "pending"


def test_update_missing_listing(db):
    with pytest.raises(NotFoundError):
        crud.update_listing(db, 9999, {"price": 1})


def test_approve_clears_rejection(db, make_listing, admin):
    obj = make_listing(status="rejected")
    assert obj.rejection_reason == "blurry photos"
    approved = crud.approve_listing(db, obj.id, admin.id)
    assert approved.status == "approved"
    assert approved.approved_by == admin.id
    assert approved.approved_at is not None
    assert approved.rejection_reason is None


def test_mark_sold_sets_auto_delete_date(db, make_listing):
    obj = make_listing(status="approved")
    sold_at = datetime(2024, 3, 1, 12, 0)
    sold = crud.mark_sold(db, obj.id, now=sold_at)
    assert sold.status == "sold"
    assert sold.sold_at == sold_at
    assert sold.auto_delete_date == sold_at + timedelta(days=7)


def test_mark_available_undoes_sale(db, make_listing):
    obj = make_listing(status="sold")
    back = crud.mark_available(db, obj.id)
    assert back.status == "approved"
    assert back.sold_at is None
    assert back.auto_delete_date is None


def test_pending_cannot_be_sold(db, make_listing):
    obj = make_listing()
    with pytest.raises(InvalidTransitionError):
        crud.mark_sold(db, obj.id)
    assert crud.get_listing(db, obj.id).status == "pending"


def test_rejected_cannot_be_sold(db, make_listing):
    obj = make_listing(status="rejected")
    with pytest.raises(InvalidTransitionError):
        crud.mark_sold(db, obj.id)


def test_no_action_leads_to_deleted():
    assert ListingStatus.DELETED not in crud.TRANSITIONS.values()


@pytest.mark.parametrize("action", list(ListingAction))
def test_deleted_is_terminal(action):
    listing = Listing(status=ListingStatus.DELETED.value)
    with pytest.raises(InvalidTransitionError):
        crud.transition(listing, action)
    assert listing.status == "deleted"


@pytest.mark.parametrize("status", ["pending", "rejected", "approved"])
def test_only_sold_listings_can_be_made_available(db, make_listing, status):
    obj = make_listing(status=status)
    with pytest.raises(InvalidTransitionError) as exc:
        crud.mark_available(db, obj.id)
    assert exc.value.current == status
    assert exc.value.action == "unsell"
    db.expire_all()
    assert crud.get_listing(db, obj.id).status == status


def test_approve_does_not_reopen_a_sale(db, make_listing, admin):
    obj = make_listing(status="sold", sold_days_ago=2)
    sold_at, auto_delete_date = obj.sold_at, obj.auto_delete_date
    with pytest.raises(InvalidTransitionError):
        crud.approve_listing(db, obj.id, admin.id)
    db.expire_all()
    again = crud.get_listing(db, obj.id)
    assert again.status == "sold"
    assert again.sold_at == sold_at
    assert again.auto_delete_date == auto_delete_date


def test_approved_cannot_be_rejected(db, make_listing, admin):
    obj = make_listing(status="approved")
    with pytest.raises(InvalidTransitionError):
        crud.reject_listing(db, obj.id, admin.id, "changed my mind")


@pytest.mark.parametrize("field", ["title", "make", "model", "images"])
def test_update_cannot_clear_required_columns(db, make_listing, field):
    obj = make_listing()
    with pytest.raises(ValidationError):
        crud.update_listing(db, obj.id, {field: None})
    db.expire_all()
    assert crud.get_listing(db, obj.id).title == "2015 Toyota Camry"


def test_update_may_clear_optional_columns(db, make_listing):
    obj = make_listing(city="Dubai")
    assert crud.update_listing(db, obj.id, {"city": None, "mileage": None}).city is None


def test_public_read_hides_sold_past_retention(db, make_listing):
    obj = make_listing(status="sold", sold_days_ago=8)
    assert crud.get_listing(db, obj.id, public=True) is None
    assert crud.get_listing(db, obj.id) is not None

    fresh = make_listing(status="sold", sold_days_ago=1)
    assert crud.get_listing(db, fresh.id, public=True) is not None


def test_owner_listings_and_pull(db, make_listing, owner):
    first = make_listing()
    second = make_listing(title="2019 Nissan Patrol", make="Nissan", model="Patrol")
    assert {l.id for l in crud.list_owner_listings(db, owner.id)} == {first.id, second.id}

    assert crud.pull_from_owner_index(db, owner.id, first.id) == 1
    db.commit()
    assert crud.owner_index_ids(db, owner.id) == [second.id]
    # idempotent
    assert crud.pull_from_owner_index(db, owner.id, first.id) == 0
    assert crud.pull_from_owner_index(db, None, first.id) == 0
