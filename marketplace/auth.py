# marketplace/auth.py
"""Authorization gate consumed by the HTTP layer.

Roles map to a fixed set of capabilities; the lifecycle code never looks at
them and only ever sees the boolean outcome of `check`.
"""
import enum
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from .errors import AuthorizationError
from .models import Listing, User


class Capability(str, enum.Enum):
    MODERATE_LISTINGS = "moderate_listings"
    MANAGE_ANY_LISTING = "manage_any_listing"
    VIEW_LISTING_HISTORY = "view_listing_history"
    RUN_SWEEP = "run_sweep"


ROLE_CAPABILITIES = {
    "admin": frozenset(Capability),
    "user": frozenset(),
}


class AuthorizationGate(Protocol):
    def check(self, listing_id: int, user_id: int) -> bool:
        ...


def has_capability(user: Optional[User], capability: Capability) -> bool:
    if user is None:
        return False
    return capability in ROLE_CAPABILITIES.get(user.role, frozenset())


def require_capability(db: Session, user_id: int, capability: Capability) -> User:
    user = db.get(User, user_id)
    if not has_capability(user, capability):
        raise AuthorizationError(f"user {user_id} lacks {capability.value}")
    return user


class OwnerOrAdminGate:
    """Allows the listing's owner, or anyone holding MANAGE_ANY_LISTING."""

    def __init__(self, db: Session):
        self.db = db

    def check(self, listing_id: int, user_id: int) -> bool:
        user = self.db.get(User, user_id)
        if user is None:
            return False
        if has_capability(user, Capability.MANAGE_ANY_LISTING):
            return True
        listing = self.db.get(Listing, listing_id)
        return listing is not None and listing.posted_by == user.id
