# marketplace/errors.py
"""Error taxonomy for listing lifecycle operations.

The HTTP layer maps each class to a status code (see `api/routes.py`);
`ExternalStorageError` is only ever logged, never raised past the
lifecycle engine.
"""


class MarketplaceError(Exception):
    """Base class for all domain errors."""
    status_code = 500


class ValidationError(MarketplaceError):
    """Malformed id, date or filter value."""
    status_code = 400


class AuthorizationError(MarketplaceError):
    """The acting user may not perform the operation."""
    status_code = 403


class NotFoundError(MarketplaceError):
    """Listing or history record absent."""
    status_code = 404


class InvalidTransitionError(MarketplaceError):
    """The action is not allowed from the listing's current status."""
    status_code = 409

    def __init__(self, current, action):
        self.current = current
        self.action = action
        super().__init__(f"cannot {action} a listing that is {current}")


class ExternalStorageError(MarketplaceError):
    """Object storage refused or failed a deletion."""
    status_code = 502


class TransactionError(MarketplaceError):
    """The archive transaction failed and was rolled back."""
    status_code = 500
