"""Delivery domain exceptions.

Raised by the dispatch core when a user action is rejected.  The API
layer (Views) catches these and translates them into HTTP responses.
Persistence failures are never raised to the caller of an action: the
dispatch service logs them and raises an error notification instead.
"""

from __future__ import annotations


class OrderNotFound(Exception):
    """No order (or batch) with the given id is on the board."""


class InvalidOrderStatus(Exception):
    """The action has no valid transition from the order's current status."""


class InvalidPickupCode(Exception):
    """The entered code does not match any pickup code of the order or batch."""


class MissingCancellationReason(Exception):
    """Cancellation requires a non-empty reason."""


class ResetNotConfirmed(Exception):
    """Reset of all board data requested without explicit confirmation."""


class InvalidDistance(ValueError):
    """A distance that cannot be priced (negative, infinite or not a number)."""


class PersistenceError(Exception):
    """The backing delivery store rejected or failed a read or write."""
