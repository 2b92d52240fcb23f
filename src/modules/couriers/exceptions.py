"""Courier domain exceptions.

Raised by the pool and the courier directory; the API layer (Views)
translates them into HTTP responses.
"""

from __future__ import annotations


class CourierUnavailable(Exception):
    """The courier is not in the available pool (already engaged or unknown)."""


class CourierNotFound(Exception):
    """The requested courier does not exist or has been deactivated."""
