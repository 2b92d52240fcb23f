"""Delivery store interface.

A generic record store: the dispatch core needs nothing beyond insert,
multi-row update, delete by filter and query.  Records are plain dicts
keyed by the ``deliveries`` column names.  Every implementation raises
``PersistenceError`` on failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence


class IDeliveryStore(ABC):
    """Record-store contract for deliveries."""

    @abstractmethod
    def insert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one record; returns it as stored."""

    @abstractmethod
    def update(self, ids: Sequence[str], patch: Dict[str, Any]) -> int:
        """Apply ``patch`` to every record in ``ids`` in one statement."""

    @abstractmethod
    def delete(self, filters: Dict[str, Any]) -> int:
        """Delete the records matching ``filters``; returns how many."""

    @abstractmethod
    def query(
        self,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Live records matching ``filters``, ordered by ``order_by``."""
