"""Courier directory interface.

The dispatch core only needs to look couriers up by id (sync resolves
the courier referenced by a delivery record) and to list the active
roster when the pool is built.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, List

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.couriers.entities import Courier


class ICourierDirectory(IRepository["Courier"]):
    """Repository contract for the courier registry."""

    @abstractmethod
    def list_active(self) -> List[Courier]:
        """Every active, non-deleted courier."""
