"""Reset watermark: records created before it never reach the board again.

Stamped in the Django cache (Redis in production) so it survives
restarts and is shared by every process serving the board.  An
in-process copy is kept too, so a cache outage cannot bring pre-reset
records back.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from django.core.cache import cache
from django.utils.dateparse import parse_datetime

logger = structlog.get_logger(__name__)

WATERMARK_KEY = "dispatch:reset_watermark:{store_id}"


class WatermarkStore:
    def __init__(self, store_id: str) -> None:
        self._key = WATERMARK_KEY.format(store_id=store_id)
        self._local: datetime | None = None

    def stamp(self, at: datetime) -> None:
        self._local = at
        try:
            cache.set(self._key, at.isoformat(), timeout=None)
        except Exception as exc:
            logger.warning("watermark.cache_write_failed", error=str(exc))
        logger.info("watermark.stamped", at=at.isoformat())

    def current(self) -> datetime | None:
        try:
            raw = cache.get(self._key)
        except Exception as exc:
            logger.warning("watermark.cache_read_failed", error=str(exc))
            raw = None
        stored = parse_datetime(raw) if raw else None
        candidates = [w for w in (stored, self._local) if w is not None]
        return max(candidates) if candidates else None

    def clear(self) -> None:
        self._local = None
        cache.delete(self._key)
