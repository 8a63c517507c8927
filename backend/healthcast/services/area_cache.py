from __future__ import annotations

import time
from threading import Lock
from typing import Callable, Dict, Optional

import structlog
from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from healthcast.models.area import Area

logger = structlog.get_logger(__name__)


class AreaNameCache:
    """
    Area id -> name lookup table with an explicit lifetime.

    One instance lives on ``app.state``; entries are reloaded from the
    database once ``ttl_seconds`` have passed or after ``invalidate()``.
    """

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._names: Dict[int, str] = {}
        self._loaded_at: Optional[float] = None
        self._lock = Lock()

    def _stale(self) -> bool:
        return self._loaded_at is None or (self._clock() - self._loaded_at) >= self.ttl_seconds

    def _load(self, db: Session) -> None:
        rows = db.execute(select(Area.id, Area.name)).all()
        self._names = {int(area_id): name for area_id, name in rows}
        self._loaded_at = self._clock()
        logger.info("area_cache.loaded", areas=len(self._names))

    def name_for(self, db: Session, area_id: Optional[int]) -> Optional[str]:
        if area_id is None:
            return None
        with self._lock:
            if self._stale():
                self._load(db)
            return self._names.get(int(area_id))

    def invalidate(self) -> None:
        with self._lock:
            self._names = {}
            self._loaded_at = None


def get_area_cache(request: Request) -> AreaNameCache:
    return request.app.state.area_cache
