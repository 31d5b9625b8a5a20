"""
Shared statistics cache.

Entries live in the `stats_cache` table so every API instance sees the same
invalidations. Cache failures never break the calling operation.
"""
import logging
from datetime import timedelta
from typing import Any, Optional, Protocol

from sqlalchemy.orm import Session

from shiftwatch.core.config import settings
from shiftwatch.core.timeutils import utc_now
from shiftwatch.models.stats_cache import StatsCacheEntry

logger = logging.getLogger(__name__)


def company_stats_key(company_id: int) -> str:
    return f"company_stats:{company_id}"


class StatsCache(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None: ...

    def invalidate(self, key: str) -> None: ...


class DatabaseStatsCache:
    def __init__(self, db: Session, clock=utc_now):
        self.db = db
        self.clock = clock

    def get(self, key: str) -> Optional[Any]:
        entry = self.db.query(StatsCacheEntry).filter(StatsCacheEntry.key == key).first()
        if entry is None or entry.expires_at <= self.clock():
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds or settings.engine.stats_cache_ttl_seconds
        now = self.clock()
        try:
            entry = self.db.query(StatsCacheEntry).filter(StatsCacheEntry.key == key).first()
            if entry is None:
                entry = StatsCacheEntry(key=key)
                self.db.add(entry)
            entry.value = value
            entry.updated_at = now
            entry.expires_at = now + timedelta(seconds=ttl)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Cache write failed for {key}: {e}")

    def invalidate(self, key: str) -> None:
        try:
            self.db.query(StatsCacheEntry).filter(StatsCacheEntry.key == key).delete(synchronize_session=False)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Cache invalidation failed for {key}: {e}")

    def invalidate_company(self, company_id: int) -> None:
        self.invalidate(company_stats_key(company_id))
