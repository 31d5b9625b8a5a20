from sqlalchemy import Column, Integer, String, DateTime, JSON
from shiftwatch.core.timeutils import utc_now
from shiftwatch.database import Base


class StatsCacheEntry(Base):
    __tablename__ = "stats_cache"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(255), nullable=False, unique=True, index=True)
    value = Column(JSON, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utc_now)
