from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, ForeignKey
from shiftwatch.core.timeutils import utc_now
from shiftwatch.database import Base


class NotificationEvent(Base):
    """Outbox row consumed by real-time subscribers (bots, dashboards)."""
    __tablename__ = "notification_events"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(50), nullable=False, index=True)  # violation.detected, rating.updated
    payload = Column(JSON, nullable=False)
    is_delivered = Column(Boolean, default=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
