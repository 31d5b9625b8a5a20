import logging
from typing import Any, Dict, Optional, Protocol

from sqlalchemy.orm import Session

from shiftwatch.core.config import settings
from shiftwatch.models.notification import NotificationEvent

logger = logging.getLogger(__name__)

VIOLATION_DETECTED = "violation.detected"
RATING_UPDATED = "rating.updated"


class NotificationPublisher(Protocol):
    def publish(self, event_type: str, company_id: int, payload: Dict[str, Any]) -> None: ...


class NotificationService:
    """
    Writes engine events to the notification outbox.
    Delivery is best effort: failures are logged, never raised.
    """

    def __init__(self, db: Session, enabled: Optional[bool] = None):
        self.db = db
        self.enabled = settings.enable_notifications if enabled is None else enabled

    def publish(self, event_type: str, company_id: int, payload: Dict[str, Any]) -> Optional[NotificationEvent]:
        if not self.enabled:
            return None
        try:
            event = NotificationEvent(
                company_id=company_id,
                event_type=event_type,
                payload=payload,
            )
            self.db.add(event)
            self.db.commit()
            return event
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Notification {event_type} for company {company_id} not published: {e}")
            return None
