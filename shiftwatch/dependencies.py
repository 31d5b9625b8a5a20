"""
Shared FastAPI dependencies: engine wiring and period query parameters.
"""
from datetime import date
from typing import Optional

from fastapi import Depends, Query
from sqlalchemy.orm import Session, sessionmaker

from shiftwatch.core.exceptions import ValidationFailedError
from shiftwatch.core.timeutils import utc_now
from shiftwatch.database import get_db, get_session_factory
from shiftwatch.services.periods import RatingPeriod, current_month
from shiftwatch.services.rating_engine import RatingEngine


def get_rating_engine(
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> RatingEngine:
    return RatingEngine(db, session_factory=session_factory)


def get_period(
    period_start: Optional[date] = Query(None, description="Inclusive start; defaults to current month"),
    period_end: Optional[date] = Query(None, description="Inclusive end; defaults to current month"),
) -> RatingPeriod:
    if period_start is None and period_end is None:
        return current_month(utc_now().date())
    if period_start is None or period_end is None:
        raise ValidationFailedError("period_start and period_end must be given together")
    return RatingPeriod(period_start, period_end)


def get_optional_period(
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
) -> Optional[RatingPeriod]:
    if period_start is None and period_end is None:
        return None
    return get_period(period_start, period_end)
