"""
Rating period helpers.

A rating period is an inclusive date range. Presets follow calendar
boundaries: month, previous month, quarter and year.
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, Optional, Tuple

from shiftwatch.core.exceptions import ValidationFailedError
from shiftwatch.core.timeutils import utc_now


@dataclass(frozen=True)
class RatingPeriod:
    start: date
    end: date

    def __post_init__(self):
        if self.end < self.start:
            raise ValidationFailedError(
                "Rating period end must not be before its start",
                details={"period_start": self.start.isoformat(), "period_end": self.end.isoformat()}
            )

    def bounds(self) -> Tuple[datetime, datetime]:
        """Half-open datetime window [start 00:00, end + 1 day 00:00)."""
        return (
            datetime.combine(self.start, time.min),
            datetime.combine(self.end + timedelta(days=1), time.min),
        )

    def contains(self, moment: datetime) -> bool:
        lower, upper = self.bounds()
        return lower <= moment < upper

    def as_dict(self) -> Dict[str, str]:
        return {"period_start": self.start.isoformat(), "period_end": self.end.isoformat()}


def _month(year: int, month: int) -> RatingPeriod:
    last_day = calendar.monthrange(year, month)[1]
    return RatingPeriod(date(year, month, 1), date(year, month, last_day))


def period_for_date(day: date) -> RatingPeriod:
    """Calendar month containing `day`."""
    return _month(day.year, day.month)


def current_month(today: Optional[date] = None) -> RatingPeriod:
    return period_for_date(today or utc_now().date())


def last_month(today: Optional[date] = None) -> RatingPeriod:
    today = today or utc_now().date()
    first = today.replace(day=1)
    return period_for_date(first - timedelta(days=1))


def current_quarter(today: Optional[date] = None) -> RatingPeriod:
    today = today or utc_now().date()
    first_month = 3 * ((today.month - 1) // 3) + 1
    start = date(today.year, first_month, 1)
    end = _month(today.year, first_month + 2).end
    return RatingPeriod(start, end)


def current_year(today: Optional[date] = None) -> RatingPeriod:
    today = today or utc_now().date()
    return RatingPeriod(date(today.year, 1, 1), date(today.year, 12, 31))


def preset_periods(today: Optional[date] = None) -> Dict[str, RatingPeriod]:
    today = today or utc_now().date()
    return {
        "current": current_month(today),
        "last": last_month(today),
        "quarter": current_quarter(today),
        "year": current_year(today),
    }
