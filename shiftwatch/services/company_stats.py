from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from shiftwatch.core.exceptions import NotFoundError
from shiftwatch.core.timeutils import utc_now
from shiftwatch.models.company import Company
from shiftwatch.models.employee import Employee
from shiftwatch.models.employee_rating import EmployeeRating, RatingStatus
from shiftwatch.models.violation import Violation
from shiftwatch.services.base import BaseService
from shiftwatch.services.cache import DatabaseStatsCache, StatsCache, company_stats_key
from shiftwatch.services.periods import RatingPeriod, current_month
from shiftwatch.services.rating_calculator import MAX_RATING


class CompanyStatsService(BaseService):
    """Company-level rating overview. Current-month stats are served from the shared cache."""

    def __init__(self, db: Session, cache: Optional[StatsCache] = None, clock=utc_now):
        super().__init__(db)
        self.cache = cache or DatabaseStatsCache(db)
        self.clock = clock

    def _get_company(self, company_id: int) -> Company:
        company = self.db.get(Company, company_id)
        if not company:
            raise NotFoundError("Company", company_id)
        return company

    def list_company_ratings(self, company_id: int, period: RatingPeriod) -> List[Dict[str, Any]]:
        """One entry per employee; employees without a stored row show the default rating."""
        self._get_company(company_id)
        rows = self.db.query(Employee, EmployeeRating).outerjoin(
            EmployeeRating,
            (EmployeeRating.employee_id == Employee.id)
            & (EmployeeRating.period_start == period.start)
            & (EmployeeRating.period_end == period.end),
        ).filter(Employee.company_id == company_id).order_by(Employee.full_name, Employee.id).all()

        return [
            {
                "employee_id": employee.id,
                "full_name": employee.full_name,
                "employee_status": employee.status,
                "rating": rating.rating if rating else MAX_RATING,
                "status": rating.status if rating else RatingStatus.ACTIVE.value,
                "updated_at": rating.updated_at if rating else None,
                **period.as_dict(),
            }
            for employee, rating in rows
        ]

    def _compute(self, company_id: int, period: RatingPeriod) -> Dict[str, Any]:
        ratings = self.list_company_ratings(company_id, period)
        lower, upper = period.bounds()
        violation_count = self.db.query(func.count(Violation.id)).filter(
            Violation.company_id == company_id,
            Violation.created_at >= lower,
            Violation.created_at < upper,
        ).scalar() or 0

        tiers = {status.value: 0 for status in RatingStatus}
        for entry in ratings:
            tiers[entry["status"]] += 1
        average = None
        if ratings:
            average = (sum((Decimal(str(r["rating"])) for r in ratings), Decimal("0")) / len(ratings))
            average = str(average.quantize(Decimal("0.01")))

        return {
            "company_id": company_id,
            **period.as_dict(),
            "employee_count": len(ratings),
            "violation_count": violation_count,
            "average_rating": average,
            "tiers": tiers,
            "at_risk_count": tiers[RatingStatus.WARNING.value] + tiers[RatingStatus.TERMINATED.value],
        }

    def get_company_stats(self, company_id: int, period: Optional[RatingPeriod] = None) -> Dict[str, Any]:
        self._get_company(company_id)
        default_period = current_month(self.clock().date())
        period = period or default_period
        if period != default_period:
            return {**self._compute(company_id, period), "cached": False}

        key = company_stats_key(company_id)
        cached = self.cache.get(key)
        if cached is not None and cached.get("period_start") == period.start.isoformat():
            return {**cached, "cached": True}
        stats = self._compute(company_id, period)
        self.cache.set(key, stats)
        return {**stats, "cached": False}
