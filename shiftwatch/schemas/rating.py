from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Any, Dict, List, Optional
from datetime import date, datetime
from decimal import Decimal

from shiftwatch.services.periods import RatingPeriod


class RatingPeriodSchema(BaseModel):
    """Inclusive rating period."""
    period_start: date
    period_end: date

    @model_validator(mode="after")
    def check_order(self):
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self

    def to_period(self) -> RatingPeriod:
        return RatingPeriod(self.period_start, self.period_end)


class RecalculateRequest(BaseModel):
    """Optional period; defaults to the current month."""
    period_start: Optional[date] = None
    period_end: Optional[date] = None

    @model_validator(mode="after")
    def check_pair(self):
        if (self.period_start is None) != (self.period_end is None):
            raise ValueError("period_start and period_end must be given together")
        if self.period_start and self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self

    def to_period(self) -> Optional[RatingPeriod]:
        if self.period_start is None:
            return None
        return RatingPeriod(self.period_start, self.period_end)


class RatingAdjustRequest(RatingPeriodSchema):
    delta: Decimal = Field(..., allow_inf_nan=False)


class EmployeeRatingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    company_id: int
    period_start: date
    period_end: date
    rating: Decimal
    status: str
    updated_at: datetime


class CompanyRatingEntry(BaseModel):
    employee_id: int
    full_name: str
    employee_status: str
    rating: Decimal
    status: str
    period_start: date
    period_end: date
    updated_at: Optional[datetime] = None


class BatchRecalculationResponse(BaseModel):
    company_id: Optional[int] = None
    processed_count: int
    failed_count: int
    period_start: date
    period_end: date
    failures: List[Dict[str, Any]] = []


class CompanyStatsResponse(BaseModel):
    company_id: int
    period_start: date
    period_end: date
    employee_count: int
    violation_count: int
    average_rating: Optional[Decimal] = None
    tiers: Dict[str, int]
    at_risk_count: int
    cached: bool = False


class RatingPeriodsResponse(BaseModel):
    current: RatingPeriodSchema
    last: RatingPeriodSchema
    quarter: RatingPeriodSchema
    year: RatingPeriodSchema
