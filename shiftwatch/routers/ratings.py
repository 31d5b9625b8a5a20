"""
Ratings Router

HTTP endpoints for employee and company ratings.
All business logic is delegated to the rating engine.
"""
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from shiftwatch.core.limiter import limiter
from shiftwatch.core.timeutils import utc_now
from shiftwatch.database import get_db
from shiftwatch.dependencies import get_period, get_rating_engine
from shiftwatch.schemas.rating import (
    BatchRecalculationResponse, CompanyRatingEntry, CompanyStatsResponse,
    EmployeeRatingResponse, RatingAdjustRequest, RatingPeriodsResponse, RecalculateRequest,
)
from shiftwatch.services.company_stats import CompanyStatsService
from shiftwatch.services.periods import RatingPeriod, current_month, preset_periods
from shiftwatch.services.rating_engine import RatingEngine

router = APIRouter(prefix="/ratings", tags=["ratings"])


@router.get("/periods", response_model=RatingPeriodsResponse)
def get_rating_periods():
    """Preset periods: current month, last month, quarter, year."""
    return {name: period.as_dict() for name, period in preset_periods(utc_now().date()).items()}


@router.get("/employees/{employee_id}", response_model=EmployeeRatingResponse)
def get_employee_rating(
    employee_id: int,
    period: RatingPeriod = Depends(get_period),
    engine: RatingEngine = Depends(get_rating_engine),
):
    return engine.get_employee_rating(employee_id, period)


@router.post("/employees/{employee_id}/recalculate", response_model=EmployeeRatingResponse)
def recalculate_employee_rating(
    employee_id: int,
    request: RecalculateRequest,
    engine: RatingEngine = Depends(get_rating_engine),
):
    period = request.to_period() or current_month(utc_now().date())
    return engine.recalculate_employee(employee_id, period)


@router.post("/employees/{employee_id}/adjust", response_model=EmployeeRatingResponse)
def adjust_employee_rating(
    employee_id: int,
    request: RatingAdjustRequest,
    engine: RatingEngine = Depends(get_rating_engine),
):
    """Manual additive correction; the only non-recomputed rating path."""
    return engine.adjust_employee_rating(employee_id, request.to_period(), request.delta)


@router.get("/companies/{company_id}", response_model=List[CompanyRatingEntry])
def list_company_ratings(
    company_id: int,
    period: RatingPeriod = Depends(get_period),
    db: Session = Depends(get_db),
):
    return CompanyStatsService(db).list_company_ratings(company_id, period)


@router.get("/companies/{company_id}/stats", response_model=CompanyStatsResponse)
def get_company_stats(
    company_id: int,
    period: RatingPeriod = Depends(get_period),
    db: Session = Depends(get_db),
):
    return CompanyStatsService(db).get_company_stats(company_id, period)


@router.post("/companies/{company_id}/recalculate", response_model=BatchRecalculationResponse)
def recalculate_company_ratings(
    company_id: int,
    request: RecalculateRequest,
    engine: RatingEngine = Depends(get_rating_engine),
):
    return engine.recalculate_company(company_id, request.to_period())


@router.post("/recalculate", response_model=BatchRecalculationResponse)
@limiter.limit("5/minute")
def recalculate_all_ratings(
    request: Request,
    body: RecalculateRequest,
    engine: RatingEngine = Depends(get_rating_engine),
):
    return engine.recalculate_all(body.to_period())
