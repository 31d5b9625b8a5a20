from typing import List, Optional

from fastapi import APIRouter, Depends

from shiftwatch.dependencies import get_optional_period, get_rating_engine
from shiftwatch.schemas.violation import ViolationCreate, ViolationResponse
from shiftwatch.services.periods import RatingPeriod
from shiftwatch.services.rating_engine import RatingEngine

router = APIRouter(prefix="/violations", tags=["violations"])


@router.post("", response_model=ViolationResponse, status_code=201)
def create_violation(
    request: ViolationCreate,
    engine: RatingEngine = Depends(get_rating_engine),
):
    """Record a violation and refresh the employee's rating for its month."""
    return engine.record_violation(**request.model_dump())


@router.get("/employees/{employee_id}", response_model=List[ViolationResponse])
def list_employee_violations(
    employee_id: int,
    period: Optional[RatingPeriod] = Depends(get_optional_period),
    engine: RatingEngine = Depends(get_rating_engine),
):
    return engine.list_violations(employee_id, period)
