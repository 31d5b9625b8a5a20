from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import sessionmaker

from shiftwatch.core.limiter import limiter
from shiftwatch.core.timeutils import as_naive_utc
from shiftwatch.database import get_session_factory
from shiftwatch.dependencies import get_rating_engine
from shiftwatch.schemas.violation import DetectionRequest, DetectionResponse, GlobalMonitoringResponse
from shiftwatch.services.monitoring import run_global_monitoring
from shiftwatch.services.rating_engine import RatingEngine

router = APIRouter(prefix="/monitoring", tags=["monitoring"])


@router.post("/companies/{company_id}/detect", response_model=DetectionResponse)
def detect_company_violations(
    company_id: int,
    request: DetectionRequest,
    engine: RatingEngine = Depends(get_rating_engine),
):
    """Scan the company's shifts and record new violations."""
    result = engine.detect_and_record(
        company_id,
        employee_id=request.employee_id,
        since=as_naive_utc(request.since) if request.since else None,
        until=as_naive_utc(request.until) if request.until else None,
    )
    return result.as_dict()


@router.post("/run", response_model=GlobalMonitoringResponse)
@limiter.limit("5/minute")
def run_monitoring(
    request: Request,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    return run_global_monitoring(session_factory)
