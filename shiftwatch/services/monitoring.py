"""
Scheduled shift monitoring.

Runs detection for every active company, each in its own session so one
company's failure never affects the others.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session, sessionmaker

from shiftwatch.core.logging import request_id_var
from shiftwatch.core.metrics import MONITORING_DURATION, MONITORING_RUNS
from shiftwatch.core.timeutils import utc_now
from shiftwatch.models.company import Company
from shiftwatch.services.rating_engine import RatingEngine

logger = logging.getLogger(__name__)


def run_company_monitoring(db: Session, company_id: int, now: Optional[datetime] = None,
                           clock: Callable[[], datetime] = utc_now) -> Dict[str, Any]:
    engine = RatingEngine(db, clock=clock)
    with MONITORING_DURATION.time():
        try:
            result = engine.detect_and_record(company_id, now=now)
        except Exception:
            MONITORING_RUNS.labels(status="error").inc()
            raise
    MONITORING_RUNS.labels(status="error" if result.errors else "success").inc()
    return result.as_dict()


def run_global_monitoring(session_factory: sessionmaker, now: Optional[datetime] = None,
                          clock: Callable[[], datetime] = utc_now) -> Dict[str, Any]:
    token = request_id_var.set(f"monitor-{uuid.uuid4().hex[:12]}")
    try:
        with session_factory() as db:
            company_ids = [
                cid for (cid,) in db.query(Company.id).filter(
                    Company.is_active.is_(True)
                ).order_by(Company.id).all()
            ]

        summary = {
            "companies_scanned": 0,
            "violations_created": 0,
            "failed_companies": [],
            "results": [],
        }
        for company_id in company_ids:
            try:
                with session_factory() as db:
                    result = run_company_monitoring(db, company_id, now=now, clock=clock)
                summary["companies_scanned"] += 1
                summary["violations_created"] += result["violations_created"]
                summary["results"].append(result)
            except Exception as e:
                logger.error(f"Monitoring failed for company {company_id}: {e}", exc_info=True)
                summary["failed_companies"].append({"company_id": company_id, "error": str(e)})

        logger.info(
            f"Global monitoring finished: {summary['companies_scanned']} companies, "
            f"{summary['violations_created']} new violations"
        )
        return summary
    finally:
        request_id_var.reset(token)
