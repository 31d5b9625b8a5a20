"""
Rating & Violation Engine

Composition root for the rating subsystem. Recording a violation commits the
violation first, then runs the post-write hooks (by default: recalculate the
period the violation falls in), then invalidates the company stats cache and
publishes a notification.

Architecture:
- Router / monitoring job -> RatingEngine (this module)
- RatingEngine -> ViolationDetector, RatingCalculator, StatsCache, publisher
- Cache and notification failures are logged and never fail the operation
- Hook failures are logged, then re-raised once cache and notification ran
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from shiftwatch.core.config import settings
from shiftwatch.core.exceptions import (
    DuplicateViolationError, NotFoundError, ScopeMismatchError, ValidationFailedError
)
from shiftwatch.core.metrics import record_violation_metric
from shiftwatch.core.timeutils import utc_now
from shiftwatch.models.company import Company
from shiftwatch.models.employee import Employee
from shiftwatch.models.employee_rating import EmployeeRating
from shiftwatch.models.shift import Shift
from shiftwatch.models.violation import Violation, ViolationSource
from shiftwatch.models.violation_rule import ViolationRule
from shiftwatch.services.base import BaseService
from shiftwatch.services.cache import DatabaseStatsCache, StatsCache, company_stats_key
from shiftwatch.services.notification import (
    RATING_UPDATED, VIOLATION_DETECTED, NotificationPublisher, NotificationService
)
from shiftwatch.services.periods import RatingPeriod, current_month, period_for_date
from shiftwatch.services.rating_calculator import RatingCalculator
from shiftwatch.services.violation_detector import ViolationDetector

PostWriteHook = Callable[["RatingEngine", Violation], None]


def recalculate_violation_period(engine: "RatingEngine", violation: Violation) -> None:
    """Default hook: refresh the rating of the month the violation was recorded in."""
    period = period_for_date(violation.created_at.date())
    engine.calculator.recalculate(violation.employee_id, period)


@dataclass
class DetectionResult:
    company_id: int
    breaches_found: int = 0
    violations_created: int = 0
    skipped_duplicates: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "company_id": self.company_id,
            "breaches_found": self.breaches_found,
            "violations_created": self.violations_created,
            "skipped_duplicates": self.skipped_duplicates,
            "errors": self.errors,
        }


class RatingEngine(BaseService):
    def __init__(
        self,
        db: Session,
        cache: Optional[StatsCache] = None,
        publisher: Optional[NotificationPublisher] = None,
        session_factory: Optional[sessionmaker] = None,
        clock: Callable[[], datetime] = utc_now,
        max_workers: Optional[int] = None,
        batch_size: Optional[int] = None,
        hooks: Optional[Sequence[PostWriteHook]] = None,
    ):
        super().__init__(db)
        self.cache = cache or DatabaseStatsCache(db)
        self.publisher = publisher or NotificationService(db)
        self.session_factory = session_factory
        self.clock = clock
        self.max_workers = max_workers or settings.engine.recalc_max_workers
        self.batch_size = batch_size or settings.engine.recalc_batch_size
        self.calculator = RatingCalculator(db, clock=clock)
        self.detector = ViolationDetector(db)
        self.on_violation_recorded: List[PostWriteHook] = (
            list(hooks) if hooks is not None else [recalculate_violation_period]
        )

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------
    def _after_mutation(self, company_id: int, event_type: str, payload: Dict[str, Any]):
        try:
            self.cache.invalidate(company_stats_key(company_id))
        except Exception as e:
            self.log_warning(f"Stats cache invalidation failed for company {company_id}: {e}")
        try:
            self.publisher.publish(event_type, company_id, payload)
        except Exception as e:
            self.log_warning(f"Publishing {event_type} failed for company {company_id}: {e}")

    @staticmethod
    def _rating_payload(row: EmployeeRating) -> Dict[str, Any]:
        return {
            "employee_id": row.employee_id,
            "period_start": row.period_start.isoformat(),
            "period_end": row.period_end.isoformat(),
            "rating": str(row.rating),
            "status": row.status,
        }

    # ------------------------------------------------------------------
    # Violations
    # ------------------------------------------------------------------
    def _get_employee(self, employee_id: int) -> Employee:
        employee = self.db.get(Employee, employee_id)
        if not employee:
            raise NotFoundError("Employee", employee_id)
        return employee

    def record_violation(
        self,
        employee_id: int,
        company_id: int,
        rule_id: int,
        source: str = ViolationSource.MANUAL.value,
        reason: Optional[str] = None,
        created_by: Optional[str] = None,
        shift_id: Optional[int] = None,
    ) -> Violation:
        if source not in {s.value for s in ViolationSource}:
            raise ValidationFailedError("source must be 'auto' or 'manual'", details={"source": str(source)})
        source = ViolationSource(source).value

        if not self.db.get(Company, company_id):
            raise NotFoundError("Company", company_id)
        employee = self._get_employee(employee_id)
        rule = self.db.get(ViolationRule, rule_id)
        if not rule:
            raise NotFoundError("ViolationRule", rule_id)

        if employee.company_id != company_id or rule.company_id != company_id:
            raise ScopeMismatchError(
                "Employee, rule and company must belong to the same company",
                details={
                    "company_id": company_id,
                    "employee_company_id": employee.company_id,
                    "rule_company_id": rule.company_id,
                }
            )
        if not rule.is_active:
            raise ValidationFailedError(f"Rule {rule.code} is inactive", details={"rule_id": rule_id})

        if shift_id is not None:
            shift = self.db.get(Shift, shift_id)
            if not shift:
                raise NotFoundError("Shift", shift_id)
            if shift.employee_id != employee_id:
                raise ScopeMismatchError(
                    "Shift does not belong to the employee",
                    details={"shift_id": shift_id, "employee_id": employee_id}
                )
            already = self.db.query(Violation.id).filter(
                Violation.employee_id == employee_id,
                Violation.shift_id == shift_id,
                Violation.rule_id == rule_id,
            ).first()
            if already:
                raise DuplicateViolationError(employee_id, shift_id, rule_id)

        violation = Violation(
            employee_id=employee_id,
            company_id=company_id,
            rule_id=rule_id,
            shift_id=shift_id,
            source=source,
            reason=reason,
            created_by=created_by,
            penalty=rule.penalty_weight,
            created_at=self.clock(),
        )
        self.db.add(violation)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateViolationError(employee_id, shift_id, rule_id)
        self.db.refresh(violation)
        self.log_info(
            f"Violation {violation.id} recorded for employee {employee_id} ({rule.code}, -{violation.penalty})",
            violation_id=violation.id, source=source
        )

        record_violation_metric(rule.code, source)
        payload = {
            "violation_id": violation.id,
            "employee_id": employee_id,
            "rule_id": rule_id,
            "rule_code": rule.code,
            "penalty": str(violation.penalty),
            "source": source,
            "shift_id": shift_id,
            "reason": reason,
            "created_at": violation.created_at.isoformat(),
        }

        hook_error: Optional[Exception] = None
        for hook in self.on_violation_recorded:
            try:
                hook(self, violation)
            except Exception as e:
                # The violation stays recorded; the error reaches the caller after side effects
                self.log_error(
                    f"Post-write hook failed for violation {payload['violation_id']}: {e}",
                    exc_info=True, violation_id=payload["violation_id"]
                )
                hook_error = hook_error or e

        self._after_mutation(company_id, VIOLATION_DETECTED, payload)
        if hook_error is not None:
            raise hook_error
        return violation

    def list_violations(self, employee_id: int, period: Optional[RatingPeriod] = None) -> List[Violation]:
        self._get_employee(employee_id)
        query = self.db.query(Violation).filter(Violation.employee_id == employee_id)
        if period is not None:
            lower, upper = period.bounds()
            query = query.filter(Violation.created_at >= lower, Violation.created_at < upper)
        return query.order_by(Violation.created_at.desc(), Violation.id.desc()).all()

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------
    def get_employee_rating(self, employee_id: int, period: RatingPeriod) -> EmployeeRating:
        self._get_employee(employee_id)
        row = self.db.query(EmployeeRating).filter(
            EmployeeRating.employee_id == employee_id,
            EmployeeRating.period_start == period.start,
            EmployeeRating.period_end == period.end,
        ).first()
        if not row:
            raise NotFoundError("EmployeeRating", f"{employee_id}@{period.start}..{period.end}")
        return row

    def recalculate_employee(self, employee_id: int, period: RatingPeriod) -> EmployeeRating:
        row = self.calculator.recalculate(employee_id, period)
        self._after_mutation(row.company_id, RATING_UPDATED, self._rating_payload(row))
        return row

    def adjust_employee_rating(self, employee_id: int, period: RatingPeriod, delta: Any) -> EmployeeRating:
        row = self.calculator.adjust(employee_id, period, delta)
        self._after_mutation(row.company_id, RATING_UPDATED, {
            **self._rating_payload(row), "adjustment": str(delta)
        })
        return row

    def _recalculate_batch(self, employee_ids: List[int], period: RatingPeriod) -> Dict[str, Any]:
        result = self.calculator.recalculate_many(
            employee_ids,
            period,
            session_factory=self.session_factory,
            max_workers=self.max_workers,
            batch_size=self.batch_size,
        )
        for company_id in sorted(result.company_ids):
            self._after_mutation(company_id, RATING_UPDATED, {
                **period.as_dict(), "batch": True, "processed_count": len(result.processed)
            })
        return result.as_dict()

    def recalculate_company(self, company_id: int, period: Optional[RatingPeriod] = None) -> Dict[str, Any]:
        if not self.db.get(Company, company_id):
            raise NotFoundError("Company", company_id)
        period = period or current_month(self.clock().date())
        employee_ids = [
            eid for (eid,) in self.db.query(Employee.id).filter(
                Employee.company_id == company_id
            ).order_by(Employee.id).all()
        ]
        self.log_info(f"Recalculating {len(employee_ids)} ratings for company {company_id}", **period.as_dict())
        return {"company_id": company_id, **self._recalculate_batch(employee_ids, period)}

    def recalculate_all(self, period: Optional[RatingPeriod] = None) -> Dict[str, Any]:
        period = period or current_month(self.clock().date())
        employee_ids = [
            eid for (eid,) in self.db.query(Employee.id).order_by(Employee.id).all()
        ]
        self.log_info(f"Recalculating ratings for all {len(employee_ids)} employees", **period.as_dict())
        return self._recalculate_batch(employee_ids, period)

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------
    def detect_and_record(
        self,
        company_id: int,
        employee_id: Optional[int] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> DetectionResult:
        breaches = self.detector.find_breaches(
            company_id, employee_id=employee_id, since=since, until=until, now=now or self.clock()
        )
        result = DetectionResult(company_id=company_id, breaches_found=len(breaches))
        for breach in breaches:
            try:
                self.record_violation(
                    employee_id=breach.employee_id,
                    company_id=company_id,
                    rule_id=breach.rule_id,
                    source=ViolationSource.AUTO.value,
                    reason=breach.reason,
                    created_by="system",
                    shift_id=breach.shift_id,
                )
                result.violations_created += 1
            except DuplicateViolationError:
                result.skipped_duplicates += 1
            except Exception as e:
                self.db.rollback()
                self.log_error(
                    f"Recording breach failed for shift {breach.shift_id}: {e}",
                    shift_id=breach.shift_id, rule_id=breach.rule_id
                )
                result.errors.append({
                    "shift_id": breach.shift_id, "rule_id": breach.rule_id, "error": str(e)
                })
        return result
