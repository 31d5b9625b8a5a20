"""
Violation Detector

Scans a company's shifts against its active, auto-detectable rules and
returns breaches that have not been recorded yet. Detection itself writes
nothing; recording is done by the rating engine.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import selectinload

from shiftwatch.core.config import settings
from shiftwatch.core.exceptions import NotFoundError
from shiftwatch.core.timeutils import utc_now
from shiftwatch.models.company import Company
from shiftwatch.models.employee import Employee, EmployeeStatus
from shiftwatch.models.shift import Shift, ShiftStatus
from shiftwatch.models.violation import Violation
from shiftwatch.models.violation_rule import ViolationRule
from shiftwatch.services.base import BaseService
from shiftwatch.services.rule_conditions import (
    EarlyDeparture, ExtendedBreak, LateArrival, NoShow, resolve_conditions
)


@dataclass(frozen=True)
class Breach:
    employee_id: int
    shift_id: int
    rule_id: int
    kind: str
    minutes: float
    reason: str


def _minutes(delta: timedelta) -> float:
    return delta.total_seconds() / 60


def actual_start(shift: Shift) -> Optional[datetime]:
    if shift.actual_start_at:
        return shift.actual_start_at
    starts = [w.start_at for w in shift.work_intervals]
    return min(starts) if starts else None


def actual_end(shift: Shift) -> Optional[datetime]:
    if shift.actual_end_at:
        return shift.actual_end_at
    ends = [w.end_at for w in shift.work_intervals if w.end_at]
    return max(ends) if ends else None


def _check(condition, shift: Shift, now: datetime) -> Optional[Tuple[float, str]]:
    """(minutes, reason) when the shift breaches the condition."""
    if isinstance(condition, LateArrival):
        if shift.status not in (ShiftStatus.ACTIVE.value, ShiftStatus.COMPLETED.value):
            return None
        started = actual_start(shift)
        if started is None:
            return None
        late = _minutes(started - shift.planned_start_at)
        if late > condition.threshold_minutes:
            return late, f"Late arrival: started {round(late)} min after planned start"
        return None

    if isinstance(condition, NoShow):
        if shift.status != ShiftStatus.PLANNED.value or actual_start(shift) is not None:
            return None
        deadline = shift.planned_start_at + timedelta(minutes=condition.grace_minutes)
        if deadline < now:
            missed = _minutes(now - shift.planned_start_at)
            return missed, f"No-show: shift not started {round(missed)} min after planned start"
        return None

    if isinstance(condition, ExtendedBreak):
        longest = 0.0
        for interval in shift.breaks:
            longest = max(longest, _minutes((interval.end_at or now) - interval.start_at))
        if longest > condition.max_minutes:
            return longest, f"Extended break: {round(longest)} min (limit {condition.max_minutes} min)"
        return None

    if isinstance(condition, EarlyDeparture):
        if shift.status != ShiftStatus.COMPLETED.value:
            return None
        ended = actual_end(shift)
        if ended is None:
            return None
        early = _minutes(shift.planned_end_at - ended)
        if early > condition.threshold_minutes:
            return early, f"Early departure: ended {round(early)} min before planned end"
        return None

    return None


def evaluate_shift(shift: Shift, rules: Sequence[Tuple[ViolationRule, object]], now: datetime) -> List[Breach]:
    """At most one breach per rule for the given shift."""
    if shift.status == ShiftStatus.CANCELLED.value:
        return []
    breaches = []
    for rule, condition in rules:
        hit = _check(condition, shift, now)
        if hit:
            minutes, reason = hit
            breaches.append(Breach(
                employee_id=shift.employee_id,
                shift_id=shift.id,
                rule_id=rule.id,
                kind=condition.kind,
                minutes=round(minutes, 2),
                reason=reason,
            ))
    return breaches


class ViolationDetector(BaseService):
    def detectable_rules(self, company_id: int) -> List[Tuple[ViolationRule, object]]:
        rules = self.db.query(ViolationRule).filter(
            ViolationRule.company_id == company_id,
            ViolationRule.is_active.is_(True),
            ViolationRule.auto_detectable.is_(True),
        ).order_by(ViolationRule.id).all()

        resolved = []
        for rule in rules:
            condition = resolve_conditions(rule.code, rule.conditions)
            if condition is None:
                self.log_warning(f"Rule {rule.code} has no detection conditions; skipping", rule_id=rule.id)
                continue
            resolved.append((rule, condition))
        return resolved

    def find_breaches(
        self,
        company_id: int,
        employee_id: Optional[int] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> List[Breach]:
        company = self.db.get(Company, company_id)
        if not company:
            raise NotFoundError("Company", company_id)
        if not company.is_active:
            self.log_info(f"Company {company_id} is inactive; detection skipped")
            return []

        now = now or utc_now()
        until = until or now
        since = since or now - timedelta(hours=settings.engine.detection_lookback_hours)

        rules = self.detectable_rules(company_id)
        if not rules:
            return []

        query = self.db.query(Shift).join(Employee, Employee.id == Shift.employee_id).filter(
            Employee.company_id == company_id,
            Employee.status == EmployeeStatus.ACTIVE.value,
            Shift.status != ShiftStatus.CANCELLED.value,
            Shift.planned_start_at >= since,
            Shift.planned_start_at <= until,
        )
        if employee_id is not None:
            query = query.filter(Shift.employee_id == employee_id)
        shifts = query.options(
            selectinload(Shift.work_intervals),
            selectinload(Shift.breaks),
        ).order_by(Shift.planned_start_at).all()
        if not shifts:
            return []

        recorded = set(
            self.db.query(Violation.shift_id, Violation.rule_id).filter(
                Violation.shift_id.in_([s.id for s in shifts]),
                Violation.rule_id.in_([r.id for r, _ in rules]),
            ).all()
        )

        breaches = []
        for shift in shifts:
            for breach in evaluate_shift(shift, rules, now):
                if (breach.shift_id, breach.rule_id) in recorded:
                    continue
                breaches.append(breach)

        self.log_info(
            f"Detection for company {company_id}: {len(shifts)} shifts, {len(breaches)} new breaches",
        )
        return breaches
