import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal

from shiftwatch.core.exceptions import (
    DuplicateViolationError, NotFoundError, ScopeMismatchError, StorageError, ValidationFailedError
)
from shiftwatch.models.employee import Employee
from shiftwatch.models.employee_rating import EmployeeRating
from shiftwatch.models.notification import NotificationEvent
from shiftwatch.models.violation import Violation
from shiftwatch.services.cache import DatabaseStatsCache, company_stats_key
from shiftwatch.services.periods import RatingPeriod
from shiftwatch.services.rating_engine import RatingEngine
from shiftwatch.services.violation_rules import ViolationRuleService

NOW = datetime(2024, 3, 10, 12, 0)
MARCH = RatingPeriod(date(2024, 3, 1), date(2024, 3, 31))


def _engine(db, **kwargs):
    return RatingEngine(db, clock=lambda: NOW, **kwargs)


class _BrokenCache:
    def get(self, key):
        raise RuntimeError("cache down")

    def set(self, key, value, ttl_seconds=None):
        raise RuntimeError("cache down")

    def invalidate(self, key):
        raise RuntimeError("cache down")


class _BrokenPublisher:
    def publish(self, event_type, company_id, payload):
        raise RuntimeError("broker down")


def test_late_arrival_scenario(db_session, company, employee, late_rule, make_shift):
    make_shift(employee, datetime(2024, 3, 10, 9, 0), datetime(2024, 3, 10, 17, 0), status="active",
               actual_start=datetime(2024, 3, 10, 9, 20))
    engine = _engine(db_session)

    result = engine.detect_and_record(company.id)

    assert result.violations_created == 1
    violation = db_session.query(Violation).one()
    assert violation.source == "auto"
    assert violation.penalty == Decimal("5.00")
    rating = engine.get_employee_rating(employee.id, MARCH)
    assert rating.rating == Decimal("95.00")
    assert rating.status == "active"


def test_detection_is_idempotent(db_session, company, employee, late_rule, make_shift):
    make_shift(employee, datetime(2024, 3, 10, 9, 0), datetime(2024, 3, 10, 17, 0), status="completed",
               actual_start=datetime(2024, 3, 10, 9, 45), actual_end=datetime(2024, 3, 10, 17, 0))
    engine = _engine(db_session)

    assert engine.detect_and_record(company.id).violations_created == 1
    second = engine.detect_and_record(company.id)
    assert second.breaches_found == 0
    assert second.violations_created == 0
    assert db_session.query(Violation).count() == 1


def test_manual_violation_recalculates_its_month(db_session, company, employee, make_rule):
    rule = make_rule(company, code="rude", penalty="12.5")
    violation = _engine(db_session).record_violation(
        employee.id, company.id, rule.id, source="manual", reason="Customer complaint", created_by="manager"
    )
    assert violation.created_at == NOW
    row = db_session.query(EmployeeRating).one()
    assert (row.period_start, row.period_end) == (MARCH.start, MARCH.end)
    assert row.rating == Decimal("87.50")


def test_penalty_is_snapshotted(db_session, company, employee, make_rule):
    rule = make_rule(company, code="rude", penalty="5")
    engine = _engine(db_session)
    engine.record_violation(employee.id, company.id, rule.id)

    ViolationRuleService(db_session).update_rule(rule.id, {"penalty_weight": Decimal("20")})
    row = engine.recalculate_employee(employee.id, MARCH)

    assert db_session.query(Violation).one().penalty == Decimal("5.00")
    assert row.rating == Decimal("95.00")


def test_scope_mismatch_rejected_before_write(db_session, company, employee, make_company, make_rule):
    other = make_company(name="Beta LLC")
    foreign_rule = make_rule(other, code="late")
    engine = _engine(db_session)

    with pytest.raises(ScopeMismatchError):
        engine.record_violation(employee.id, company.id, foreign_rule.id)
    with pytest.raises(ScopeMismatchError):
        engine.record_violation(employee.id, other.id, foreign_rule.id)
    assert db_session.query(Violation).count() == 0
    assert db_session.query(EmployeeRating).count() == 0


def test_missing_entities_raise_not_found(db_session, company, employee, make_rule):
    rule = make_rule(company)
    engine = _engine(db_session)
    with pytest.raises(NotFoundError):
        engine.record_violation(9999, company.id, rule.id)
    with pytest.raises(NotFoundError):
        engine.record_violation(employee.id, company.id, 9999)
    with pytest.raises(NotFoundError):
        engine.record_violation(employee.id, 9999, rule.id)


def test_inactive_rule_rejects_new_violations(db_session, company, employee, make_rule):
    rule = make_rule(company, code="old", is_active=False)
    with pytest.raises(ValidationFailedError):
        _engine(db_session).record_violation(employee.id, company.id, rule.id)


def test_invalid_source_rejected(db_session, company, employee, make_rule):
    rule = make_rule(company)
    with pytest.raises(ValidationFailedError):
        _engine(db_session).record_violation(employee.id, company.id, rule.id, source="robot")


def test_duplicate_shift_violation_rejected(db_session, company, employee, make_rule, make_shift):
    rule = make_rule(company)
    shift = make_shift(employee, datetime(2024, 3, 10, 9, 0), datetime(2024, 3, 10, 17, 0))
    engine = _engine(db_session)
    engine.record_violation(employee.id, company.id, rule.id, shift_id=shift.id)
    with pytest.raises(DuplicateViolationError):
        engine.record_violation(employee.id, company.id, rule.id, shift_id=shift.id)


def test_shift_of_other_employee_rejected(db_session, company, employee, make_employee, make_rule, make_shift):
    rule = make_rule(company)
    colleague = make_employee(company, full_name="Colleague")
    shift = make_shift(colleague, datetime(2024, 3, 10, 9, 0), datetime(2024, 3, 10, 17, 0))
    with pytest.raises(ScopeMismatchError):
        _engine(db_session).record_violation(employee.id, company.id, rule.id, shift_id=shift.id)


def test_side_effect_failures_do_not_fail_recording(db_session, company, employee, make_rule):
    rule = make_rule(company, penalty="10")
    engine = _engine(db_session, cache=_BrokenCache(), publisher=_BrokenPublisher())

    violation = engine.record_violation(employee.id, company.id, rule.id)

    assert violation.id is not None
    assert engine.get_employee_rating(employee.id, MARCH).rating == Decimal("90.00")


def test_hook_failure_is_reported_but_keeps_violation(db_session, company, employee, make_rule):
    rule = make_rule(company)
    cache = DatabaseStatsCache(db_session)
    cache.set(company_stats_key(company.id), {"stale": True})

    def failing_hook(engine, violation):
        raise StorageError()

    engine = _engine(db_session, cache=cache, hooks=[failing_hook])
    with pytest.raises(StorageError):
        engine.record_violation(employee.id, company.id, rule.id)

    assert db_session.query(Violation).count() == 1
    assert cache.get(company_stats_key(company.id)) is None
    with pytest.raises(NotFoundError):
        engine.get_employee_rating(employee.id, MARCH)


def test_detection_counts_hook_failures_as_errors(db_session, company, employee, late_rule, make_shift):
    make_shift(employee, datetime(2024, 3, 10, 9, 0), datetime(2024, 3, 10, 17, 0), status="active",
               actual_start=datetime(2024, 3, 10, 9, 30))

    def failing_hook(engine, violation):
        raise StorageError()

    result = _engine(db_session, hooks=[failing_hook]).detect_and_record(company.id)

    assert result.violations_created == 0
    assert len(result.errors) == 1
    assert db_session.query(Violation).count() == 1


def test_recording_invalidates_cache_and_publishes(db_session, company, employee, make_rule):
    rule = make_rule(company)
    cache = DatabaseStatsCache(db_session)
    cache.set(company_stats_key(company.id), {"stale": True})

    _engine(db_session, cache=cache).record_violation(employee.id, company.id, rule.id)

    assert cache.get(company_stats_key(company.id)) is None
    event = db_session.query(NotificationEvent).filter(
        NotificationEvent.event_type == "violation.detected"
    ).one()
    assert event.payload["employee_id"] == employee.id
    assert event.payload["penalty"] == "5.00"


def test_adjust_employee_rating_terminates(db_session, company, employee):
    row = _engine(db_session).adjust_employee_rating(employee.id, MARCH, Decimal("-150"))
    assert row.rating == Decimal("0.00")
    assert row.status == "terminated"
    assert db_session.get(Employee, employee.id).status == "terminated"
    assert db_session.query(NotificationEvent).filter(
        NotificationEvent.event_type == "rating.updated"
    ).count() == 1


def test_recalculate_company_defaults_to_current_month(db_session, company, make_employee, make_rule):
    workers = [make_employee(company, full_name=f"Worker {i}") for i in range(3)]
    rule = make_rule(company, penalty="20")
    engine = _engine(db_session, hooks=[])
    engine.record_violation(workers[0].id, company.id, rule.id)

    result = engine.recalculate_company(company.id)

    assert result["processed_count"] == 3
    assert result["failed_count"] == 0
    assert result["period_start"] == "2024-03-01"
    assert engine.get_employee_rating(workers[0].id, MARCH).rating == Decimal("80.00")


def test_recalculate_company_unknown(db_session):
    with pytest.raises(NotFoundError):
        _engine(db_session).recalculate_company(777)


def test_recalculate_all_in_parallel(db_session, session_factory, make_company, make_employee):
    first = make_company(name="One")
    second = make_company(name="Two")
    for i in range(4):
        make_employee(first, full_name=f"A{i}")
        make_employee(second, full_name=f"B{i}")

    engine = _engine(db_session, session_factory=session_factory, max_workers=3, batch_size=3)
    result = engine.recalculate_all()

    assert result["processed_count"] == 8
    assert result["failed_count"] == 0
    assert db_session.query(EmployeeRating).count() == 8


def test_list_violations_by_period(db_session, company, employee, make_rule, make_violation):
    rule = make_rule(company)
    make_violation(employee, rule, datetime(2024, 3, 3, 9, 0))
    make_violation(employee, rule, datetime(2024, 4, 3, 9, 0))
    engine = _engine(db_session)
    assert len(engine.list_violations(employee.id)) == 2
    assert len(engine.list_violations(employee.id, MARCH)) == 1


def test_detection_uses_clock_for_window(db_session, company, employee, late_rule, make_shift):
    make_shift(employee, NOW - timedelta(days=3), NOW - timedelta(days=3) + timedelta(hours=8),
               status="active", actual_start=NOW - timedelta(days=3) + timedelta(minutes=30))
    assert _engine(db_session).detect_and_record(company.id).breaches_found == 0
