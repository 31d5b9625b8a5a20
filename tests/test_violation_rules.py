import pytest
from datetime import datetime
from decimal import Decimal

from shiftwatch.core.exceptions import (
    DuplicateCodeError, NotFoundError, RuleInUseError, ValidationFailedError
)
from shiftwatch.models.violation_rule import ViolationRule
from shiftwatch.services.violation_rules import ViolationRuleService


def test_create_rule_trims_code(db_session, company):
    rule = ViolationRuleService(db_session).create_rule(
        company_id=company.id, code="  late ", name="Late", penalty_weight="5"
    )
    assert rule.code == "late"
    assert rule.penalty_weight == Decimal("5.00")
    assert rule.is_active is True


def test_duplicate_code_is_case_insensitive(db_session, company, make_rule):
    make_rule(company, code="late")
    with pytest.raises(DuplicateCodeError):
        make_rule(company, code="LATE")
    assert db_session.query(ViolationRule).count() == 1


def test_same_code_allowed_in_other_company(db_session, company, make_company, make_rule):
    other = make_company(name="Beta LLC")
    make_rule(company, code="late")
    make_rule(other, code="Late")
    assert db_session.query(ViolationRule).count() == 2


@pytest.mark.parametrize("penalty", ["-1", "100.01", "NaN"])
def test_penalty_must_be_between_0_and_100(db_session, company, penalty):
    with pytest.raises(ValidationFailedError):
        ViolationRuleService(db_session).create_rule(
            company_id=company.id, code="x", name="X", penalty_weight=penalty
        )


def test_unknown_company_rejected(db_session):
    with pytest.raises(NotFoundError):
        ViolationRuleService(db_session).create_rule(
            company_id=999, code="late", name="Late", penalty_weight="5"
        )


def test_auto_rule_needs_detectable_conditions(db_session, company):
    service = ViolationRuleService(db_session)
    with pytest.raises(ValidationFailedError):
        service.create_rule(company_id=company.id, code="uniform", name="Uniform",
                            penalty_weight="3", auto_detectable=True)
    with pytest.raises(ValidationFailedError):
        service.create_rule(company_id=company.id, code="uniform", name="Uniform",
                            penalty_weight="3", conditions={"kind": "dress_code"})
    rule = service.create_rule(company_id=company.id, code="tardy", name="Tardy", penalty_weight="3",
                               auto_detectable=True, conditions={"kind": "late_arrival", "threshold_minutes": 5})
    assert rule.conditions == {"kind": "late_arrival", "threshold_minutes": 5}


def test_update_rechecks_code_uniqueness(db_session, company, make_rule):
    make_rule(company, code="late")
    other = make_rule(company, code="early_end")
    service = ViolationRuleService(db_session)
    with pytest.raises(DuplicateCodeError):
        service.update_rule(other.id, {"code": "Late"})
    renamed = service.update_rule(other.id, {"code": "EARLY_END", "penalty_weight": Decimal("8")})
    assert renamed.code == "EARLY_END"
    assert renamed.penalty_weight == Decimal("8.00")


def test_update_rejects_unknown_fields(db_session, company, make_rule):
    rule = make_rule(company)
    with pytest.raises(ValidationFailedError):
        ViolationRuleService(db_session).update_rule(rule.id, {"penalty": 3})


def test_delete_unused_rule(db_session, company, make_rule):
    rule = make_rule(company)
    ViolationRuleService(db_session).delete_rule(rule.id)
    assert db_session.query(ViolationRule).count() == 0


def test_delete_rule_in_use_rejected(db_session, company, employee, make_rule, make_violation):
    rule = make_rule(company)
    make_violation(employee, rule, datetime(2024, 3, 1, 9, 0))
    with pytest.raises(RuleInUseError):
        ViolationRuleService(db_session).delete_rule(rule.id)


def test_list_rules_filters_inactive(db_session, company, make_rule):
    make_rule(company, code="late")
    make_rule(company, code="old", is_active=False)
    service = ViolationRuleService(db_session)
    assert [r.code for r in service.list_rules(company.id)] == ["late", "old"]
    assert [r.code for r in service.list_rules(company.id, active_only=True)] == ["late"]


def test_seed_default_rules_is_repeatable(db_session, company, make_rule):
    make_rule(company, code="LATE", penalty="7")
    service = ViolationRuleService(db_session)
    created = service.seed_default_rules(company.id)
    assert {r.code for r in created} == {"early_end", "missed_shift", "long_break", "no_break_end"}
    assert service.seed_default_rules(company.id) == []
    assert len(service.list_rules(company.id)) == 5


def test_rule_in_use_cannot_move_company(db_session, company, employee, make_company, make_rule, make_violation):
    rule = make_rule(company)
    make_violation(employee, rule, datetime(2024, 3, 1, 9, 0))
    other = make_company(name="Beta LLC")
    service = ViolationRuleService(db_session)
    with pytest.raises(RuleInUseError):
        service.update_rule(rule.id, {"company_id": other.id})
    assert service.get_rule(rule.id).company_id == company.id


def test_unused_rule_can_move_company(db_session, company, make_company, make_rule):
    rule = make_rule(company)
    other = make_company(name="Beta LLC")
    moved = ViolationRuleService(db_session).update_rule(rule.id, {"company_id": other.id})
    assert moved.company_id == other.id


@pytest.mark.parametrize("field", ["is_active", "auto_detectable", "penalty_weight", "name", "code"])
def test_update_rejects_null_for_required_fields(db_session, company, make_rule, field):
    rule = make_rule(company)
    with pytest.raises(ValidationFailedError):
        ViolationRuleService(db_session).update_rule(rule.id, {field: None})
    assert ViolationRuleService(db_session).get_rule(rule.id).is_active is True
