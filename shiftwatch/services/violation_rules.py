"""
Violation Rule Service

Per-company catalog of rule codes and penalty weights. Codes are unique per
company regardless of case. Editing a rule's weight never changes the
penalty already snapshotted on recorded violations.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shiftwatch.core.exceptions import (
    DuplicateCodeError, NotFoundError, RuleInUseError, ValidationFailedError
)
from shiftwatch.models.company import Company
from shiftwatch.models.violation import Violation
from shiftwatch.models.violation_rule import ViolationRule
from shiftwatch.services.base import BaseService
from shiftwatch.services.cache import DatabaseStatsCache, StatsCache, company_stats_key
from shiftwatch.services.rating_calculator import to_finite_decimal
from shiftwatch.services.rule_conditions import validate_rule_conditions

DEFAULT_RULES = [
    {"code": "late", "name": "Late arrival", "penalty_weight": Decimal("5"), "auto_detectable": True},
    {"code": "early_end", "name": "Early departure", "penalty_weight": Decimal("5"), "auto_detectable": True},
    {"code": "missed_shift", "name": "Missed shift", "penalty_weight": Decimal("15"), "auto_detectable": True},
    {"code": "long_break", "name": "Extended break", "penalty_weight": Decimal("5"), "auto_detectable": True},
    {"code": "no_break_end", "name": "Break not closed", "penalty_weight": Decimal("10"), "auto_detectable": True},
]

_UPDATABLE = {"company_id", "code", "name", "description", "penalty_weight", "auto_detectable", "is_active", "conditions"}
_NOT_NULL = {"company_id", "code", "name", "penalty_weight", "auto_detectable", "is_active"}


def _normalize_code(code: Optional[str]) -> str:
    code = (code or "").strip()
    if not code:
        raise ValidationFailedError("Rule code is required")
    if len(code) > 50:
        raise ValidationFailedError("Rule code must be at most 50 characters")
    return code


def _validate_penalty(value: Any) -> Decimal:
    penalty = to_finite_decimal(value, "penalty_weight")
    if penalty < 0 or penalty > 100:
        raise ValidationFailedError(
            "penalty_weight must be between 0 and 100",
            details={"penalty_weight": str(penalty)}
        )
    return penalty.quantize(Decimal("0.01"))


class ViolationRuleService(BaseService):
    def __init__(self, db: Session, cache: Optional[StatsCache] = None):
        super().__init__(db)
        self.cache = cache or DatabaseStatsCache(db)

    def _get_company(self, company_id: int) -> Company:
        company = self.db.get(Company, company_id)
        if not company:
            raise NotFoundError("Company", company_id)
        return company

    def get_rule(self, rule_id: int) -> ViolationRule:
        rule = self.db.get(ViolationRule, rule_id)
        if not rule:
            raise NotFoundError("ViolationRule", rule_id)
        return rule

    def _ensure_unique(self, company_id: int, code: str, exclude_id: Optional[int] = None):
        query = self.db.query(ViolationRule.id).filter(
            ViolationRule.company_id == company_id,
            ViolationRule.code_key == code.lower(),
        )
        if exclude_id is not None:
            query = query.filter(ViolationRule.id != exclude_id)
        if query.first():
            raise DuplicateCodeError(code, company_id)

    def _violation_count(self, rule_id: int) -> int:
        return self.db.query(func.count(Violation.id)).filter(Violation.rule_id == rule_id).scalar() or 0

    def _save(self, rule: ViolationRule) -> ViolationRule:
        code, company_id, rule_id = rule.code, rule.company_id, rule.id
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            self._ensure_unique(company_id, code, exclude_id=rule_id)
            raise ValidationFailedError(
                "Rule violates a storage constraint", details={"error": str(e.orig)}
            )
        self.db.refresh(rule)
        self.cache.invalidate(company_stats_key(rule.company_id))
        return rule

    def list_rules(self, company_id: int, active_only: bool = False) -> List[ViolationRule]:
        self._get_company(company_id)
        query = self.db.query(ViolationRule).filter(ViolationRule.company_id == company_id)
        if active_only:
            query = query.filter(ViolationRule.is_active.is_(True))
        return query.order_by(ViolationRule.code_key).all()

    def create_rule(
        self,
        company_id: int,
        code: str,
        name: str,
        penalty_weight: Any,
        description: Optional[str] = None,
        auto_detectable: bool = False,
        is_active: bool = True,
        conditions: Optional[Dict[str, Any]] = None,
    ) -> ViolationRule:
        self._get_company(company_id)
        code = _normalize_code(code)
        if not (name or "").strip():
            raise ValidationFailedError("Rule name is required")
        penalty = _validate_penalty(penalty_weight)
        stored_conditions = validate_rule_conditions(code, conditions, auto_detectable)
        self._ensure_unique(company_id, code)

        rule = ViolationRule(
            company_id=company_id,
            code=code,
            code_key=code.lower(),
            name=name.strip(),
            description=description,
            penalty_weight=penalty,
            auto_detectable=auto_detectable,
            is_active=is_active,
            conditions=stored_conditions,
        )
        self.db.add(rule)
        rule = self._save(rule)
        self.log_info(f"Violation rule {rule.code} created for company {company_id}", rule_id=rule.id)
        return rule

    def update_rule(self, rule_id: int, changes: Dict[str, Any]) -> ViolationRule:
        rule = self.get_rule(rule_id)
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValidationFailedError("Unknown rule fields", details={"fields": sorted(unknown)})
        nulls = sorted(key for key in _NOT_NULL if key in changes and changes[key] is None)
        if nulls:
            raise ValidationFailedError("Rule fields cannot be null", details={"fields": nulls})

        previous_company = rule.company_id
        company_id = changes.get("company_id", rule.company_id)
        code = _normalize_code(changes["code"]) if "code" in changes else rule.code
        if company_id != rule.company_id:
            self._get_company(company_id)
            # Recorded violations must stay in their rule's company
            used = self._violation_count(rule_id)
            if used:
                raise RuleInUseError(rule_id, used)
        if company_id != rule.company_id or code.lower() != rule.code_key:
            self._ensure_unique(company_id, code, exclude_id=rule.id)

        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationFailedError("Rule name is required")
        penalty = _validate_penalty(changes["penalty_weight"]) if "penalty_weight" in changes else None
        auto_detectable = changes.get("auto_detectable", rule.auto_detectable)
        raw_conditions = changes["conditions"] if "conditions" in changes else rule.conditions
        stored_conditions = validate_rule_conditions(code, raw_conditions, auto_detectable)

        rule.company_id = company_id
        rule.code = code
        rule.code_key = code.lower()
        rule.auto_detectable = auto_detectable
        rule.conditions = stored_conditions
        if "name" in changes:
            rule.name = changes["name"].strip()
        if "description" in changes:
            rule.description = changes["description"]
        if penalty is not None:
            rule.penalty_weight = penalty
        if "is_active" in changes:
            rule.is_active = bool(changes["is_active"])

        rule = self._save(rule)
        if previous_company != rule.company_id:
            self.cache.invalidate(company_stats_key(previous_company))
        self.log_info(f"Violation rule {rule.id} updated", fields=sorted(changes))
        return rule

    def delete_rule(self, rule_id: int) -> None:
        rule = self.get_rule(rule_id)
        used = self._violation_count(rule_id)
        if used:
            raise RuleInUseError(rule_id, used)
        company_id = rule.company_id
        self.db.delete(rule)
        self.db.commit()
        self.cache.invalidate(company_stats_key(company_id))
        self.log_info(f"Violation rule {rule_id} deleted", rule_id=rule_id)

    def seed_default_rules(self, company_id: int) -> List[ViolationRule]:
        """Create the built-in rule set, skipping codes the company already has."""
        self._get_company(company_id)
        existing = {
            key for (key,) in self.db.query(ViolationRule.code_key).filter(
                ViolationRule.company_id == company_id
            ).all()
        }
        created = []
        for defaults in DEFAULT_RULES:
            if defaults["code"] in existing:
                continue
            created.append(self.create_rule(company_id, **defaults))
        return created
