"""
Detection conditions attached to violation rules.

Conditions are a closed set of variants discriminated by `kind`. Rules
created before conditions existed carry only a legacy code, which maps to
one of the variants with its default parameters.
"""
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from shiftwatch.core.exceptions import ValidationFailedError


class _Condition(BaseModel):
    model_config = ConfigDict(extra="forbid")


class LateArrival(_Condition):
    kind: Literal["late_arrival"] = "late_arrival"
    threshold_minutes: int = Field(default=15, ge=0)


class NoShow(_Condition):
    kind: Literal["no_show"] = "no_show"
    grace_minutes: int = Field(default=0, ge=0)


class ExtendedBreak(_Condition):
    kind: Literal["extended_break"] = "extended_break"
    max_minutes: int = Field(default=90, ge=0)


class EarlyDeparture(_Condition):
    kind: Literal["early_departure"] = "early_departure"
    threshold_minutes: int = Field(default=15, ge=0)


RuleCondition = Annotated[
    Union[LateArrival, NoShow, ExtendedBreak, EarlyDeparture],
    Field(discriminator="kind"),
]

_adapter = TypeAdapter(RuleCondition)

LEGACY_CODES = {
    "late": LateArrival,
    "missed_shift": NoShow,
    "long_break": ExtendedBreak,
    "no_break_end": ExtendedBreak,
    "early_end": EarlyDeparture,
}


def parse_conditions(raw: Dict[str, Any]):
    try:
        return _adapter.validate_python(raw)
    except ValidationError as e:
        raise ValidationFailedError(
            "Invalid rule conditions",
            details={"errors": [err["msg"] for err in e.errors()]}
        )


def resolve_conditions(code: str, raw: Optional[Dict[str, Any]]):
    """Condition for a rule, or None when the rule cannot be auto-detected."""
    if raw:
        return parse_conditions(raw)
    legacy = LEGACY_CODES.get((code or "").strip().lower())
    return legacy() if legacy else None


def validate_rule_conditions(code: str, raw: Optional[Dict[str, Any]], auto_detectable: bool) -> Optional[Dict[str, Any]]:
    """Normalized conditions payload for storage; rejects undetectable auto rules."""
    condition = resolve_conditions(code, raw)
    if auto_detectable and condition is None:
        raise ValidationFailedError(
            f"Auto-detectable rule '{code}' needs detection conditions",
            details={"code": code, "supported_kinds": sorted(
                ["late_arrival", "no_show", "extended_break", "early_departure"]
            )}
        )
    if raw:
        return condition.model_dump()
    return None
