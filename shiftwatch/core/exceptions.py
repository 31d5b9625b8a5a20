from typing import Any, Dict, Optional


class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class NotFoundError(AppException):
    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            message=f"{entity} {entity_id} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"entity": entity, "id": entity_id}
        )


class ScopeMismatchError(AppException):
    """Employee, rule and company do not belong to the same tenant."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=422,
            error_code="SCOPE_MISMATCH",
            details=details
        )


class DuplicateCodeError(AppException):
    def __init__(self, code: str, company_id: int):
        super().__init__(
            message=f"Rule code '{code}' already exists for company {company_id}",
            status_code=409,
            error_code="DUPLICATE_CODE",
            details={"code": code, "company_id": company_id}
        )


class DuplicateViolationError(AppException):
    def __init__(self, employee_id: int, shift_id: Optional[int], rule_id: int):
        super().__init__(
            message="Violation already recorded for this employee, shift and rule",
            status_code=409,
            error_code="DUPLICATE_VIOLATION",
            details={"employee_id": employee_id, "shift_id": shift_id, "rule_id": rule_id}
        )


class ValidationFailedError(AppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_FAILED",
            details=details
        )


class RuleInUseError(AppException):
    def __init__(self, rule_id: int, violation_count: int):
        super().__init__(
            message=(
                f"Rule {rule_id} is referenced by {violation_count} violation(s); "
                "deactivate it instead"
            ),
            status_code=409,
            error_code="RULE_IN_USE",
            details={"rule_id": rule_id, "violation_count": violation_count}
        )


class StorageError(AppException):
    def __init__(self, message: str = "Storage is temporarily unavailable"):
        super().__init__(
            message=message,
            status_code=503,
            error_code="STORAGE_UNAVAILABLE"
        )
