# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    company, employee, shift, violation_rule, violation,
    employee_rating, stats_cache, notification
)

# Explicit class exports for cleaner imports
from .company import Company
from .employee import Employee, EmployeeStatus
from .shift import Shift, ShiftStatus, WorkInterval, BreakInterval
from .violation_rule import ViolationRule
from .violation import Violation, ViolationSource
from .employee_rating import EmployeeRating, RatingStatus
from .stats_cache import StatsCacheEntry
from .notification import NotificationEvent

__all__ = [
    "Company",
    "Employee",
    "EmployeeStatus",
    "Shift",
    "ShiftStatus",
    "WorkInterval",
    "BreakInterval",
    "ViolationRule",
    "Violation",
    "ViolationSource",
    "EmployeeRating",
    "RatingStatus",
    "StatsCacheEntry",
    "NotificationEvent",
]
