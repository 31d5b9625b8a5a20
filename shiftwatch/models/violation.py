from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Numeric, ForeignKey, UniqueConstraint, Index
)
from shiftwatch.database import Base
import enum


class ViolationSource(str, enum.Enum):
    AUTO = "auto"
    MANUAL = "manual"


class Violation(Base):
    """
    Immutable record of a rule breach. `penalty` is the rule's weight at the
    time of recording and never changes afterwards.
    """
    __tablename__ = "violations"
    __table_args__ = (
        UniqueConstraint("employee_id", "shift_id", "rule_id", name="uq_violations_employee_shift_rule"),
        Index("ix_violations_employee_created", "employee_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    rule_id = Column(Integer, ForeignKey("violation_rules.id"), nullable=False, index=True)
    shift_id = Column(Integer, ForeignKey("shifts.id", ondelete="SET NULL"), nullable=True)
    source = Column(String(10), nullable=False)
    reason = Column(Text, nullable=True)
    created_by = Column(String(255), nullable=True)
    penalty = Column(Numeric(5, 2), nullable=False)
    created_at = Column(DateTime, nullable=False)

