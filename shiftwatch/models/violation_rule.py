from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Numeric, JSON, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from shiftwatch.core.timeutils import utc_now
from shiftwatch.database import Base


class ViolationRule(Base):
    __tablename__ = "violation_rules"
    __table_args__ = (
        # code_key is the lower-cased code, making uniqueness case-insensitive
        UniqueConstraint("company_id", "code_key", name="uq_violation_rules_company_code"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String(50), nullable=False)
    code_key = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    penalty_weight = Column(Numeric(5, 2), nullable=False)
    auto_detectable = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    conditions = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    company = relationship("Company", back_populates="rules")
