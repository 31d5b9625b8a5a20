from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric, ForeignKey, UniqueConstraint
)
from shiftwatch.core.timeutils import utc_now
from shiftwatch.database import Base
import enum


class RatingStatus(str, enum.Enum):
    ACTIVE = "active"
    WARNING = "warning"
    TERMINATED = "terminated"


class EmployeeRating(Base):
    __tablename__ = "employee_ratings"
    __table_args__ = (
        UniqueConstraint("employee_id", "period_start", "period_end", name="uq_employee_ratings_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    rating = Column(Numeric(5, 2), nullable=False, default=100)
    status = Column(String(20), nullable=False, default=RatingStatus.ACTIVE.value)
    updated_at = Column(DateTime, nullable=False, default=utc_now)
