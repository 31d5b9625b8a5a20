from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from shiftwatch.core.timeutils import utc_now
from shiftwatch.database import Base
import enum


class EmployeeStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    TERMINATED = "terminated"


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    position = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=EmployeeStatus.ACTIVE.value, index=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    company = relationship("Company", back_populates="employees")
    shifts = relationship("Shift", back_populates="employee")
