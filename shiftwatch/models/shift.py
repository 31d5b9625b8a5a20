from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from shiftwatch.core.timeutils import utc_now
from shiftwatch.database import Base
import enum


class ShiftStatus(str, enum.Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Shift(Base):
    __tablename__ = "shifts"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    planned_start_at = Column(DateTime, nullable=False, index=True)
    planned_end_at = Column(DateTime, nullable=False)
    actual_start_at = Column(DateTime, nullable=True)
    actual_end_at = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False, default=ShiftStatus.PLANNED.value, index=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    employee = relationship("Employee", back_populates="shifts")
    work_intervals = relationship(
        "WorkInterval", back_populates="shift", cascade="all, delete-orphan",
        order_by="WorkInterval.start_at"
    )
    breaks = relationship(
        "BreakInterval", back_populates="shift", cascade="all, delete-orphan",
        order_by="BreakInterval.start_at"
    )


class WorkInterval(Base):
    __tablename__ = "work_intervals"

    id = Column(Integer, primary_key=True, index=True)
    shift_id = Column(Integer, ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False, index=True)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=True)

    shift = relationship("Shift", back_populates="work_intervals")


class BreakInterval(Base):
    __tablename__ = "break_intervals"

    id = Column(Integer, primary_key=True, index=True)
    shift_id = Column(Integer, ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False, index=True)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=True)
    type = Column(String(30), nullable=False, default="regular")  # regular, lunch, technical

    shift = relationship("Shift", back_populates="breaks")
