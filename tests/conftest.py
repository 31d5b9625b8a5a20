import pytest
import os
import tempfile
from datetime import datetime
from decimal import Decimal

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(tempfile.gettempdir(), "shiftwatch_test_app.db")

from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

import shiftwatch.models  # noqa: F401
from shiftwatch.database import Base, create_db_engine, get_db, get_session_factory
from shiftwatch.main import app
from shiftwatch.models.company import Company
from shiftwatch.models.employee import Employee
from shiftwatch.models.shift import Shift, WorkInterval, BreakInterval
from shiftwatch.models.violation import Violation
from shiftwatch.services.violation_rules import ViolationRuleService


@pytest.fixture(scope="function")
def engine(tmp_path):
    """File-backed SQLite per test so worker threads can open their own connections."""
    eng = create_db_engine(f"sqlite:///{tmp_path / 'shiftwatch.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def make_company(db_session):
    def _make(name="Alpha Corp", is_active=True):
        company = Company(name=name, timezone="UTC", is_active=is_active)
        db_session.add(company)
        db_session.commit()
        return company
    return _make


@pytest.fixture(scope="function")
def company(make_company):
    return make_company()


@pytest.fixture(scope="function")
def make_employee(db_session):
    def _make(company, full_name="Jane Doe", status="active"):
        employee = Employee(company_id=company.id, full_name=full_name, position="Cashier", status=status)
        db_session.add(employee)
        db_session.commit()
        return employee
    return _make


@pytest.fixture(scope="function")
def employee(make_employee, company):
    return make_employee(company)


@pytest.fixture(scope="function")
def make_rule(db_session):
    def _make(company, code="late", penalty="5", auto_detectable=False, conditions=None, is_active=True, name=None):
        return ViolationRuleService(db_session).create_rule(
            company_id=company.id,
            code=code,
            name=name or code.replace("_", " ").title(),
            penalty_weight=Decimal(penalty),
            auto_detectable=auto_detectable,
            is_active=is_active,
            conditions=conditions,
        )
    return _make


@pytest.fixture(scope="function")
def late_rule(make_rule, company):
    return make_rule(
        company, code="late", penalty="5", auto_detectable=True,
        conditions={"kind": "late_arrival", "threshold_minutes": 15},
    )


@pytest.fixture(scope="function")
def make_shift(db_session):
    def _make(employee, planned_start, planned_end, status="planned",
              actual_start=None, actual_end=None, work=(), breaks=()):
        shift = Shift(
            employee_id=employee.id,
            planned_start_at=planned_start,
            planned_end_at=planned_end,
            actual_start_at=actual_start,
            actual_end_at=actual_end,
            status=status,
        )
        for start, end in work:
            shift.work_intervals.append(WorkInterval(start_at=start, end_at=end))
        for start, end in breaks:
            shift.breaks.append(BreakInterval(start_at=start, end_at=end))
        db_session.add(shift)
        db_session.commit()
        return shift
    return _make


@pytest.fixture(scope="function")
def make_violation(db_session):
    """Insert a violation row directly, bypassing the engine."""
    def _make(employee, rule, created_at: datetime, penalty=None, shift_id=None):
        violation = Violation(
            employee_id=employee.id,
            company_id=employee.company_id,
            rule_id=rule.id,
            shift_id=shift_id,
            source="manual",
            penalty=Decimal(penalty) if penalty is not None else rule.penalty_weight,
            created_at=created_at,
        )
        db_session.add(violation)
        db_session.commit()
        return violation
    return _make


@pytest.fixture(scope="function")
def client(db_session, session_factory):
    """TestClient that uses the test database via dependency overrides."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
