import pytest
from datetime import datetime

from prometheus_client import REGISTRY

from shiftwatch.core.exceptions import NotFoundError
from shiftwatch.services.monitoring import run_company_monitoring

NOW = datetime(2024, 3, 10, 12, 0)


def _sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_metrics_endpoint(client):
    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "shiftwatch_monitoring_runs_total" in response.text
    assert "shiftwatch_violations_recorded_total" in response.text


def test_monitoring_run_updates_counters(db_session, company, employee, late_rule, make_shift):
    make_shift(employee, datetime(2024, 3, 10, 9, 0), datetime(2024, 3, 10, 17, 0), status="active",
               actual_start=datetime(2024, 3, 10, 9, 40))
    runs_before = _sample("shiftwatch_monitoring_runs_total", status="success")
    recorded_before = _sample("shiftwatch_violations_recorded_total", rule_code="late", source="auto")
    observed_before = _sample("shiftwatch_monitoring_duration_seconds_count")

    result = run_company_monitoring(db_session, company.id, clock=lambda: NOW)

    assert result["violations_created"] == 1
    assert _sample("shiftwatch_monitoring_runs_total", status="success") == runs_before + 1
    assert _sample("shiftwatch_violations_recorded_total", rule_code="late", source="auto") == recorded_before + 1
    assert _sample("shiftwatch_monitoring_duration_seconds_count") == observed_before + 1


def test_failed_monitoring_run_is_counted(db_session):
    errors_before = _sample("shiftwatch_monitoring_runs_total", status="error")
    with pytest.raises(NotFoundError):
        run_company_monitoring(db_session, 424242, clock=lambda: NOW)
    assert _sample("shiftwatch_monitoring_runs_total", status="error") == errors_before + 1
