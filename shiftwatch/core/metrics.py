"""
Prometheus metrics for violation detection and monitoring runs.
"""
from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

VIOLATIONS_RECORDED = Counter(
    "shiftwatch_violations_recorded_total",
    "Total number of violations recorded",
    ["rule_code", "source"],
)

MONITORING_RUNS = Counter(
    "shiftwatch_monitoring_runs_total",
    "Total number of per-company monitoring runs",
    ["status"],
)

MONITORING_DURATION = Histogram(
    "shiftwatch_monitoring_duration_seconds",
    "Duration of per-company monitoring runs in seconds",
    buckets=(0.1, 0.5, 1, 5, 10, 30, 60, 120),
)


def record_violation_metric(rule_code: str, source: str) -> None:
    VIOLATIONS_RECORDED.labels(rule_code=rule_code.lower(), source=source).inc()


def get_metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
