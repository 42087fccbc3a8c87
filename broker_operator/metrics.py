"""
Prometheus metrics for broker reconciliation.

A Broker that never converges shows up as a growing
broker_reconcile_step_failures_total for the step that keeps failing.
"""
import logging

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger("metrics")

RECONCILE_TOTAL = Counter(
    "broker_reconcile_total",
    "Broker reconciliations by result",
    ["result"],
)
RECONCILE_STEP_FAILURES = Counter(
    "broker_reconcile_step_failures_total",
    "Failed reconciliations by failing step",
    ["step"],
)
RECONCILE_DURATION = Histogram(
    "broker_reconcile_duration_seconds",
    "Time spent in a single Broker reconciliation",
)


def record_result(result) -> None:
    RECONCILE_TOTAL.labels(result=result.outcome.value).inc()
    if result.error is not None:
        RECONCILE_STEP_FAILURES.labels(step=result.error.step).inc()


def serve(port: int) -> None:
    """Expose /metrics on a background thread. Port 0 disables."""
    if not port:
        logger.info("Metrics endpoint disabled")
        return
    start_http_server(port)
    logger.info(f"Metrics endpoint listening on :{port}")
