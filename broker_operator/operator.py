"""
Broker Operator — kopf wiring for the Broker reconciler.

Architecture:
  Broker CRD → kopf watches (create / update / resume) → reconcile_broker:
    1. Build a ReconcileRequest (namespace, name) — no payload
    2. BrokerReconciler.reconcile() re-fetches and converges the cluster
    3. Translate the Result for kopf:
         Done         → return (no retry until the next change)
         RequeueAfter → TemporaryError(delay=seconds)
         Error        → TemporaryError(delay=exponential backoff), no retry cap

  kopf runs at most one handler per object at a time; distinct Brokers are
  reconciled in parallel on max_workers threads.

  Deletion: no delete handler and no finalizer — dependents are garbage
  collected; the reconciler ignores Brokers pending deletion.
"""
import logging

import kopf

from broker_operator import metrics
from broker_operator.config import settings as cfg
from broker_operator.events import publish_event
from broker_operator.kube import new_cluster_client
from broker_operator.models import Outcome, ReconcileRequest, Result
from broker_operator.reconciler import BrokerReconciler
from broker_operator.store import BrokerStore

logger = logging.getLogger("broker-operator")

_reconciler = None


def get_reconciler() -> BrokerReconciler:
    """Lazy-init the process-wide reconciler."""
    global _reconciler
    if _reconciler is None:
        _reconciler = BrokerReconciler(
            store=BrokerStore(),
            client_factory=new_cluster_client,
        )
    return _reconciler


def backoff_delay(retry: int) -> float:
    """Exponential backoff for failed reconciles: base * 2^retry, capped."""
    return min(cfg.RETRY_BASE_DELAY * (2 ** retry), cfg.RETRY_MAX_DELAY)


def handle_result(request: ReconcileRequest, result: Result, retry: int) -> None:
    """Return on Done; raise kopf.TemporaryError when a retry is wanted."""
    key = str(request)
    if result.outcome is Outcome.DONE:
        publish_event(key, "RECONCILED", "Broker reconciled")
        return

    if result.outcome is Outcome.REQUEUE:
        publish_event(key, "REQUEUED", f"Requeued in {result.requeue_after}s")
        raise kopf.TemporaryError(f"Requeue in {result.requeue_after}s", delay=result.requeue_after)

    err = result.error
    delay = backoff_delay(retry)
    publish_event(key, "RECONCILE_FAILED", f"Attempt {retry + 1}: {str(err.cause)[:150]}", err.step)
    raise kopf.TemporaryError(
        f"Reconcile failed at step {err.step} (attempt {retry + 1}, retry in {delay:.0f}s): {err.cause}",
        delay=delay,
    ) from err


# ---------------------------------------------------------------------------
# Kopf operator settings
# ---------------------------------------------------------------------------

@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **kwargs):
    settings.posting.enabled = True
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(
        prefix=cfg.BROKER_GROUP
    )
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(
        prefix=cfg.BROKER_GROUP
    )
    settings.execution.max_workers = cfg.MAX_WORKERS
    metrics.serve(cfg.METRICS_PORT)
    logger.info(
        f"Broker Operator started (max_workers={cfg.MAX_WORKERS}, "
        f"watching {cfg.BROKER_PLURAL}.{cfg.BROKER_GROUP}/{cfg.BROKER_VERSION}, "
        f"namespaces={list(cfg.WATCH_NAMESPACES) or 'all'})"
    )


# ---------------------------------------------------------------------------
# CREATE / UPDATE / RESUME handler — every notification runs the full sequence
# ---------------------------------------------------------------------------

@kopf.on.create(cfg.BROKER_GROUP, cfg.BROKER_VERSION, cfg.BROKER_PLURAL)
@kopf.on.update(cfg.BROKER_GROUP, cfg.BROKER_VERSION, cfg.BROKER_PLURAL)
@kopf.on.resume(cfg.BROKER_GROUP, cfg.BROKER_VERSION, cfg.BROKER_PLURAL)
def reconcile_broker(name, namespace, retry, logger, **kwargs):
    request = ReconcileRequest(namespace, name)
    logger.info(f"Reconciling Broker {request} (retry={retry})")

    with metrics.RECONCILE_DURATION.time():
        result = get_reconciler().reconcile(request)
    metrics.record_result(result)

    if result.error is not None:
        logger.error(f"Broker {request} failed at step {result.error.step}: {result.error.cause}")
    handle_result(request, result, retry)
