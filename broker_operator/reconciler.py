"""
Broker reconciler — the convergence loop for Broker objects.

Reconcile flow (one invocation, always from the top):
  1. Fetch the Broker            (gone → Done, other errors → Error)
  2. Skip if deletion requested  (→ Done, no side effects)
  3. Build the cluster client    (failure → Error)
  4. Ensure, in order, stopping at the first failure:
       a. primary CRDs            (Cluster, Endpoint, Gateway)
       b. auxiliary CRDs          (multi-cluster services, broker role)
       c. existing globalnet config is consistent (read-only)
       d. globalnet ConfigMap matches the Broker spec

Design Principles:
  - Idempotent: every step is create-or-no-op / create-or-update, so a
    failed run is recovered by running the whole sequence again
  - Stateless: nothing is remembered between invocations; the cluster may
    have been changed by someone else in the meantime
  - Fail fast: no internal retries, no rollback; the event source owns
    retry and backoff
"""
import logging
from dataclasses import dataclass
from typing import Callable

from broker_operator.ensurers import (
    Role,
    ensure_auxiliary_definitions,
    ensure_network_config_record,
    ensure_primary_definitions,
    validate_network_config,
)
from broker_operator.errors import BrokerNotFound, ReconcileError
from broker_operator.models import ReconcileRequest, Result

logger = logging.getLogger("broker_reconciler")

STEP_FETCH = "fetch"
STEP_CLIENT = "client"
STEP_PRIMARY_CRDS = "primary-crds"
STEP_AUXILIARY_CRDS = "auxiliary-crds"
STEP_GLOBALNET_VALIDATE = "globalnet-validate"
STEP_GLOBALNET_CONFIGMAP = "globalnet-configmap"


@dataclass(frozen=True)
class Ensurers:
    """The dependency ensurers run by the reconciler, in call order."""
    primary_definitions: Callable = ensure_primary_definitions
    auxiliary_definitions: Callable = ensure_auxiliary_definitions
    validate_network: Callable = validate_network_config
    network_config_record: Callable = ensure_network_config_record


def _run_step(step: str, fn: Callable, *args):
    try:
        return fn(*args)
    except Exception as e:
        raise ReconcileError(step, e) from e


class BrokerReconciler:
    """
    Converts a ReconcileRequest into idempotent side effects on the cluster.

    `store` needs a `get(namespace, name)` returning a Broker or raising
    BrokerNotFound. `client_factory` returns an object exposing `crd_updater`
    and `core_v1`; it is called once per invocation that gets past the
    deletion check.
    """

    def __init__(self, store, client_factory: Callable, ensurers: Ensurers = Ensurers()):
        self.store = store
        self.client_factory = client_factory
        self.ensurers = ensurers

    def reconcile(self, request: ReconcileRequest) -> Result:
        try:
            self._reconcile(request)
        except ReconcileError as e:
            logger.warning(f"[{request}] reconcile failed at step {e.step}: {e.cause}")
            return Result.failed(e)
        return Result.done()

    def _reconcile(self, request: ReconcileRequest) -> None:
        namespace, name = request

        try:
            broker = self.store.get(namespace, name)
        except BrokerNotFound:
            # Deleted after the notification was issued; owned objects are
            # garbage collected by the API server.
            logger.info(f"[{request}] Broker not found — nothing to do")
            return
        except Exception as e:
            raise ReconcileError(STEP_FETCH, e) from e

        if broker.being_deleted:
            logger.info(f"[{request}] Broker is being deleted — ignoring")
            return

        cluster = _run_step(STEP_CLIENT, self.client_factory)
        spec = broker.spec

        logger.info(f"[{request}] Step 1/4: Ensuring primary CRDs")
        _run_step(STEP_PRIMARY_CRDS, self.ensurers.primary_definitions, cluster.crd_updater)

        logger.info(f"[{request}] Step 2/4: Ensuring auxiliary CRDs")
        _run_step(STEP_AUXILIARY_CRDS, self.ensurers.auxiliary_definitions,
                  cluster.crd_updater, Role.BROKER_CLUSTER)

        logger.info(f"[{request}] Step 3/4: Validating existing globalnet config")
        _run_step(STEP_GLOBALNET_VALIDATE, self.ensurers.validate_network,
                  cluster.core_v1, namespace)

        logger.info(f"[{request}] Step 4/4: Ensuring globalnet ConfigMap")
        _run_step(STEP_GLOBALNET_CONFIGMAP, self.ensurers.network_config_record,
                  cluster.core_v1, spec.globalnetEnabled, spec.globalnetCIDRRange,
                  spec.defaultGlobalnetClusterSize, namespace)

        logger.info(f"[{request}] ✓ Broker reconciled")
