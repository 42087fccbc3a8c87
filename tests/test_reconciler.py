from __future__ import annotations

import threading

from kubernetes.client import ApiException

from broker_operator.ensurers.crds import Role
from broker_operator.models import Outcome, ReconcileRequest
from broker_operator.reconciler import BrokerReconciler, Ensurers
from broker_operator.ensurers.globalnet import CONFIGMAP_NAME
from tests.fakes import FakeBrokerStore, FakeCluster, make_broker

NS = "submariner-k8s-broker"
REQUEST = ReconcileRequest(NS, "submariner-broker")


class RecordingEnsurers:
    """Ensurers that only record their calls; `fail_at` makes one of them raise."""

    def __init__(self, fail_at: str | None = None, error: Exception | None = None):
        self.calls = []
        self.fail_at = fail_at
        self.error = error or RuntimeError("boom")

    def _record(self, step, *args):
        self.calls.append((step, *args))
        if step == self.fail_at:
            raise self.error

    def ensurers(self) -> Ensurers:
        return Ensurers(
            primary_definitions=lambda updater: self._record("primary", updater),
            auxiliary_definitions=lambda updater, role: self._record("auxiliary", updater, role),
            validate_network=lambda core, ns: self._record("validate", core, ns),
            network_config_record=lambda core, enabled, cidr, size, ns: self._record(
                "record", core, enabled, cidr, size, ns),
        )

    @property
    def steps(self):
        return [c[0] for c in self.calls]


class CountingFactory:
    def __init__(self, cluster=None, error: Exception | None = None):
        self.cluster = cluster or FakeCluster()
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.cluster


def test_missing_broker_is_done_without_error():
    recorder = RecordingEnsurers()
    factory = CountingFactory()
    reconciler = BrokerReconciler(FakeBrokerStore(), factory, recorder.ensurers())

    result = reconciler.reconcile(REQUEST)

    assert result.is_done
    assert result.error is None
    assert recorder.calls == []
    assert factory.calls == 0


def test_fetch_failure_is_error_attributed_to_fetch():
    cause = ApiException(status=503, reason="Service Unavailable")
    recorder = RecordingEnsurers()
    reconciler = BrokerReconciler(FakeBrokerStore(error=cause), CountingFactory(), recorder.ensurers())

    result = reconciler.reconcile(REQUEST)

    assert result.outcome is Outcome.ERROR
    assert result.error.step == "fetch"
    assert result.error.cause is cause
    assert recorder.calls == []


def test_broker_pending_deletion_gets_no_side_effects():
    recorder = RecordingEnsurers()
    factory = CountingFactory()
    store = FakeBrokerStore(make_broker(deleting=True, globalnetEnabled=True))
    reconciler = BrokerReconciler(store, factory, recorder.ensurers())

    result = reconciler.reconcile(REQUEST)

    assert result.is_done
    assert recorder.calls == []
    assert factory.calls == 0


def test_client_construction_failure_stops_before_any_step():
    recorder = RecordingEnsurers()
    factory = CountingFactory(error=RuntimeError("no kubeconfig"))
    reconciler = BrokerReconciler(FakeBrokerStore(make_broker()), factory, recorder.ensurers())

    result = reconciler.reconcile(REQUEST)

    assert result.outcome is Outcome.ERROR
    assert result.error.step == "client"
    assert recorder.calls == []


def test_auxiliary_failure_short_circuits_remaining_steps():
    cause = RuntimeError("apiextensions unavailable")
    recorder = RecordingEnsurers(fail_at="auxiliary", error=cause)
    reconciler = BrokerReconciler(FakeBrokerStore(make_broker()), CountingFactory(), recorder.ensurers())

    result = reconciler.reconcile(REQUEST)

    assert result.outcome is Outcome.ERROR
    assert recorder.steps == ["primary", "auxiliary"]
    assert result.error.step == "auxiliary-crds"
    assert result.error.cause is cause
    assert result.error.__cause__ is cause


def test_validation_failure_is_attributed_to_validation_step():
    recorder = RecordingEnsurers(fail_at="validate")
    reconciler = BrokerReconciler(FakeBrokerStore(make_broker()), CountingFactory(), recorder.ensurers())

    result = reconciler.reconcile(REQUEST)

    assert result.error.step == "globalnet-validate"
    assert recorder.steps == ["primary", "auxiliary", "validate"]


def test_success_runs_all_steps_in_order_with_broker_parameters():
    recorder = RecordingEnsurers()
    cluster = FakeCluster()
    store = FakeBrokerStore(make_broker(
        globalnetEnabled=True,
        globalnetCIDRRange="242.0.0.0/16",
        defaultGlobalnetClusterSize=0,
    ))
    reconciler = BrokerReconciler(store, CountingFactory(cluster), recorder.ensurers())

    result = reconciler.reconcile(REQUEST)

    assert result.is_done
    assert recorder.calls == [
        ("primary", cluster.crd_updater),
        ("auxiliary", cluster.crd_updater, Role.BROKER_CLUSTER),
        ("validate", cluster.core_v1, NS),
        ("record", cluster.core_v1, True, "242.0.0.0/16", 0, NS),
    ]


def test_reconcile_twice_is_a_noop_the_second_time(cluster, apiextensions, core):
    store = FakeBrokerStore(make_broker(globalnetEnabled=True, globalnetCIDRRange="242.0.0.0/16"))
    reconciler = BrokerReconciler(store, lambda: cluster)

    first = reconciler.reconcile(REQUEST)
    created_crds = apiextensions.creates

    second = reconciler.reconcile(REQUEST)

    assert first.is_done and second.is_done
    assert created_crds == 4
    assert apiextensions.creates == 4
    assert apiextensions.replaces == 0
    assert core.creates == 1
    assert core.patches == []
    assert core.config_maps[(NS, CONFIGMAP_NAME)].data["globalnetCidrRange"] == "242.0.0.0/16"


def test_failed_run_keeps_earlier_work_and_rerun_converges(cluster, apiextensions, core):
    core.fail_next_create = ApiException(status=500, reason="etcdserver: request timed out")
    store = FakeBrokerStore(make_broker(globalnetEnabled=True))
    reconciler = BrokerReconciler(store, lambda: cluster)

    failed = reconciler.reconcile(REQUEST)

    assert failed.error.step == "globalnet-configmap"
    assert len(apiextensions.crds) == 4
    assert (NS, CONFIGMAP_NAME) not in core.config_maps

    retried = reconciler.reconcile(REQUEST)

    assert retried.is_done
    assert apiextensions.creates == 4
    assert (NS, CONFIGMAP_NAME) in core.config_maps


def test_spec_change_between_runs_is_picked_up(cluster, core):
    store = FakeBrokerStore(make_broker(globalnetEnabled=False))
    reconciler = BrokerReconciler(store, lambda: cluster)
    assert reconciler.reconcile(REQUEST).is_done

    store.brokers[(NS, "submariner-broker")] = make_broker(
        globalnetEnabled=True, globalnetCIDRRange="242.0.0.0/16")
    assert reconciler.reconcile(REQUEST).is_done

    data = core.config_maps[(NS, CONFIGMAP_NAME)].data
    assert data["globalnetEnabled"] == "true"
    assert data["globalnetCidrRange"] == "242.0.0.0/16"


def test_distinct_brokers_reconcile_concurrently_without_interleaving():
    log = []
    log_lock = threading.Lock()
    # Both reconciles must be inside step a at once for either to continue.
    both_started = threading.Barrier(2, timeout=5)

    def record(step):
        with log_lock:
            log.append((threading.current_thread().name, step))

    def primary(updater):
        record("primary")
        both_started.wait()

    ensurers = Ensurers(
        primary_definitions=primary,
        auxiliary_definitions=lambda updater, role: record("auxiliary"),
        validate_network=lambda core, ns: record("validate"),
        network_config_record=lambda core, enabled, cidr, size, ns: record("record"),
    )
    store = FakeBrokerStore(
        make_broker(name="broker-a", namespace="ns-a"),
        make_broker(name="broker-b", namespace="ns-b"),
    )
    reconciler = BrokerReconciler(store, FakeCluster, ensurers)

    results = {}

    def run(request):
        results[str(request)] = reconciler.reconcile(request)

    threads = [
        threading.Thread(target=run, args=(ReconcileRequest("ns-a", "broker-a"),), name="ns-a/broker-a"),
        threading.Thread(target=run, args=(ReconcileRequest("ns-b", "broker-b"),), name="ns-b/broker-b"),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert all(r.is_done for r in results.values())
    assert set(results) == {"ns-a/broker-a", "ns-b/broker-b"}
    for key in results:
        steps = [step for name, step in log if name == key]
        assert steps == ["primary", "auxiliary", "validate", "record"]


def test_small_globalnet_range_without_cluster_size_converges(cluster, core):
    store = FakeBrokerStore(make_broker(globalnetEnabled=True, globalnetCIDRRange="242.0.0.0/24"))
    reconciler = BrokerReconciler(store, lambda: cluster)

    result = reconciler.reconcile(REQUEST)

    assert result.is_done
    assert core.config_maps[(NS, CONFIGMAP_NAME)].data["globalnetCidrRange"] == "242.0.0.0/24"
