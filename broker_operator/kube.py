"""
Kubernetes client helpers.

Credentials are loaded once per process (in-cluster service account first,
then kubeconfig). The reconciler never calls these directly; it receives
`new_cluster_client` as its client factory.
"""
import logging
from dataclasses import dataclass

from kubernetes import client, config

from broker_operator.config import settings
from broker_operator.ensurers.crds import CRDUpdater

logger = logging.getLogger("kube")

_k8s_loaded = False


def _ensure_k8s():
    """Load Kubernetes config exactly once."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    if settings.IN_CLUSTER:
        config.load_incluster_config()
    else:
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config(config_file=settings.KUBECONFIG or None)
    _k8s_loaded = True


def custom_api() -> client.CustomObjectsApi:
    _ensure_k8s()
    return client.CustomObjectsApi()


@dataclass
class ClusterClient:
    """Low-level API handles handed to the ensurers."""
    core_v1: client.CoreV1Api
    apiextensions_v1: client.ApiextensionsV1Api

    @property
    def crd_updater(self) -> CRDUpdater:
        return CRDUpdater(self.apiextensions_v1)


def new_cluster_client() -> ClusterClient:
    """Build a ClusterClient from ambient credentials. Raises on missing/invalid config."""
    _ensure_k8s()
    return ClusterClient(
        core_v1=client.CoreV1Api(),
        apiextensions_v1=client.ApiextensionsV1Api(),
    )
