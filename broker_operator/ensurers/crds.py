"""
CRD ensurers — idempotent create-or-update of the CustomResourceDefinitions
a broker namespace depends on.

  Primary set   (submariner.io/v1):           Cluster, Endpoint, Gateway
  Auxiliary set (multicluster.x-k8s.io/v1alpha1): ServiceImport [, ServiceExport]

Each CRD carries a hash of its spec in an annotation; an existing CRD is only
replaced when that hash differs, so repeated runs issue no writes.
"""
import copy
import hashlib
import json
import logging
from enum import Enum
from typing import Optional

from kubernetes import client
from kubernetes.client import ApiException

logger = logging.getLogger("crds")

SPEC_HASH_ANNOTATION = "submariner.io/spec-hash"
MANAGED_BY_LABEL = {"app.kubernetes.io/managed-by": "broker-operator"}

SUBMARINER_GROUP = "submariner.io"
MCS_GROUP = "multicluster.x-k8s.io"


class Role(str, Enum):
    """Which kind of cluster the auxiliary CRDs are installed for."""
    BROKER_CLUSTER = "broker"
    DATA_CLUSTER = "data"


def spec_hash(body: dict) -> str:
    return hashlib.sha256(json.dumps(body["spec"], sort_keys=True).encode()).hexdigest()


def build_crd(group: str, version: str, kind: str, plural: str,
              short_names: tuple = (), scope: str = "Namespaced") -> dict:
    """Build a CRD manifest with a schema that accepts any object fields."""
    names = {
        "kind": kind,
        "listKind": f"{kind}List",
        "plural": plural,
        "singular": kind.lower(),
    }
    if short_names:
        names["shortNames"] = list(short_names)
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {
            "name": f"{plural}.{group}",
            "labels": dict(MANAGED_BY_LABEL),
        },
        "spec": {
            "group": group,
            "scope": scope,
            "names": names,
            "versions": [{
                "name": version,
                "served": True,
                "storage": True,
                "schema": {
                    "openAPIV3Schema": {
                        "type": "object",
                        "x-kubernetes-preserve-unknown-fields": True,
                    },
                },
            }],
        },
    }


PRIMARY_CRDS = (
    build_crd(SUBMARINER_GROUP, "v1", "Cluster", "clusters"),
    build_crd(SUBMARINER_GROUP, "v1", "Endpoint", "endpoints"),
    build_crd(SUBMARINER_GROUP, "v1", "Gateway", "gateways"),
)

SERVICE_IMPORT_CRD = build_crd(MCS_GROUP, "v1alpha1", "ServiceImport", "serviceimports",
                               short_names=("svcim",))
SERVICE_EXPORT_CRD = build_crd(MCS_GROUP, "v1alpha1", "ServiceExport", "serviceexports",
                               short_names=("svcex",))


class CRDUpdater:
    """Create-or-update access to CustomResourceDefinitions."""

    def __init__(self, api: client.ApiextensionsV1Api):
        self.api = api

    def _read(self, name: str) -> Optional[object]:
        try:
            return self.api.read_custom_resource_definition(name)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def create_or_update(self, body: dict) -> bool:
        """
        Returns True if the CRD was created or replaced, False otherwise.
        CRDs installed by other tooling (no spec-hash annotation) are left untouched.
        """
        name = body["metadata"]["name"]
        desired = copy.deepcopy(body)
        desired["metadata"].setdefault("annotations", {})[SPEC_HASH_ANNOTATION] = spec_hash(body)

        existing = self._read(name)
        if existing is None:
            try:
                self.api.create_custom_resource_definition(desired)
                logger.info(f"CRD {name} created")
                return True
            except ApiException as e:
                if e.status == 409:
                    logger.info(f"CRD {name} already exists")
                    return False
                raise

        annotations = existing.metadata.annotations or {}
        if SPEC_HASH_ANNOTATION not in annotations:
            logger.info(f"CRD {name} is not managed by the operator — leaving it as is")
            return False
        if annotations[SPEC_HASH_ANNOTATION] == spec_hash(body):
            logger.debug(f"CRD {name} up to date")
            return False

        desired["metadata"]["resourceVersion"] = existing.metadata.resource_version
        self.api.replace_custom_resource_definition(name, desired)
        logger.info(f"CRD {name} updated")
        return True


def ensure_primary_definitions(crd_updater: CRDUpdater) -> None:
    """Ensure the Cluster, Endpoint and Gateway CRDs exist."""
    for body in PRIMARY_CRDS:
        crd_updater.create_or_update(body)


def ensure_auxiliary_definitions(crd_updater: CRDUpdater, role: Role) -> bool:
    """
    Ensure the multi-cluster services CRDs for the given cluster role.
    A broker cluster only stores ServiceImports; data clusters also export.
    Returns True if anything was created or updated.
    """
    installed = crd_updater.create_or_update(SERVICE_IMPORT_CRD)
    if role == Role.BROKER_CLUSTER:
        return installed
    return crd_updater.create_or_update(SERVICE_EXPORT_CRD) or installed
