"""
Globalnet ensurers — validate and record the overlay address-space settings
of a broker namespace in the `submariner-globalnet-info` ConfigMap.

ConfigMap layout:
  globalnetEnabled      "true" / "false"
  globalnetCidrRange    address space clusters get their global CIDRs from
  globalnetClusterSize  default number of addresses per cluster
  clusterinfo           JSON list of {"cluster_id": ..., "global_cidr": [...]}

`clusterinfo` holds allocations written by joining clusters; the operator
never rewrites it once the ConfigMap exists.
"""
import ipaddress
import json
import logging
from typing import Optional

from kubernetes import client
from kubernetes.client import ApiException

from broker_operator.errors import GlobalnetConfigError

logger = logging.getLogger("globalnet")

CONFIGMAP_NAME = "submariner-globalnet-info"
CONFIGMAP_LABELS = {"component": "submariner-globalnet"}

ENABLED_KEY = "globalnetEnabled"
CIDR_RANGE_KEY = "globalnetCidrRange"
CLUSTER_SIZE_KEY = "globalnetClusterSize"
CLUSTER_INFO_KEY = "clusterinfo"

DEFAULT_GLOBALNET_CIDR = "242.0.0.0/8"
DEFAULT_GLOBALNET_CLUSTER_SIZE = 65536


def parse_cidr(value: str) -> ipaddress.IPv4Network:
    """Parse an IPv4 CIDR usable as a globalnet range. Raises GlobalnetConfigError."""
    try:
        net = ipaddress.IPv4Network(value, strict=False)
    except ValueError as e:
        raise GlobalnetConfigError(f"invalid CIDR {value!r}: {e}") from e
    if net.is_loopback or net.is_multicast or net.is_link_local or net.is_unspecified:
        raise GlobalnetConfigError(f"CIDR {value!r} is not usable for globalnet")
    return net


def _is_power_of_two(n: int) -> bool:
    return n > 0 and n & (n - 1) == 0


def _read_config_map(core_api: client.CoreV1Api, namespace: str) -> Optional[client.V1ConfigMap]:
    try:
        return core_api.read_namespaced_config_map(CONFIGMAP_NAME, namespace)
    except ApiException as e:
        if e.status == 404:
            return None
        raise


def _parse_cluster_info(raw: Optional[str]) -> list:
    try:
        entries = json.loads(raw or "[]")
    except json.JSONDecodeError as e:
        raise GlobalnetConfigError(f"malformed {CLUSTER_INFO_KEY}: {e}") from e
    if not isinstance(entries, list):
        raise GlobalnetConfigError(f"{CLUSTER_INFO_KEY} must be a JSON list")
    return entries


def validate_network_config(core_api: client.CoreV1Api, namespace: str) -> None:
    """
    Check the existing globalnet ConfigMap (if any) is consistent.
    Read-only: never creates or modifies anything.
    """
    cm = _read_config_map(core_api, namespace)
    if cm is None:
        logger.debug(f"No globalnet ConfigMap in {namespace} — nothing to validate")
        return

    data = cm.data or {}
    if data.get(ENABLED_KEY, "false").lower() != "true":
        return

    cidr_range = parse_cidr(data.get(CIDR_RANGE_KEY, ""))

    allocated = []
    for entry in _parse_cluster_info(data.get(CLUSTER_INFO_KEY)):
        cluster_id = entry.get("cluster_id", "<unknown>")
        for raw in entry.get("global_cidr") or []:
            net = parse_cidr(raw)
            if not net.subnet_of(cidr_range):
                raise GlobalnetConfigError(
                    f"cluster {cluster_id}: global CIDR {net} is outside {cidr_range}"
                )
            for other_id, other in allocated:
                if net.overlaps(other):
                    raise GlobalnetConfigError(
                        f"cluster {cluster_id}: global CIDR {net} overlaps {other} of cluster {other_id}"
                    )
            allocated.append((cluster_id, net))


def ensure_network_config_record(core_api: client.CoreV1Api, enabled: bool, cidr: str,
                                 default_cluster_size: int, namespace: str) -> None:
    """
    Create or update the globalnet ConfigMap so its parameters match the Broker.
    An empty cidr falls back to the default range and, unless a size is given,
    the default cluster size. With an explicit cidr a zero size is recorded
    as-is (clusters are sized from the range).
    """
    if cidr:
        cluster_size = default_cluster_size
    else:
        cidr = DEFAULT_GLOBALNET_CIDR
        cluster_size = default_cluster_size or DEFAULT_GLOBALNET_CLUSTER_SIZE

    if enabled:
        net = parse_cidr(cidr)
        if cluster_size and not _is_power_of_two(cluster_size):
            raise GlobalnetConfigError(f"cluster size {cluster_size} is not a power of 2")
        if cluster_size and cluster_size > net.num_addresses:
            raise GlobalnetConfigError(
                f"cluster size {cluster_size} does not fit in {cidr} ({net.num_addresses} addresses)"
            )

    desired = {
        ENABLED_KEY: "true" if enabled else "false",
        CIDR_RANGE_KEY: cidr,
        CLUSTER_SIZE_KEY: str(cluster_size),
    }

    cm = _read_config_map(core_api, namespace)
    if cm is None:
        body = client.V1ConfigMap(
            metadata=client.V1ObjectMeta(
                name=CONFIGMAP_NAME,
                namespace=namespace,
                labels=dict(CONFIGMAP_LABELS),
            ),
            data={**desired, CLUSTER_INFO_KEY: "[]"},
        )
        try:
            core_api.create_namespaced_config_map(namespace, body)
            logger.info(f"Globalnet ConfigMap created in {namespace} ({desired})")
            return
        except ApiException as e:
            if e.status != 409:
                raise
            logger.info(f"Globalnet ConfigMap in {namespace} created concurrently — re-reading")
            cm = _read_config_map(core_api, namespace)
            if cm is None:
                raise

    data = cm.data or {}
    changed = {k: v for k, v in desired.items() if data.get(k) != v}
    if not changed:
        logger.debug(f"Globalnet ConfigMap in {namespace} up to date")
        return

    core_api.patch_namespaced_config_map(CONFIGMAP_NAME, namespace, {"data": changed})
    logger.info(f"Globalnet ConfigMap in {namespace} updated: {changed}")
