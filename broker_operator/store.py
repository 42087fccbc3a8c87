"""
Broker store — reads Broker custom objects from the Kubernetes API.

The API server is the only source of truth; nothing is cached here so every
reconcile sees the current object.
"""
import logging
from typing import Optional

from kubernetes import client
from kubernetes.client import ApiException

from broker_operator.config import settings
from broker_operator.errors import BrokerNotFound
from broker_operator.kube import custom_api
from broker_operator.models import Broker

logger = logging.getLogger("broker_store")


class BrokerStore:
    def __init__(self, api: Optional[client.CustomObjectsApi] = None,
                 group: str = settings.BROKER_GROUP,
                 version: str = settings.BROKER_VERSION,
                 plural: str = settings.BROKER_PLURAL):
        self._api = api
        self.group = group
        self.version = version
        self.plural = plural

    @property
    def api(self) -> client.CustomObjectsApi:
        if self._api is None:
            self._api = custom_api()
        return self._api

    def get(self, namespace: str, name: str) -> Broker:
        """Fetch a Broker. Raises BrokerNotFound on 404, ApiException otherwise."""
        try:
            item = self.api.get_namespaced_custom_object(
                self.group, self.version, namespace, self.plural, name
            )
        except ApiException as e:
            if e.status == 404:
                raise BrokerNotFound(namespace, name) from e
            raise
        return Broker.from_object(item)
