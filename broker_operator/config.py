"""
Configuration module — all settings from env vars with sensible defaults.
Follows 12-factor app methodology.
"""
import os
from dataclasses import dataclass, field


def _split_list(value: str) -> tuple:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    # Kubernetes
    KUBECONFIG: str = os.environ.get("KUBECONFIG", "")
    IN_CLUSTER: bool = os.environ.get("IN_CLUSTER", "false").lower() == "true"

    # Broker CRD
    BROKER_GROUP: str = os.environ.get("BROKER_GROUP", "submariner.io")
    BROKER_VERSION: str = os.environ.get("BROKER_VERSION", "v1alpha1")
    BROKER_PLURAL: str = os.environ.get("BROKER_PLURAL", "brokers")

    # Empty = cluster-wide watch
    WATCH_NAMESPACES: tuple = field(
        default_factory=lambda: _split_list(os.environ.get("WATCH_NAMESPACES", ""))
    )

    # Scheduler
    MAX_WORKERS: int = int(os.environ.get("MAX_WORKERS", "4"))
    RETRY_BASE_DELAY: float = float(os.environ.get("RETRY_BASE_DELAY", "1.0"))
    RETRY_MAX_DELAY: float = float(os.environ.get("RETRY_MAX_DELAY", "300"))

    # Observability
    METRICS_PORT: int = int(os.environ.get("METRICS_PORT", "8000"))
    LIVENESS_ENDPOINT: str = os.environ.get("LIVENESS_ENDPOINT", "http://0.0.0.0:8080/healthz")
    REDIS_URL: str = os.environ.get("REDIS_URL", "")
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.environ.get(
        "LOG_FORMAT", "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
    )

    @property
    def clusterwide(self) -> bool:
        return not self.WATCH_NAMESPACES


settings = Settings()
