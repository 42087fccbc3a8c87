"""
Pydantic models for the Broker custom resource and reconcile outcomes.
"""
from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

from broker_operator.errors import ReconcileError


class BrokerSpec(BaseModel):
    """Desired state declared on a Broker object."""
    model_config = ConfigDict(extra="ignore")

    globalnetEnabled: bool = False
    globalnetCIDRRange: str = ""
    defaultGlobalnetClusterSize: int = Field(default=0, ge=0)


class Broker(BaseModel):
    namespace: str
    name: str
    deletion_timestamp: Optional[str] = None
    spec: BrokerSpec = BrokerSpec()

    @classmethod
    def from_object(cls, obj: dict) -> "Broker":
        """Convert a raw K8s custom object dict into a Broker model."""
        meta = obj.get("metadata", {})
        return cls(
            namespace=meta.get("namespace", ""),
            name=meta["name"],
            deletion_timestamp=meta.get("deletionTimestamp"),
            spec=BrokerSpec(**(obj.get("spec") or {})),
        )

    @property
    def being_deleted(self) -> bool:
        return self.deletion_timestamp is not None


class ReconcileRequest(NamedTuple):
    """Identifier of a Broker that may need attention. Carries no payload."""
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class Outcome(str, Enum):
    DONE = "done"
    REQUEUE = "requeue"
    ERROR = "error"


class Result(NamedTuple):
    outcome: Outcome
    requeue_after: Optional[float] = None
    error: Optional[ReconcileError] = None

    @classmethod
    def done(cls) -> "Result":
        return cls(Outcome.DONE)

    @classmethod
    def requeue_in(cls, seconds: float) -> "Result":
        return cls(Outcome.REQUEUE, requeue_after=seconds)

    @classmethod
    def failed(cls, error: ReconcileError) -> "Result":
        return cls(Outcome.ERROR, error=error)

    @property
    def is_done(self) -> bool:
        return self.outcome is Outcome.DONE
