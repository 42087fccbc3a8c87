"""
Domain errors for the broker operator.

Reconciliation failures are reported as ReconcileError, which carries the
name of the step that failed next to the original exception so callers can
attribute a failure without matching on message text.
"""


class BrokerOperatorError(Exception):
    """Base class for all operator errors."""


class BrokerNotFound(BrokerOperatorError):
    """The Broker object no longer exists in the cluster."""

    def __init__(self, namespace: str, name: str):
        super().__init__(f"Broker {namespace}/{name} not found")
        self.namespace = namespace
        self.name = name


class GlobalnetConfigError(BrokerOperatorError):
    """Globalnet parameters or the stored globalnet config are invalid."""


class ReconcileError(BrokerOperatorError):
    """A reconcile step failed. `step` names the step, `cause` is the original error."""

    def __init__(self, step: str, cause: BaseException):
        super().__init__(f"{step}: {cause}")
        self.step = step
        self.cause = cause
