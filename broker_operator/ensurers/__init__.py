from broker_operator.ensurers.crds import (
    CRDUpdater,
    Role,
    ensure_auxiliary_definitions,
    ensure_primary_definitions,
)
from broker_operator.ensurers.globalnet import (
    ensure_network_config_record,
    validate_network_config,
)

__all__ = [
    "CRDUpdater",
    "Role",
    "ensure_auxiliary_definitions",
    "ensure_network_config_record",
    "ensure_primary_definitions",
    "validate_network_config",
]
