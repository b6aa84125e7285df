"""
provisioner.core - Foundation Layer
=====================================

The building blocks every other module depends on:

    - config:      ProvisionerConfig and the per-area settings
    - enums:       ActionMode, ResourceKind, ServiceStage, StepStatus, ...
    - models:      ResourceDescriptor, StepResult, ServiceDeployment, ...
    - state:       ProvisioningState (typed state file view) and PipelineRun
    - exceptions:  Structured exception hierarchy
    - logging:     structlog setup
    - credentials: Random credential generation

Dependency Rule:
    core/ depends on NOTHING else in the provisioner package.
"""

from provisioner.core.config import ProvisionerConfig, load_config
from provisioner.core.enums import (
    ActionMode,
    ReconcileOutcome,
    ResourceKind,
    ServiceStage,
    StepStatus,
)
from provisioner.core.exceptions import (
    AddressRangeConflictError,
    ConfigurationError,
    PermissionDeniedError,
    PreconditionError,
    ProviderError,
    ProvisionerError,
    ResourceNotFoundError,
    StateError,
    StepError,
    UnsupportedContextError,
    VerificationError,
)
from provisioner.core.models import (
    LogEntry,
    ReconcileResult,
    ResourceDescriptor,
    SecretRef,
    ServiceDeployment,
    StepResult,
)
from provisioner.core.state import PipelineRun, ProvisioningState

__all__ = [
    # Config
    "ProvisionerConfig",
    "load_config",
    # Enums
    "ActionMode",
    "ReconcileOutcome",
    "ResourceKind",
    "ServiceStage",
    "StepStatus",
    # Exceptions
    "AddressRangeConflictError",
    "ConfigurationError",
    "PermissionDeniedError",
    "PreconditionError",
    "ProviderError",
    "ProvisionerError",
    "ResourceNotFoundError",
    "StateError",
    "StepError",
    "UnsupportedContextError",
    "VerificationError",
    # Models
    "LogEntry",
    "ReconcileResult",
    "ResourceDescriptor",
    "SecretRef",
    "ServiceDeployment",
    "StepResult",
    # State
    "PipelineRun",
    "ProvisioningState",
]
