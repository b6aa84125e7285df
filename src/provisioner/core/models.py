"""
provisioner.core.models - Core Data Models
============================================

Pydantic models that flow between the orchestration layer, the steps and the
provider:

    ResourceDescriptor → What resource are we talking about? (identity + params)
    ReconcileResult    → What did the reconciler do about it?
    StepResult         → What did a step do? (job report)
    ServiceDeployment  → Everything the provider needs to deploy the service
    LogEntry           → One line of service logs

Ownership between steps is by name, not by object reference: a step finds the
resources of an earlier step through the state keys it persisted, then builds
its own descriptors.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from provisioner.core.enums import ReconcileOutcome, ResourceKind, StepStatus


def _now() -> datetime:
    """Current UTC timestamp."""
    return datetime.now(timezone.utc)


# =============================================================================
# Resource Descriptor
# =============================================================================
# Identifies a provider resource. Local state never decides existence; the
# reconciler always asks the provider to describe the descriptor.
#
#   scope   → where the name is unique (region, instance, network, "global")
#   parent  → the broader resource removed under ActionMode.DESTROY
# =============================================================================
class ResourceDescriptor(BaseModel):
    """Identity and creation parameters of one provider resource.

    Attributes:
        kind: The resource kind.
        name: Identifying name, unique within ``scope``.
        scope: Parent scope string (region, instance name, network, ...).
        parent: Broader resource deleted instead of this one under DESTROY.
        attributes: Creation parameters (tier, range, password, ...).
            Excluded from ``label`` so credentials never reach the logs.

    Example:
        >>> instance = ResourceDescriptor(kind=ResourceKind.SQL_INSTANCE, name="pg")
        >>> db = ResourceDescriptor(
        ...     kind=ResourceKind.SQL_DATABASE, name="app", scope="pg", parent=instance,
        ... )
        >>> db.label
        'sql-database/pg/app'
    """

    kind: ResourceKind
    name: str = Field(min_length=1)
    scope: Optional[str] = None
    parent: Optional[ResourceDescriptor] = None
    attributes: dict[str, Any] = Field(default_factory=dict)

    @property
    def label(self) -> str:
        """Loggable identity: ``kind/scope/name`` (no attributes)."""
        if self.scope:
            return f"{self.kind.value}/{self.scope}/{self.name}"
        return f"{self.kind.value}/{self.name}"

    @property
    def key(self) -> tuple[str, Optional[str], str]:
        """Identity tuple used by providers to index resources."""
        return (self.kind.value, self.scope, self.name)

    def with_attributes(self, **attributes: Any) -> ResourceDescriptor:
        """Return a copy with extra creation attributes merged in."""
        merged = dict(self.attributes)
        merged.update(attributes)
        return self.model_copy(update={"attributes": merged})


class ReconcileResult(BaseModel):
    """Outcome of reconciling one resource.

    Attributes:
        descriptor: The resource that was reconciled.
        outcome: EXISTS (skipped) or CREATED.
        deleted: Whether a destructive delete was issued and succeeded first.
    """

    descriptor: ResourceDescriptor
    outcome: ReconcileOutcome
    deleted: bool = False

    @property
    def created(self) -> bool:
        return self.outcome == ReconcileOutcome.CREATED


# =============================================================================
# Step Result
# =============================================================================
# The report a step hands back to the PipelineEngine. Only the *names* of the
# state keys written are recorded; values may be credentials.
# =============================================================================
class StepResult(BaseModel):
    """Result of running one provisioning step.

    Attributes:
        step_name: Registry name of the step ("network", "database", ...).
        status: COMPLETED, FAILED or SKIPPED.
        resources: Reconciliation results, in the order they happened.
        state_keys: State keys written by the step, in write order.
        error_message: Failure description (None on success).
        error_code: error_code of the failure (None on success).
        hint: Remediation hint of the failure, if any.
        started_at: When the step started.
        completed_at: When the step finished.
    """

    step_name: str
    status: StepStatus
    resources: list[ReconcileResult] = Field(default_factory=list)
    state_keys: list[str] = Field(default_factory=list)
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    hint: Optional[str] = None
    started_at: datetime = Field(default_factory=_now)
    completed_at: Optional[datetime] = None

    @property
    def created_count(self) -> int:
        return sum(1 for r in self.resources if r.created)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()


# =============================================================================
# Service Deployment
# =============================================================================
class SecretRef(BaseModel):
    """Reference to a secret version, resolved by the platform at startup."""

    secret: str
    version: str = "latest"

    def __str__(self) -> str:
        return f"{self.secret}:{self.version}"


class ServiceDeployment(BaseModel):
    """Full description of a service deploy.

    Plain configuration goes in ``env``; credentials only ever go in
    ``secrets`` as references.
    """

    name: str
    region: str
    image: str
    env: dict[str, str] = Field(default_factory=dict)
    secrets: dict[str, SecretRef] = Field(default_factory=dict)
    sql_instances: list[str] = Field(default_factory=list)
    connector: Optional[str] = None
    vpc_egress: Optional[str] = None
    port: int = 8080
    cpu: str = "1"
    memory: str = "512Mi"
    min_instances: int = 0
    max_instances: int = 1
    timeout: str = "300s"
    cpu_boost: bool = False
    allow_unauthenticated: bool = False


class LogEntry(BaseModel):
    """One service log line as returned by the provider."""

    timestamp: str = ""
    log_name: str = ""
    text: str = ""
