"""
provisioner.core.state - Provisioning and Pipeline State Models
================================================================

Two kinds of state live here:

    ProvisioningState: WHAT the pipeline knows about the world across runs
                       (names, derived values, generated credentials). Backed
                       by the flat KEY='value' state file.
    PipelineRun:       WHAT the current run is doing (step results, status).
                       Lives only for the duration of the process.

ProvisioningState is a typed view over the flat state file. Each known key
has a named field (aliased to its upper-case file key) and is validated when
the record is built, so a malformed file fails at load time instead of deep
inside a step. The file itself stays flat and human-readable.

    .env                          ProvisioningState
    ──────────────────────        ─────────────────────────
    PROJECT_ID='acme'       →     state.project_id == "acme"
    REGION='us-central1'    →     state.region == "us-central1"
    SERVICE_STAGE='created' →     state.service_stage == ServiceStage.CREATED

Usage:
    >>> state = ProvisioningState.from_mapping({"REGION": "europe-west1"})
    >>> state = state.with_entry("PROJECT_ID", "acme")
    >>> state.project_id
    'acme'
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from provisioner.core.enums import ActionMode, ServiceStage, StepStatus
from provisioner.core.exceptions import StateError
from provisioner.core.models import StepResult


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Provisioning State
# =============================================================================
class ProvisioningState(BaseModel):
    """Typed record of every state key the pipeline reads or writes.

    Every field is optional: absence is the normal first-run situation and
    steps supply their own fallbacks or fail with a PreconditionError.
    """

    # --- Network setup ---
    project_id: Optional[str] = Field(default=None, alias="PROJECT_ID")
    project_number: Optional[str] = Field(default=None, alias="PROJECT_NUMBER")
    region: Optional[str] = Field(default=None, alias="REGION")
    connector_name: Optional[str] = Field(default=None, alias="CONNECTOR_NAME")

    # --- Database setup ---
    sql_instance_name: Optional[str] = Field(default=None, alias="SQL_INSTANCE_NAME")
    sql_database_name: Optional[str] = Field(default=None, alias="SQL_DATABASE_NAME")
    sql_user_name: Optional[str] = Field(default=None, alias="SQL_USER_NAME")
    sql_user_password: Optional[str] = Field(default=None, alias="SQL_USER_PASSWORD")

    # --- Secret setup ---
    db_password_secret_name: Optional[str] = Field(default=None, alias="DB_PASSWORD_SECRET_NAME")
    encryption_key_secret_name: Optional[str] = Field(
        default=None, alias="N8N_ENCRYPTION_KEY_SECRET_NAME"
    )
    basic_auth_secret_name: Optional[str] = Field(default=None, alias="N8N_BASIC_AUTH_SECRET_NAME")

    # --- Image publish ---
    docker_image_name: Optional[str] = Field(default=None, alias="DOCKER_IMAGE_NAME")

    # --- Service deploy ---
    service_name: Optional[str] = Field(default=None, alias="CLOUD_RUN_SERVICE_NAME")
    service_url: Optional[str] = Field(default=None, alias="N8N_URL")
    service_stage: Optional[ServiceStage] = Field(default=None, alias="SERVICE_STAGE")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
        "frozen": True,
    }

    @field_validator("*", mode="before")
    @classmethod
    def _empty_is_absent(cls, value: Any) -> Any:
        # An exported-but-empty variable means "not set".
        if isinstance(value, str) and value == "":
            return None
        return value

    @field_validator("project_number")
    @classmethod
    def _numeric_project_number(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.isdigit():
            raise ValueError(f"PROJECT_NUMBER must be numeric, got {value!r}")
        return value

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------
    @classmethod
    def keys(cls) -> list[str]:
        """All state-file keys known to the record, in declaration order."""
        return [field.alias for field in cls.model_fields.values() if field.alias]

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> ProvisioningState:
        """Build the record from any KEY → value mapping.

        Unknown keys are ignored, so the process environment can be passed
        directly.

        Raises:
            StateError: If a known key holds an invalid value.
        """
        known = {key: mapping[key] for key in cls.keys() if key in mapping}
        try:
            return cls.model_validate(known)
        except ValidationError as e:
            raise StateError(
                message=f"Invalid provisioning state: {e}",
                error_code="STATE_INVALID",
                details={"keys": sorted(known)},
                hint="Fix or remove the offending entry in the state file and re-run.",
            ) from e

    def with_entry(self, key: str, value: str) -> ProvisioningState:
        """Return a new record with one key replaced.

        Raises:
            StateError: If the key is unknown or the value is invalid.
        """
        if key not in self.keys():
            raise StateError(
                message=f"Unknown state key: {key}",
                error_code="STATE_UNKNOWN_KEY",
                details={"key": key},
            )
        data = self.to_entries()
        data[key] = value
        return self.from_mapping(data)

    def to_entries(self) -> dict[str, str]:
        """Present values as a flat KEY → string mapping."""
        entries: dict[str, str] = {}
        for name, field in type(self).model_fields.items():
            value = getattr(self, name)
            if value is None or field.alias is None:
                continue
            entries[field.alias] = value.value if isinstance(value, ServiceStage) else str(value)
        return entries


# =============================================================================
# Pipeline Run
# =============================================================================
# The master record for one invocation, modelled after a workflow state:
# status, ordered step results and an error log.
# =============================================================================
class PipelineRun(BaseModel):
    """Runtime state of one pipeline invocation.

    Attributes:
        action_mode: The global ActionMode applied to every step.
        status: PENDING → RUNNING → COMPLETED | FAILED.
        step_results: Results in execution order (skipped steps included).
        error_log: Structured entries for every failure.
        started_at / completed_at: Run timing.
    """

    action_mode: ActionMode = ActionMode.IGNORE
    status: StepStatus = StepStatus.PENDING
    step_results: list[StepResult] = Field(default_factory=list)
    error_log: list[dict[str, Any]] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_now)
    completed_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.COMPLETED

    @property
    def failed_step(self) -> Optional[StepResult]:
        """The step that stopped the run, if any."""
        for result in self.step_results:
            if result.status == StepStatus.FAILED:
                return result
        return None

    @property
    def completed_steps(self) -> list[str]:
        return [r.step_name for r in self.step_results if r.status == StepStatus.COMPLETED]

    @property
    def skipped_steps(self) -> list[str]:
        return [r.step_name for r in self.step_results if r.status == StepStatus.SKIPPED]

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()
