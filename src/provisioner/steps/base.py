"""
provisioner.steps.base - Abstract Provisioning Step
=====================================================

Every provisioning step inherits from BaseStep, which implements the Template
Method pattern: the lifecycle is shared, the work is step-specific.

    ┌──────────────────────────────────────────────────────┐
    │  BaseStep.run()                 ← Public API          │
    │  ┌────────────────────────────────────────────────┐  │
    │  │ 1. Log step start                              │  │
    │  │ 2. _execute()                 ← Override this  │  │
    │  │ 3. Collect reconciled resources + state keys   │  │
    │  │ 4. Return StepResult (COMPLETED)               │  │
    │  │    or raise StepError (wrapping the cause)     │  │
    │  └────────────────────────────────────────────────┘  │
    └──────────────────────────────────────────────────────┘

Subclass Contract:
    - ``name``: registry name ("network", "database", ...)
    - ``_execute()``: the step's work. Read ``self.context.state``, reconcile
      through ``self.ensure_present()`` / ``self.ensure_absent_then_present()``,
      persist through ``self.context.save()``. Raise ProvisionerError
      subclasses for failures; BaseStep wraps them.

Usage:
    class MyStep(BaseStep):
        name = "mine"

        async def _execute(self) -> None:
            await self.ensure_present(descriptor)
            await self.context.save("REGION", "europe-west1")
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

import structlog

from provisioner.core.enums import ActionMode, StepStatus
from provisioner.core.exceptions import ProvisionerError, StepError
from provisioner.core.models import ReconcileResult, ResourceDescriptor, StepResult
from provisioner.orchestration.context import PipelineContext
from provisioner.orchestration.reconciler import BeforeCreateHook, OnExistingHook


logger = structlog.get_logger()


class BaseStep(ABC):
    """Abstract base class for all provisioning steps.

    Attributes:
        name: Registry name of the step.
        description: One-line description used in logs.
        context: The run's PipelineContext.
    """

    name: str = ""
    description: str = ""

    def __init__(self, context: PipelineContext) -> None:
        self.context = context
        self._resources: list[ReconcileResult] = []
        self._logger = logger.bind(component="step", step=self.name)

    @property
    def resources(self) -> list[ReconcileResult]:
        return list(self._resources)

    # =========================================================================
    # Template Method
    # =========================================================================

    async def run(self) -> StepResult:
        """Execute the step.

        Returns:
            StepResult with status COMPLETED.

        Raises:
            StepError: If ``_execute`` raised a ProvisionerError. The cause is
                chained and its error_code and hint are carried over.
        """
        started_at = datetime.now(timezone.utc)
        keys_before = len(self.context.written_keys)
        self._logger.info(
            "step_starting",
            description=self.description,
            action_mode=self.context.action_mode.value,
        )

        try:
            await self._execute()
        except StepError:
            raise
        except ProvisionerError as e:
            self._logger.error(
                "step_failed",
                error=e.message,
                error_code=e.error_code,
            )
            raise StepError(
                message=f"Step '{self.name}' failed: {e.message}",
                step_name=self.name,
                cause_code=e.error_code,
                hint=e.hint,
                details={"cause": e.to_dict()},
            ) from e

        completed_at = datetime.now(timezone.utc)
        result = StepResult(
            step_name=self.name,
            status=StepStatus.COMPLETED,
            resources=self.resources,
            state_keys=self.context.written_keys[keys_before:],
            started_at=started_at,
            completed_at=completed_at,
        )
        self._logger.info(
            "step_completed",
            created=result.created_count,
            duration_seconds=round(result.duration_seconds or 0.0, 3),
        )
        return result

    @abstractmethod
    async def _execute(self) -> None:
        """The step's work. Raise ProvisionerError subclasses on failure."""

    # =========================================================================
    # Reconciliation Helpers
    # =========================================================================

    async def ensure_present(
        self,
        descriptor: ResourceDescriptor,
        mode: ActionMode = ActionMode.IGNORE,
        *,
        before_create: Optional[BeforeCreateHook] = None,
        on_existing: Optional[OnExistingHook] = None,
    ) -> ReconcileResult:
        result = await self.context.reconciler.ensure_present(
            descriptor, mode, before_create=before_create, on_existing=on_existing,
        )
        self._resources.append(result)
        return result

    async def ensure_absent_then_present(
        self,
        descriptor: ResourceDescriptor,
        mode: ActionMode = ActionMode.IGNORE,
        *,
        before_create: Optional[BeforeCreateHook] = None,
        on_existing: Optional[OnExistingHook] = None,
    ) -> ReconcileResult:
        result = await self.context.reconciler.ensure_absent_then_present(
            descriptor, mode, before_create=before_create, on_existing=on_existing,
        )
        self._resources.append(result)
        return result

    # =========================================================================
    # Shared State Helpers
    # =========================================================================

    async def ensure_region(self) -> str:
        """The run's region, persisting the default when none is set."""
        region = self.context.state.region
        if region is None:
            region = self.context.config.default_region
            self._logger.info("region_defaulted", region=region)
            await self.context.save("REGION", region)
        return region

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
