"""
provisioner.orchestration.pipeline_engine - Linear Pipeline Execution
=======================================================================

The top-level orchestrator: runs the configured steps strictly in declared
order against one PipelineContext and records the outcome in a PipelineRun.

    ┌──────────────────────────────────────────────────────────────┐
    │                      Pipeline Engine                          │
    │                                                              │
    │  STEPS ──→ resolve ──→ network ──→ database ──→ secrets ──→  │
    │                        image ──→ deploy                       │
    │                                                              │
    │  step fails ──→ record FAILED ──→ stop (no rollback)          │
    │  step module missing ──→ record SKIPPED ──→ continue          │
    └──────────────────────────────────────────────────────────────┘

Execution Flow:
    1. ``resolve(names)`` maps every step name to its class. An unknown name
       is a ConfigurationError, raised before any step runs. A step whose
       module is absent from the installation resolves to None (skipped).
    2. ``run(context)`` creates a PipelineRun with status RUNNING.
    3. Each step runs to completion before the next one starts.
    4. The first StepError marks the step and the run FAILED; later steps do
       not run. A re-run resumes through idempotent reconciliation.

Step Registry:
    Names map to ``"module:Class"`` paths, imported lazily so a partial
    installation still runs the steps it has.
"""

from __future__ import annotations

import importlib
from datetime import datetime, timezone
from typing import Optional, Sequence, Union

import structlog

from provisioner.core.enums import StepStatus
from provisioner.core.exceptions import ConfigurationError, StepError
from provisioner.core.models import StepResult
from provisioner.core.state import PipelineRun
from provisioner.orchestration.context import PipelineContext


logger = structlog.get_logger()


# =============================================================================
# Step Registry
# =============================================================================
STEP_REGISTRY: dict[str, str] = {
    "network": "provisioner.steps.network:NetworkSetupStep",
    "database": "provisioner.steps.database:DatabaseSetupStep",
    "secrets": "provisioner.steps.secrets:SecretSetupStep",
    "image": "provisioner.steps.image:ImagePublishStep",
    "deploy": "provisioner.steps.deploy:ServiceDeployStep",
    "logs": "provisioner.steps.logs:LogTailStep",
}

StepTarget = Union[str, type]


class PipelineEngine:
    """Sequential step runner.

    Attributes:
        _registry: Step name → "module:Class" path (or a class, in tests).
        _logger: Structured logger with pipeline engine context.

    Example:
        >>> engine = PipelineEngine()
        >>> run = await engine.run(context, ["network", "database"])
        >>> run.status
        <StepStatus.COMPLETED: 'completed'>
    """

    def __init__(self, registry: Optional[dict[str, StepTarget]] = None) -> None:
        self._registry: dict[str, StepTarget] = dict(STEP_REGISTRY if registry is None else registry)
        self._logger = logger.bind(component="pipeline_engine")

    @property
    def step_names(self) -> list[str]:
        return list(self._registry)

    # =========================================================================
    # Step Resolution
    # =========================================================================

    def resolve(self, names: Sequence[str]) -> list[tuple[str, Optional[type]]]:
        """Map step names to step classes.

        Returns:
            (name, class) pairs in order; the class is None for a step whose
            module is not installed.

        Raises:
            ConfigurationError: If a name is not in the registry.
        """
        unknown = [name for name in names if name not in self._registry]
        if unknown:
            raise ConfigurationError(
                message=f"Unknown step name(s): {', '.join(unknown)}",
                details={"unknown": unknown, "available": self.step_names},
                hint=f"STEPS accepts: {', '.join(self.step_names)}",
            )
        return [(name, self._load(name)) for name in names]

    def _load(self, name: str) -> Optional[type]:
        target = self._registry[name]
        if isinstance(target, type):
            return target

        module_path, _, class_name = target.partition(":")
        try:
            module = importlib.import_module(module_path)
        except ModuleNotFoundError as e:
            # Only the step's own module being absent counts as "not installed".
            if e.name != module_path:
                raise
            self._logger.warning("step_module_missing", step=name, module=module_path)
            return None
        return getattr(module, class_name)

    # =========================================================================
    # Main Entry Point
    # =========================================================================

    async def run(
        self,
        context: PipelineContext,
        names: Optional[Sequence[str]] = None,
    ) -> PipelineRun:
        """Run steps in order and return the run record.

        Args:
            context: The run's PipelineContext.
            names: Step names. Defaults to ``context.config.step_names``.

        Raises:
            ConfigurationError: If a step name is unknown (nothing has run).
        """
        names = list(names) if names is not None else context.config.step_names
        plan = self.resolve(names)

        self._logger.info(
            "pipeline_starting",
            steps=names,
            action_mode=context.action_mode.value,
        )
        run = PipelineRun(action_mode=context.action_mode, status=StepStatus.RUNNING)

        for name, step_class in plan:
            if step_class is None:
                run.step_results.append(StepResult(
                    step_name=name,
                    status=StepStatus.SKIPPED,
                    completed_at=datetime.now(timezone.utc),
                ))
                continue

            keys_before = len(context.written_keys)
            started_at = datetime.now(timezone.utc)
            try:
                result = await step_class(context).run()
            except StepError as e:
                run.step_results.append(StepResult(
                    step_name=name,
                    status=StepStatus.FAILED,
                    state_keys=context.written_keys[keys_before:],
                    error_message=e.message,
                    error_code=e.cause_code,
                    hint=e.hint,
                    started_at=started_at,
                    completed_at=datetime.now(timezone.utc),
                ))
                run.error_log.append({
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "step": name,
                    **e.to_dict(),
                })
                run.status = StepStatus.FAILED
                run.completed_at = datetime.now(timezone.utc)
                self._logger.error(
                    "pipeline_failed",
                    step=name,
                    error=e.message,
                    error_code=e.cause_code,
                )
                return run

            run.step_results.append(result)

        run.status = StepStatus.COMPLETED
        run.completed_at = datetime.now(timezone.utc)
        self._logger.info(
            "pipeline_completed",
            completed=run.completed_steps,
            skipped=run.skipped_steps,
            duration_seconds=round(run.duration_seconds or 0.0, 3),
        )
        return run
