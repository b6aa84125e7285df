"""
Tests for provisioner.orchestration.pipeline_engine
=====================================================

Steps are stand-ins registered as classes, so the engine's sequencing,
skipping and failure handling are tested without any real provisioning.
"""

import pytest

from provisioner.core.enums import StepStatus
from provisioner.core.exceptions import ConfigurationError, PreconditionError, StepError
from provisioner.orchestration.pipeline_engine import STEP_REGISTRY, PipelineEngine
from provisioner.steps.base import BaseStep


# =============================================================================
# Stand-in Steps
# =============================================================================
class RecordRegionStep(BaseStep):
    name = "first"
    description = "Saves the region"

    async def _execute(self) -> None:
        await self.ensure_region()


class NeedsPasswordStep(BaseStep):
    name = "second"
    description = "Fails without a credential"

    async def _execute(self) -> None:
        await self.context.save("SQL_USER_NAME", "n8n_user")
        self.context.require("sql_user_password", hint="Provide the password.")


class NeverRunStep(BaseStep):
    name = "third"
    description = "Must not run after a failure"

    async def _execute(self) -> None:
        raise AssertionError("ran after a failed step")


def _make_engine() -> PipelineEngine:
    return PipelineEngine({
        "first": RecordRegionStep,
        "second": NeedsPasswordStep,
        "third": NeverRunStep,
        "missing": "provisioner.steps.not_installed:Whatever",
    })


# =============================================================================
# Test: Resolution
# =============================================================================
class TestResolve:
    """Step names map to classes before anything runs."""

    def test_default_registry(self) -> None:
        engine = PipelineEngine()
        assert engine.step_names == list(STEP_REGISTRY)
        resolved = engine.resolve(["network", "logs"])
        assert [cls.__name__ for _, cls in resolved] == ["NetworkSetupStep", "LogTailStep"]

    def test_unknown_step(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _make_engine().resolve(["first", "bogus"])
        assert exc_info.value.details["unknown"] == ["bogus"]
        assert "first" in exc_info.value.hint

    def test_missing_module_resolves_to_none(self) -> None:
        assert _make_engine().resolve(["missing"]) == [("missing", None)]


# =============================================================================
# Test: Run
# =============================================================================
class TestRun:
    """Sequential execution, skipping and stop-on-failure."""

    async def test_runs_steps_in_order(self, make_context) -> None:
        context = await make_context()
        run = await _make_engine().run(context, ["first"])
        assert run.succeeded
        assert run.completed_steps == ["first"]
        assert run.step_results[0].state_keys == ["REGION"]
        assert run.completed_at is not None

    async def test_missing_step_is_skipped(self, make_context) -> None:
        context = await make_context()
        run = await _make_engine().run(context, ["missing", "first"])
        assert run.succeeded
        assert run.skipped_steps == ["missing"]
        assert run.completed_steps == ["first"]

    async def test_failure_stops_the_run(self, make_context) -> None:
        context = await make_context()
        run = await _make_engine().run(context, ["first", "second", "third"])

        assert run.status == StepStatus.FAILED
        failed = run.failed_step
        assert failed is not None
        assert failed.step_name == "second"
        assert failed.error_code == "MISSING_PRECONDITION"
        assert failed.hint == "Provide the password."
        assert failed.state_keys == ["SQL_USER_NAME"]
        assert [r.step_name for r in run.step_results] == ["first", "second"]
        assert run.error_log[0]["step"] == "second"

    async def test_keys_written_before_failure_stay_written(self, make_context) -> None:
        context = await make_context()
        await _make_engine().run(context, ["second"])
        assert context.store.entries() == {"SQL_USER_NAME": "n8n_user"}

    async def test_unknown_step_runs_nothing(self, make_context) -> None:
        context = await make_context()
        with pytest.raises(ConfigurationError):
            await _make_engine().run(context, ["first", "nope"])
        assert context.store.entries() == {}

    async def test_defaults_to_configured_steps(self, make_context, config) -> None:
        context = await make_context()
        engine = PipelineEngine({name: RecordRegionStep for name in config.step_names})
        run = await engine.run(context)
        assert len(run.completed_steps) == 5


class TestStepErrorWrapping:
    async def test_step_error_chains_cause(self, make_context) -> None:
        context = await make_context()
        with pytest.raises(StepError) as exc_info:
            await NeedsPasswordStep(context).run()
        assert isinstance(exc_info.value.__cause__, PreconditionError)
        assert exc_info.value.details["cause"]["details"]["key"] == "SQL_USER_PASSWORD"
