"""
Tests for provisioner.steps.network
=====================================

Project resolution order, service enablement and the connectivity
resources, all against the InMemoryCloudProvider.
"""

import pytest

from provisioner.core.enums import ResourceKind
from provisioner.core.exceptions import PermissionDeniedError, ProviderError, StepError
from provisioner.core.models import ResourceDescriptor
from provisioner.orchestration.context import PipelineContext
from provisioner.orchestration.state_store import InMemoryStateStore
from provisioner.providers.memory import InMemoryCloudProvider
from provisioner.steps.network import NetworkSetupStep


# =============================================================================
# Test: Project Resolution
# =============================================================================
class TestProjectResolution:
    """State first, then the tooling's project, then the fallback, then the first listed."""

    async def test_uses_configured_project(self, make_context) -> None:
        context = await make_context()
        await NetworkSetupStep(context).run()
        assert context.state.project_id == "acme-prod"
        assert context.state.project_number == "123456789012"
        assert context.provider.calls("set_project") == []

    async def test_stored_project_wins_and_is_selected(self, config, output) -> None:
        provider = InMemoryCloudProvider(
            projects={"acme-prod": "1", "other-proj": "999"}, configured_project="acme-prod",
        )
        store = InMemoryStateStore({"PROJECT_ID": "other-proj"})
        await store.load()
        context = PipelineContext(config, store, provider, output=output)
        await NetworkSetupStep(context).run()
        assert context.state.project_id == "other-proj"
        assert provider.calls("set_project")[0]["project_id"] == "other-proj"
        assert await provider.get_configured_project() == "other-proj"

    async def test_fallback_project(self, config, output) -> None:
        provider = InMemoryCloudProvider(projects={"fallback": "1", "first": "2"})
        store = InMemoryStateStore()
        await store.load()
        context = PipelineContext(
            config.model_copy(update={"fallback_project": "fallback"}), store, provider, output=output,
        )
        await NetworkSetupStep(context).run()
        assert context.state.project_id == "fallback"

    async def test_first_listed_project(self, config, output) -> None:
        provider = InMemoryCloudProvider(projects={"first": "2"})
        store = InMemoryStateStore()
        await store.load()
        context = PipelineContext(config, store, provider, output=output)
        await NetworkSetupStep(context).run()
        assert context.state.project_id == "first"
        assert provider.calls("set_project")[0]["project_id"] == "first"

    async def test_no_project_anywhere(self, config, output) -> None:
        store = InMemoryStateStore()
        await store.load()
        context = PipelineContext(config, store, InMemoryCloudProvider(), output=output)
        with pytest.raises(StepError) as exc_info:
            await NetworkSetupStep(context).run()
        assert exc_info.value.cause_code == "MISSING_PRECONDITION"
        assert store.entries() == {}

    async def test_configured_project_lookup_failure_is_tolerated(self, make_context, provider) -> None:
        provider.fail_on("get_configured_project")
        context = await make_context({"PROJECT_ID": "acme-prod"})
        await NetworkSetupStep(context).run()
        assert context.state.project_id == "acme-prod"


# =============================================================================
# Test: Region and Services
# =============================================================================
class TestRegionAndServices:
    async def test_default_region_is_persisted(self, make_context) -> None:
        context = await make_context()
        await NetworkSetupStep(context).run()
        assert context.store.entries()["REGION"] == "us-central1"

    async def test_override_region_is_persisted(self, make_context) -> None:
        context = await make_context(environ={"REGION": "europe-west1"})
        await NetworkSetupStep(context).run()
        assert context.store.entries()["REGION"] == "europe-west1"

    async def test_only_missing_services_are_enabled(self, make_context, provider, config) -> None:
        provider.enabled_services.add("run.googleapis.com")
        context = await make_context()
        await NetworkSetupStep(context).run()
        enabled = provider.calls("enable_services")[0]["services"]
        assert "run.googleapis.com" not in enabled
        assert len(enabled) == len(config.network.required_services) - 1

    async def test_no_enable_call_when_all_enabled(self, make_context, provider, config) -> None:
        provider.enabled_services.update(config.network.required_services)
        context = await make_context()
        await NetworkSetupStep(context).run()
        assert provider.calls("enable_services") == []


# =============================================================================
# Test: Connectivity
# =============================================================================
class TestConnectivity:
    async def test_creates_reservation_peering_and_connector(self, make_context, provider) -> None:
        context = await make_context()
        result = await NetworkSetupStep(context).run()

        kinds = [r.descriptor.kind for r in result.resources]
        assert kinds == [ResourceKind.ADDRESS_RESERVATION, ResourceKind.PEERING, ResourceKind.CONNECTOR]
        assert result.created_count == 3
        assert provider.has(ResourceDescriptor(
            kind=ResourceKind.CONNECTOR, name="vpc-connector", scope="us-central1",
        ))
        assert context.state.connector_name == "vpc-connector"

    async def test_rerun_creates_nothing(self, make_context, provider) -> None:
        await NetworkSetupStep(await make_context()).run()
        provider.reset_history()
        result = await NetworkSetupStep(await make_context()).run()
        assert result.created_count == 0
        assert provider.calls("create") == []

    async def test_connector_create_failure_is_a_range_conflict(self, make_context, provider) -> None:
        provider.fail_on("create", ResourceKind.CONNECTOR)
        context = await make_context()
        with pytest.raises(StepError) as exc_info:
            await NetworkSetupStep(context).run()
        assert exc_info.value.cause_code == "ADDRESS_RANGE_CONFLICT"
        assert "CONNECTOR_RANGE" in exc_info.value.hint
        assert "CONNECTOR_NAME" not in context.store.entries()

    async def test_connector_describe_failure_is_not_a_range_conflict(self, make_context, provider) -> None:
        provider.fail_on(
            "describe", ResourceKind.CONNECTOR, PermissionDeniedError("denied", operation="describe"),
        )
        context = await make_context()
        with pytest.raises(StepError) as exc_info:
            await NetworkSetupStep(context).run()
        assert exc_info.value.cause_code == "PERMISSION_DENIED"

    async def test_peering_failure_stops_before_connector(self, make_context, provider) -> None:
        provider.fail_on("create", ResourceKind.PEERING, ProviderError("boom", operation="create"))
        context = await make_context()
        with pytest.raises(StepError):
            await NetworkSetupStep(context).run()
        assert provider.calls("describe", ResourceKind.CONNECTOR) == []
