"""
Tests for provisioner.orchestration.reconciler
================================================

The reconciler is exercised against the InMemoryCloudProvider so every
assertion is about observable provider calls and resources.
"""

import pytest

from provisioner.core.enums import ActionMode, ReconcileOutcome, ResourceKind
from provisioner.core.exceptions import PermissionDeniedError, ProviderError
from provisioner.core.models import ResourceDescriptor
from provisioner.orchestration.reconciler import ResourceReconciler


def _make_instance() -> ResourceDescriptor:
    return ResourceDescriptor(kind=ResourceKind.SQL_INSTANCE, name="pg")


def _make_database(instance: ResourceDescriptor) -> ResourceDescriptor:
    return ResourceDescriptor(
        kind=ResourceKind.SQL_DATABASE, name="app", scope=instance.name, parent=instance,
    )


# =============================================================================
# Test: ensure_present
# =============================================================================
class TestEnsurePresent:
    """Create when absent, skip when present."""

    async def test_creates_missing_resource(self, provider) -> None:
        reconciler = ResourceReconciler(provider)
        result = await reconciler.ensure_present(_make_instance())
        assert result.outcome == ReconcileOutcome.CREATED
        assert provider.has(_make_instance())
        assert len(provider.calls("create")) == 1

    async def test_existing_resource_is_left_alone(self, provider) -> None:
        provider.seed(_make_instance())
        reconciler = ResourceReconciler(provider)
        result = await reconciler.ensure_present(_make_instance())
        assert result.outcome == ReconcileOutcome.EXISTS
        assert provider.calls("create") == []
        assert provider.calls("delete") == []

    async def test_before_create_only_runs_on_create(self, provider) -> None:
        calls: list[str] = []

        async def add_password(descriptor: ResourceDescriptor) -> ResourceDescriptor:
            calls.append(descriptor.name)
            return descriptor.with_attributes(root_password="pw")

        reconciler = ResourceReconciler(provider)
        result = await reconciler.ensure_present(_make_instance(), before_create=add_password)
        assert calls == ["pg"]
        assert result.descriptor.attributes["root_password"] == "pw"
        assert provider.record_for(_make_instance())["attributes"]["root_password"] == "pw"

        again = await reconciler.ensure_present(_make_instance(), before_create=add_password)
        assert again.outcome == ReconcileOutcome.EXISTS
        assert calls == ["pg"]

    async def test_on_existing_hook_can_abort(self, provider) -> None:
        provider.seed(_make_instance())

        async def refuse(descriptor: ResourceDescriptor) -> None:
            raise ProviderError(message="refused", operation="check")

        reconciler = ResourceReconciler(provider)
        with pytest.raises(ProviderError, match="refused"):
            await reconciler.ensure_present(_make_instance(), on_existing=refuse)

    async def test_describe_failure_propagates(self, provider) -> None:
        provider.fail_on("describe", ResourceKind.SQL_INSTANCE, PermissionDeniedError("no", operation="describe"))
        reconciler = ResourceReconciler(provider)
        with pytest.raises(PermissionDeniedError):
            await reconciler.ensure_present(_make_instance())
        assert provider.calls("create") == []


# =============================================================================
# Test: Destructive Modes
# =============================================================================
class TestDestructiveModes:
    """DESTROY deletes the parent; DROP deletes the resource itself."""

    async def test_destroy_recreates_instance(self, provider) -> None:
        instance = _make_instance()
        old_uid = provider.seed(instance)["uid"]
        reconciler = ResourceReconciler(provider)

        result = await reconciler.ensure_present(instance, ActionMode.DESTROY)

        assert result.deleted is True
        assert result.outcome == ReconcileOutcome.CREATED
        assert provider.record_for(instance)["uid"] != old_uid

    async def test_destroy_of_child_deletes_parent(self, provider) -> None:
        instance = _make_instance()
        provider.seed(instance)
        database = _make_database(instance)
        provider.seed(database)

        reconciler = ResourceReconciler(provider)
        await reconciler.ensure_present(database, ActionMode.DESTROY)

        deletes = provider.calls("delete")
        assert [call["kind"] for call in deletes] == ["sql-instance"]
        assert not provider.has(instance)
        assert provider.has(database)

    async def test_destroy_when_absent_just_creates(self, provider) -> None:
        reconciler = ResourceReconciler(provider)
        result = await reconciler.ensure_present(_make_instance(), ActionMode.DESTROY)
        assert result.deleted is False
        assert result.created

    async def test_destroy_delete_denied_keeps_going(self, provider) -> None:
        instance = _make_instance()
        old_uid = provider.seed(instance)["uid"]
        provider.fail_on("delete", ResourceKind.SQL_INSTANCE, PermissionDeniedError("denied", operation="delete"))

        reconciler = ResourceReconciler(provider)
        result = await reconciler.ensure_present(instance, ActionMode.DESTROY)

        assert result.deleted is False
        assert result.outcome == ReconcileOutcome.EXISTS
        assert provider.record_for(instance)["uid"] == old_uid

    async def test_drop_recreates_resource(self, provider) -> None:
        instance = _make_instance()
        instance_uid = provider.seed(instance)["uid"]
        database = _make_database(instance)
        db_uid = provider.seed(database)["uid"]

        reconciler = ResourceReconciler(provider)
        result = await reconciler.ensure_absent_then_present(database, ActionMode.DROP)

        assert result.deleted is True
        assert result.created
        assert provider.record_for(database)["uid"] != db_uid
        assert provider.record_for(instance)["uid"] == instance_uid

    async def test_drop_with_generic_delete_failure(self, provider) -> None:
        database = _make_database(_make_instance())
        provider.seed(database)
        provider.fail_on("delete", ResourceKind.SQL_DATABASE)

        reconciler = ResourceReconciler(provider)
        result = await reconciler.ensure_absent_then_present(database, ActionMode.DROP)
        assert result.deleted is False
        assert result.outcome == ReconcileOutcome.EXISTS

    async def test_ignore_never_deletes(self, provider) -> None:
        database = _make_database(_make_instance())
        provider.seed(database)
        reconciler = ResourceReconciler(provider)
        for mode in (ActionMode.IGNORE, ActionMode.DESTROY):
            await reconciler.ensure_absent_then_present(database, mode)
        assert provider.calls("delete") == []


class TestExists:
    async def test_exists(self, provider) -> None:
        reconciler = ResourceReconciler(provider)
        assert await reconciler.exists(_make_instance()) is False
        provider.seed(_make_instance())
        assert await reconciler.exists(_make_instance()) is True
