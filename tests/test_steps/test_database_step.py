"""
Tests for provisioner.steps.database
======================================

The ActionMode matrix for the instance, database and user, and the
credential rules that go with it.
"""

import pytest

from provisioner.core.enums import ActionMode, ResourceKind
from provisioner.core.exceptions import PermissionDeniedError, StepError
from provisioner.core.models import ResourceDescriptor
from provisioner.steps.database import DatabaseSetupStep


INSTANCE = ResourceDescriptor(kind=ResourceKind.SQL_INSTANCE, name="n8n-postgres-instance")
DATABASE = ResourceDescriptor(kind=ResourceKind.SQL_DATABASE, name="n8n_db", scope=INSTANCE.name)
USER = ResourceDescriptor(kind=ResourceKind.SQL_USER, name="n8n_user", scope=INSTANCE.name)


def _seed_all(provider) -> dict[str, str]:
    """Seed instance, database and user; return their uids."""
    return {
        "instance": provider.seed(INSTANCE)["uid"],
        "database": provider.seed(DATABASE)["uid"],
        "user": provider.seed(USER)["uid"],
    }


# =============================================================================
# Test: First Run
# =============================================================================
class TestFirstRun:
    async def test_creates_everything_with_new_credential(self, make_context, provider) -> None:
        context = await make_context({"REGION": "europe-west1"})
        result = await DatabaseSetupStep(context).run()

        assert result.created_count == 3
        password = context.store.entries()["SQL_USER_PASSWORD"]
        assert len(password) == 16
        assert provider.record_for(INSTANCE)["attributes"]["root_password"] == password
        assert provider.record_for(INSTANCE)["attributes"]["region"] == "europe-west1"
        assert provider.record_for(USER)["attributes"]["password"] == password

    async def test_names_are_saved(self, make_context) -> None:
        context = await make_context()
        result = await DatabaseSetupStep(context).run()
        assert result.state_keys == [
            "REGION",
            "SQL_INSTANCE_NAME",
            "SQL_DATABASE_NAME",
            "SQL_USER_NAME",
            "SQL_USER_PASSWORD",
        ]

    async def test_credential_never_logged_in_labels(self, make_context) -> None:
        context = await make_context()
        result = await DatabaseSetupStep(context).run()
        password = context.state.sql_user_password
        assert all(password not in r.descriptor.label for r in result.resources)


# =============================================================================
# Test: ActionMode Matrix
# =============================================================================
class TestActionModes:
    """IGNORE leaves things alone, DROP recreates children, DESTROY recreates everything."""

    async def test_ignore_rerun_is_a_no_op(self, make_context, provider) -> None:
        uids = _seed_all(provider)
        context = await make_context({"SQL_USER_PASSWORD": "kept"})
        result = await DatabaseSetupStep(context).run()

        assert result.created_count == 0
        assert provider.calls("create") == []
        assert provider.calls("delete") == []
        assert provider.record_for(INSTANCE)["uid"] == uids["instance"]
        assert context.state.sql_user_password == "kept"

    async def test_drop_recreates_database_and_user(self, make_context, provider) -> None:
        uids = _seed_all(provider)
        context = await make_context({"SQL_USER_PASSWORD": "kept"}, action_mode=ActionMode.DROP)
        await DatabaseSetupStep(context).run()

        assert provider.record_for(INSTANCE)["uid"] == uids["instance"]
        assert provider.record_for(DATABASE)["uid"] != uids["database"]
        assert provider.record_for(USER)["uid"] != uids["user"]
        assert provider.record_for(USER)["attributes"]["password"] == "kept"
        assert [c["kind"] for c in provider.calls("delete")] == ["sql-database", "sql-user"]

    async def test_destroy_recreates_instance_with_new_credential(self, make_context, provider) -> None:
        uids = _seed_all(provider)
        context = await make_context({"SQL_USER_PASSWORD": "old"}, action_mode=ActionMode.DESTROY)
        await DatabaseSetupStep(context).run()

        assert provider.record_for(INSTANCE)["uid"] != uids["instance"]
        assert provider.record_for(DATABASE)["uid"] != uids["database"]
        assert context.state.sql_user_password != "old"
        assert provider.record_for(USER)["attributes"]["password"] == context.state.sql_user_password
        assert [c["kind"] for c in provider.calls("delete")] == ["sql-instance"]

    async def test_destroy_with_denied_delete_keeps_instance(self, make_context, provider) -> None:
        uids = _seed_all(provider)
        provider.fail_on(
            "delete", ResourceKind.SQL_INSTANCE, PermissionDeniedError("denied", operation="delete"),
        )
        context = await make_context({"SQL_USER_PASSWORD": "kept"}, action_mode=ActionMode.DESTROY)
        await DatabaseSetupStep(context).run()

        assert provider.record_for(INSTANCE)["uid"] == uids["instance"]
        assert context.state.sql_user_password == "kept"
        assert provider.calls("create") == []


# =============================================================================
# Test: Credential Rules
# =============================================================================
class TestCredentialRules:
    async def test_existing_instance_without_credential_fails(self, make_context, provider) -> None:
        _seed_all(provider)
        context = await make_context()
        with pytest.raises(StepError) as exc_info:
            await DatabaseSetupStep(context).run()

        assert exc_info.value.cause_code == "MISSING_PRECONDITION"
        assert "SQL_USER_PASSWORD" in exc_info.value.hint
        assert provider.calls("create") == []
        assert provider.calls("delete") == []

    async def test_drop_without_credential_deletes_nothing(self, make_context, provider) -> None:
        _seed_all(provider)
        context = await make_context(action_mode=ActionMode.DROP)
        with pytest.raises(StepError):
            await DatabaseSetupStep(context).run()
        assert provider.calls("delete") == []

    async def test_instance_create_failure_keeps_generated_credential(self, make_context, provider) -> None:
        provider.fail_on("create", ResourceKind.SQL_INSTANCE)
        context = await make_context()
        with pytest.raises(StepError):
            await DatabaseSetupStep(context).run()
        assert "SQL_USER_PASSWORD" in context.store.entries()
