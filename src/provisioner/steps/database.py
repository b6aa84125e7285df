"""
provisioner.steps.database - Managed Postgres Instance, Database and User
===========================================================================

Reconciles, in nested order, the SQL instance, the application database and
the application user, applying the run's ActionMode:

    IGNORE   touch nothing that exists
    DROP     delete database + user, recreate them; the instance is kept
    DESTROY  delete the whole instance, recreate everything

Credential Rules:
    - A freshly created instance gets a NEW random credential, persisted as
      SQL_USER_PASSWORD before the create call (a crash after creation
      never loses it).
    - A reused instance REQUIRES SQL_USER_PASSWORD in state; a missing value
      fails the step before anything is mutated. The credential of a live
      instance is never regenerated.
"""

from __future__ import annotations

from provisioner.core.credentials import generate_credential
from provisioner.core.enums import ActionMode, ResourceKind
from provisioner.core.models import ResourceDescriptor
from provisioner.steps.base import BaseStep


class DatabaseSetupStep(BaseStep):
    """Cloud SQL instance, database and user."""

    name = "database"
    description = "Reconcile the Postgres instance, database and user"

    async def _execute(self) -> None:
        db_config = self.context.config.database
        region = await self.ensure_region()
        mode = self.context.action_mode

        await self.context.save("SQL_INSTANCE_NAME", db_config.instance_name)
        await self.context.save("SQL_DATABASE_NAME", db_config.database_name)
        await self.context.save("SQL_USER_NAME", db_config.user_name)

        instance = ResourceDescriptor(
            kind=ResourceKind.SQL_INSTANCE,
            name=db_config.instance_name,
            attributes={
                "database_version": db_config.database_version,
                "region": region,
                "tier": db_config.tier,
                "network": self.context.config.network.network,
            },
        )
        await self.ensure_present(
            instance,
            ActionMode.DESTROY if mode == ActionMode.DESTROY else ActionMode.IGNORE,
            before_create=self._with_new_credential,
            on_existing=self._require_credential,
        )

        child_mode = ActionMode.DROP if mode == ActionMode.DROP else ActionMode.IGNORE
        database = ResourceDescriptor(
            kind=ResourceKind.SQL_DATABASE,
            name=db_config.database_name,
            scope=instance.name,
            parent=instance,
        )
        await self.ensure_absent_then_present(database, child_mode)

        password = self.context.require("sql_user_password")
        user = ResourceDescriptor(
            kind=ResourceKind.SQL_USER,
            name=db_config.user_name,
            scope=instance.name,
            parent=instance,
            attributes={"password": password},
        )
        await self.ensure_absent_then_present(user, child_mode)

    async def _with_new_credential(self, instance: ResourceDescriptor) -> ResourceDescriptor:
        password = generate_credential(self.context.config.database.password_bytes)
        await self.context.save("SQL_USER_PASSWORD", password)
        self._logger.info("credential_generated", key="SQL_USER_PASSWORD")
        return instance.with_attributes(root_password=password)

    async def _require_credential(self, instance: ResourceDescriptor) -> None:
        self.context.require(
            "sql_user_password",
            hint=(
                f"Instance {instance.name} already exists but SQL_USER_PASSWORD is not set. "
                f"Add it to {self.context.config.state_file} (or re-run with DB_ACTION=destroy_sql_instance "
                "to recreate the instance with a new credential)."
            ),
        )
