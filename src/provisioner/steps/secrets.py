"""Secret storage for the database credential and the application encryption key.

The database credential is copied from state into a new secret version on
every run. The encryption key is generated fresh on every run and exists
only in the secret store: it is never printed and never written to the state
file.
"""

from __future__ import annotations

from provisioner.core.credentials import generate_credential
from provisioner.core.enums import ResourceKind
from provisioner.core.models import ResourceDescriptor
from provisioner.steps.base import BaseStep


class SecretSetupStep(BaseStep):
    """Database password and encryption key secrets."""

    name = "secrets"
    description = "Store the database credential and a new encryption key as secrets"

    async def _execute(self) -> None:
        secrets_config = self.context.config.secrets
        await self.context.save("DB_PASSWORD_SECRET_NAME", secrets_config.db_password_secret)
        await self.context.save("N8N_ENCRYPTION_KEY_SECRET_NAME", secrets_config.encryption_key_secret)
        await self.context.save("N8N_BASIC_AUTH_SECRET_NAME", secrets_config.basic_auth_secret)

        password = self.context.require(
            "sql_user_password",
            hint="Run the database step first, or add SQL_USER_PASSWORD to the state file.",
        )
        await self._store(secrets_config.db_password_secret, password)

        encryption_key = generate_credential(secrets_config.encryption_key_bytes)
        await self._store(secrets_config.encryption_key_secret, encryption_key)

    async def _store(self, secret_name: str, value: str) -> None:
        secret = ResourceDescriptor(
            kind=ResourceKind.SECRET,
            name=secret_name,
            attributes={"replication_policy": self.context.config.secrets.replication_policy},
        )
        await self.ensure_present(secret)
        version = await self.context.provider.add_secret_version(secret_name, value.encode("utf-8"))
        self._logger.info("secret_version_added", secret=secret_name, version=version)
