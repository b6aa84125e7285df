"""
provisioner.steps.deploy - Serverless Service Deployment
==========================================================

Deploys the application service wired to the database (through the
connector) and to its secrets (by reference only), then tells the running
service its own public address.

The service only learns its address after the first deploy, so deployment is
a persisted state machine (SERVICE_STAGE):

    ┌─────────┐  read URL   ┌───────────────┐  update env  ┌────────────┐
    │ CREATED │ ──────────→ │ ADDRESS_KNOWN │ ───────────→ │ CONFIGURED │
    └─────────┘             └───────────────┘              └────────────┘
         ↑                                                       │
         └──────────────────── next run (redeploy) ──────────────┘

A run that finds ADDRESS_KNOWN, a saved N8N_URL and a live service resumes
with the update pass only.

Access Rules:
    The runtime identity is granted secret access on every referenced secret
    BEFORE the deploy, and the SQL client role at project scope.
"""

from __future__ import annotations

from urllib.parse import urlparse

from provisioner.core.credentials import generate_credential
from provisioner.core.enums import ResourceKind, ServiceStage
from provisioner.core.exceptions import VerificationError
from provisioner.core.models import ResourceDescriptor, SecretRef, ServiceDeployment
from provisioner.steps.base import BaseStep


SECRET_ACCESSOR_ROLE = "roles/secretmanager.secretAccessor"
SQL_CLIENT_ROLE = "roles/cloudsql.client"


class ServiceDeployStep(BaseStep):
    """Serverless service deploy and post-deploy configuration."""

    name = "deploy"
    description = "Deploy the service and configure its public address"

    async def _execute(self) -> None:
        state = self.context.state
        service_config = self.context.config.service
        region = await self.ensure_region()

        service_name = state.service_name or service_config.name
        await self.context.save("CLOUD_RUN_SERVICE_NAME", service_name)
        service = ResourceDescriptor(kind=ResourceKind.RUN_SERVICE, name=service_name, scope=region)

        if await self._can_resume(service):
            self._logger.info("deploy_resuming", service=service_name, stage=ServiceStage.ADDRESS_KNOWN.value)
        else:
            await self._deploy(service)

        await self._configure(service)

    async def _can_resume(self, service: ResourceDescriptor) -> bool:
        state = self.context.state
        if state.service_stage != ServiceStage.ADDRESS_KNOWN or not state.service_url:
            return False
        return await self.context.reconciler.exists(service)

    # -------------------------------------------------------------------------
    # First pass: deploy → CREATED → ADDRESS_KNOWN
    # -------------------------------------------------------------------------
    async def _deploy(self, service: ResourceDescriptor) -> None:
        context = self.context
        state = context.state
        config = context.config

        project_id = context.require("project_id", hint="Run the network step first.")
        project_number = context.require("project_number", hint="Run the network step first.")
        image = context.require("docker_image_name", hint="Run the image step first.")
        instance = state.sql_instance_name or config.database.instance_name
        database = state.sql_database_name or config.database.database_name
        user = state.sql_user_name or config.database.user_name
        connector = state.connector_name or config.network.connector_name
        db_secret = state.db_password_secret_name or config.secrets.db_password_secret
        key_secret = state.encryption_key_secret_name or config.secrets.encryption_key_secret
        auth_secret = state.basic_auth_secret_name or config.secrets.basic_auth_secret

        admin_password = generate_credential(config.service.admin_password_bytes)
        context.emit_credential(
            f"Admin password (user '{config.service.admin_user}')", admin_password,
        )
        await self.ensure_present(ResourceDescriptor(
            kind=ResourceKind.SECRET,
            name=auth_secret,
            attributes={"replication_policy": config.secrets.replication_policy},
        ))
        await context.provider.add_secret_version(auth_secret, admin_password.encode("utf-8"))

        identity = context.provider.default_runtime_identity(project_id, project_number)
        self._logger.info("runtime_identity", identity=identity)
        for secret_name in (db_secret, key_secret, auth_secret):
            await context.provider.grant_role(
                ResourceDescriptor(kind=ResourceKind.SECRET, name=secret_name),
                identity,
                SECRET_ACCESSOR_ROLE,
            )
        await context.provider.grant_role(
            ResourceDescriptor(kind=ResourceKind.PROJECT, name=project_id),
            identity,
            SQL_CLIENT_ROLE,
        )

        connection_name = f"{project_id}:{service.scope}:{instance}"
        env = {
            "DB_TYPE": "postgresdb",
            "DB_POSTGRESDB_HOST": f"/cloudsql/{connection_name}",
            "DB_POSTGRESDB_PORT": "5432",
            "DB_POSTGRESDB_DATABASE": database,
            "DB_POSTGRESDB_USER": user,
            "N8N_BASIC_AUTH_ACTIVE": "true",
            "N8N_BASIC_AUTH_USER": config.service.admin_user,
        }
        if state.service_url:
            env.update(_address_env(state.service_url))

        deployment = ServiceDeployment(
            name=service.name,
            region=service.scope,
            image=image,
            env=env,
            secrets={
                "DB_POSTGRESDB_PASSWORD": SecretRef(secret=db_secret),
                "N8N_ENCRYPTION_KEY": SecretRef(secret=key_secret),
                "N8N_BASIC_AUTH_PASSWORD": SecretRef(secret=auth_secret),
            },
            sql_instances=[connection_name],
            connector=connector,
            vpc_egress=config.service.vpc_egress,
            port=config.service.port,
            cpu=config.service.cpu,
            memory=config.service.memory,
            min_instances=config.service.min_instances,
            max_instances=config.service.max_instances,
            timeout=config.service.timeout,
            cpu_boost=config.service.cpu_boost,
            allow_unauthenticated=config.service.allow_unauthenticated,
        )
        self._logger.info("service_deploying", service=service.name, image=image)
        await context.provider.deploy_service(deployment)
        await context.save("SERVICE_STAGE", ServiceStage.CREATED.value)

        url = await context.provider.get_service_url(service.name, service.scope)
        if not url:
            raise VerificationError(
                message=f"Could not retrieve the URL of service {service.name} after deployment",
                details={"service": service.name, "region": service.scope},
                hint="Check the service in the console, then re-run the deploy step.",
            )
        await context.save("N8N_URL", url)
        await context.save("SERVICE_STAGE", ServiceStage.ADDRESS_KNOWN.value)

    # -------------------------------------------------------------------------
    # Second pass: ADDRESS_KNOWN → CONFIGURED
    # -------------------------------------------------------------------------
    async def _configure(self, service: ResourceDescriptor) -> None:
        url = self.context.require("service_url")
        await self.context.provider.update_service(service.name, service.scope, _address_env(url))
        await self.context.save("SERVICE_STAGE", ServiceStage.CONFIGURED.value)
        self._logger.info("service_configured", service=service.name, url=url)
        self.context.emit(f"Service is available at: {url}")


def _address_env(url: str) -> dict[str, str]:
    parsed = urlparse(url)
    return {
        "N8N_HOST": parsed.hostname or url,
        "N8N_PROTOCOL": parsed.scheme or "https",
        "WEBHOOK_URL": url,
    }
