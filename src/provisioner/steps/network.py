"""
provisioner.steps.network - Project, Services and Private Connectivity
========================================================================

First step of the pipeline. Establishes the scope every later step works in
and the private network path between the serverless service and the
database.

    1. Resolve the project:
         state PROJECT_ID → provider's configured project
         → GCLOUD_PROJECT / GCP_PROJECT → first listed project
    2. Persist PROJECT_ID, PROJECT_NUMBER and REGION.
    3. Enable the provider services the pipeline needs.
    4. Reserve the peering address range, peer the VPC with the managed
       service network, and create the VPC access connector.
    5. Persist CONNECTOR_NAME.

A connector that cannot be created is reported as an address range conflict,
with a hint naming CONNECTOR_RANGE.
"""

from __future__ import annotations

from provisioner.core.enums import ResourceKind
from provisioner.core.exceptions import (
    AddressRangeConflictError,
    PreconditionError,
    ProviderError,
)
from provisioner.core.models import ResourceDescriptor
from provisioner.steps.base import BaseStep


class NetworkSetupStep(BaseStep):
    """Project selection, service enablement and private connectivity."""

    name = "network"
    description = "Select project and region, enable services, set up private connectivity"

    async def _execute(self) -> None:
        project_id = await self._resolve_project()
        project_number = await self.context.provider.get_project_number(project_id)
        await self.context.save("PROJECT_ID", project_id)
        await self.context.save("PROJECT_NUMBER", project_number)

        region = self.context.state.region or self.context.config.default_region
        await self.context.save("REGION", region)
        self._logger.info("scope_selected", project_id=project_id, region=region)

        await self._enable_services()
        await self._ensure_peering(project_id)
        await self._ensure_connector(region)

    # -------------------------------------------------------------------------
    # Project
    # -------------------------------------------------------------------------
    async def _resolve_project(self) -> str:
        provider = self.context.provider
        try:
            configured = await provider.get_configured_project()
        except ProviderError as e:
            self._logger.warning("configured_project_unavailable", error=e.message)
            configured = None

        stored = self.context.state.project_id
        if stored:
            if stored != configured:
                await provider.set_project(stored)
            return stored

        if configured:
            return configured

        project_id = self.context.config.fallback_project
        if not project_id:
            projects = await provider.list_projects()
            if not projects:
                raise PreconditionError(
                    message="No project is configured and none are available",
                    key="PROJECT_ID",
                    hint="Set PROJECT_ID=<project> (or GCLOUD_PROJECT) and re-run.",
                )
            project_id = projects[0]
            self._logger.info("project_auto_selected", project_id=project_id)

        await provider.set_project(project_id)
        return project_id

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------
    async def _enable_services(self) -> None:
        required = self.context.config.network.required_services
        enabled = await self.context.provider.list_enabled_services()
        missing = [service for service in required if service not in enabled]
        if not missing:
            self._logger.info("services_already_enabled", count=len(required))
            return
        self._logger.info("services_enabling", services=missing)
        await self.context.provider.enable_services(missing)

    # -------------------------------------------------------------------------
    # Connectivity
    # -------------------------------------------------------------------------
    async def _ensure_peering(self, project_id: str) -> None:
        network_config = self.context.config.network
        reservation = ResourceDescriptor(
            kind=ResourceKind.ADDRESS_RESERVATION,
            name=f"google-managed-services-{project_id}",
            scope="global",
            attributes={
                "network": network_config.network,
                "prefix_length": network_config.peering_prefix_length,
            },
        )
        await self.ensure_present(reservation)

        peering = ResourceDescriptor(
            kind=ResourceKind.PEERING,
            name=network_config.peering_service.replace(".", "-"),
            scope=network_config.network,
            attributes={
                "service": network_config.peering_service,
                "ranges": reservation.name,
                "project": project_id,
            },
        )
        await self.ensure_present(peering)

    async def _ensure_connector(self, region: str) -> None:
        config = self.context.config
        connector = ResourceDescriptor(
            kind=ResourceKind.CONNECTOR,
            name=config.network.connector_name,
            scope=region,
            attributes={"network": config.network.network, "range": config.connector_range},
        )
        try:
            await self.ensure_present(connector)
        except ProviderError as e:
            if e.operation != "create":
                raise
            raise AddressRangeConflictError(
                message=(
                    f"Failed to create VPC access connector {connector.name}; "
                    f"the range {config.connector_range} may already be in use"
                ),
                address_range=config.connector_range,
                hint="Set CONNECTOR_RANGE to a different unused /28 range and re-run.",
                details={"cause": e.message},
            ) from e

        await self.context.save("CONNECTOR_NAME", connector.name)
