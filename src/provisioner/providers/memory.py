"""
provisioner.providers.memory - In-Memory Cloud Provider
=========================================================

A simulated platform with no network access. It is the provider used by the
test suite and by ``PROVIDER=memory`` dry runs.

What It Simulates:
    - Resources keyed by (kind, scope, name), each with a unique ``uid`` and a
      monotonically increasing ``created_seq`` so tests can tell a recreated
      resource from the original.
    - Cascading deletes: deleting a SQL instance removes its databases and
      users.
    - Secret versions (append-only), IAM grants, enabled services, projects.
    - Service deploys, env updates, URLs and logs.

Test Hooks:
    - ``call_history`` / ``calls(operation)``: every operation is recorded.
    - ``fail_on(operation, kind=None, error=None)``: make the next matching
      call raise.
    - ``seed(descriptor)``: pre-create a resource without recording a call.

Usage:
    >>> provider = InMemoryCloudProvider(projects={"acme": "123456"})
    >>> provider.fail_on("delete", ResourceKind.SQL_INSTANCE)
    >>> await provider.create(instance_descriptor)
    >>> provider.calls("create")
    [{'operation': 'create', 'kind': 'sql-instance', 'name': 'pg', ...}]
"""

from __future__ import annotations

import hashlib
import itertools
from typing import Any, Optional
from uuid import uuid4

import structlog

from provisioner.core.enums import ResourceKind
from provisioner.core.exceptions import ProviderError, ResourceNotFoundError
from provisioner.core.models import LogEntry, ResourceDescriptor, ServiceDeployment
from provisioner.providers.base import CloudProvider


logger = structlog.get_logger()

ResourceKey = tuple[str, Optional[str], str]


class InMemoryCloudProvider(CloudProvider):
    """Cloud provider backed by Python dicts.

    Attributes:
        resources: Live resources keyed by ``descriptor.key``.
        secret_versions: Secret name → list of version payloads (index 0 = v1).
        grants: Recorded (target label, member, role) triples.
        enabled_services: Names of enabled services.
        deployments: Service name → last ServiceDeployment (env merged by updates).
        builds: Recorded (source, target) image builds.
        logs: Service name → log entries returned by read_logs().
    """

    def __init__(
        self,
        projects: Optional[dict[str, str]] = None,
        configured_project: Optional[str] = None,
        enabled_services: Optional[set[str]] = None,
        assign_urls: bool = True,
    ) -> None:
        """Initialize the simulated platform.

        Args:
            projects: Project ID → project number visible to the caller.
            configured_project: Project the "tooling" currently points at.
            enabled_services: Services already enabled.
            assign_urls: When False, deployed services never get a URL
                (simulates a platform that fails to report the address).
        """
        self._projects: dict[str, str] = dict(projects or {})
        self._configured_project = configured_project
        self.enabled_services: set[str] = set(enabled_services or set())
        self._assign_urls = assign_urls

        self.resources: dict[ResourceKey, dict[str, Any]] = {}
        self.secret_versions: dict[str, list[bytes]] = {}
        self.grants: list[tuple[str, str, str]] = []
        self.deployments: dict[str, ServiceDeployment] = {}
        self.builds: list[tuple[str, str]] = []
        self.logs: dict[str, list[LogEntry]] = {}

        self._call_history: list[dict[str, Any]] = []
        self._failures: list[dict[str, Any]] = []
        self._sequence = itertools.count(1)

        self._logger = logger.bind(component="memory_provider")

    @property
    def name(self) -> str:
        return "memory"

    # =========================================================================
    # Test Hooks
    # =========================================================================

    @property
    def call_history(self) -> list[dict[str, Any]]:
        return list(self._call_history)

    def calls(self, operation: str, kind: Optional[ResourceKind] = None) -> list[dict[str, Any]]:
        """Recorded calls of one operation, optionally filtered by kind."""
        return [
            call for call in self._call_history
            if call["operation"] == operation
            and (kind is None or call.get("kind") == kind.value)
        ]

    def reset_history(self) -> None:
        self._call_history.clear()

    def fail_on(
        self,
        operation: str,
        kind: Optional[ResourceKind] = None,
        error: Optional[Exception] = None,
        times: int = 1,
    ) -> None:
        """Make the next ``times`` matching calls raise ``error``.

        Args:
            operation: Operation name ("create", "delete", "describe",
                "deploy_service", "add_secret_version", ...).
            kind: Restrict to one resource kind (resource operations only).
            error: Exception to raise. Defaults to a generic ProviderError.
            times: How many calls fail before the hook is exhausted.
        """
        self._failures.append({
            "operation": operation,
            "kind": kind.value if kind else None,
            "error": error,
            "remaining": times,
        })

    def seed(self, descriptor: ResourceDescriptor) -> dict[str, Any]:
        """Create a resource directly, without recording a call."""
        return self._store(descriptor)

    def has(self, descriptor: ResourceDescriptor) -> bool:
        return descriptor.key in self.resources

    def record_for(self, descriptor: ResourceDescriptor) -> dict[str, Any]:
        return self.resources[descriptor.key]

    def _record(self, operation: str, descriptor: Optional[ResourceDescriptor] = None, **extra: Any) -> None:
        call: dict[str, Any] = {"operation": operation}
        if descriptor is not None:
            call.update({
                "kind": descriptor.kind.value,
                "scope": descriptor.scope,
                "name": descriptor.name,
            })
        call.update(extra)
        self._call_history.append(call)
        self._maybe_fail(operation, descriptor)

    def _maybe_fail(self, operation: str, descriptor: Optional[ResourceDescriptor]) -> None:
        kind = descriptor.kind.value if descriptor else None
        for failure in self._failures:
            if failure["remaining"] <= 0 or failure["operation"] != operation:
                continue
            if failure["kind"] is not None and failure["kind"] != kind:
                continue
            failure["remaining"] -= 1
            raise failure["error"] or ProviderError(
                message=f"Simulated {operation} failure",
                operation=operation,
                resource_kind=kind,
                resource_name=descriptor.name if descriptor else None,
            )

    def _not_found(self, operation: str, descriptor: ResourceDescriptor) -> ResourceNotFoundError:
        return ResourceNotFoundError(
            message=f"{descriptor.label} not found",
            operation=operation,
            resource_kind=descriptor.kind.value,
            resource_name=descriptor.name,
        )

    def _store(self, descriptor: ResourceDescriptor) -> dict[str, Any]:
        record = {
            "kind": descriptor.kind.value,
            "scope": descriptor.scope,
            "name": descriptor.name,
            "attributes": dict(descriptor.attributes),
            "uid": str(uuid4()),
            "created_seq": next(self._sequence),
        }
        self.resources[descriptor.key] = record
        return record

    # =========================================================================
    # Generic Resource Operations
    # =========================================================================

    async def describe(self, descriptor: ResourceDescriptor) -> dict[str, Any]:
        self._record("describe", descriptor)
        if descriptor.key not in self.resources:
            raise self._not_found("describe", descriptor)
        return dict(self.resources[descriptor.key])

    async def create(self, descriptor: ResourceDescriptor) -> dict[str, Any]:
        self._record("create", descriptor)
        if descriptor.key in self.resources:
            raise ProviderError(
                message=f"{descriptor.label} already exists",
                operation="create",
                resource_kind=descriptor.kind.value,
                resource_name=descriptor.name,
            )
        if descriptor.kind == ResourceKind.SECRET:
            self.secret_versions.setdefault(descriptor.name, [])
        return dict(self._store(descriptor))

    async def delete(self, descriptor: ResourceDescriptor) -> None:
        self._record("delete", descriptor)
        if descriptor.key not in self.resources:
            raise self._not_found("delete", descriptor)
        del self.resources[descriptor.key]

        if descriptor.kind == ResourceKind.SQL_INSTANCE:
            children = [
                key for key in self.resources
                if key[0] in (ResourceKind.SQL_DATABASE.value, ResourceKind.SQL_USER.value)
                and key[1] == descriptor.name
            ]
            for key in children:
                del self.resources[key]
        elif descriptor.kind == ResourceKind.SECRET:
            self.secret_versions.pop(descriptor.name, None)

    # =========================================================================
    # Project & Services
    # =========================================================================

    async def get_configured_project(self) -> Optional[str]:
        self._record("get_configured_project")
        return self._configured_project

    async def set_project(self, project_id: str) -> None:
        self._record("set_project", project_id=project_id)
        self._configured_project = project_id

    async def list_projects(self) -> list[str]:
        self._record("list_projects")
        return list(self._projects)

    async def get_project_number(self, project_id: str) -> str:
        self._record("get_project_number", project_id=project_id)
        if project_id not in self._projects:
            raise ResourceNotFoundError(
                message=f"Project {project_id} not found",
                operation="get_project_number",
                resource_kind=ResourceKind.PROJECT.value,
                resource_name=project_id,
            )
        return self._projects[project_id]

    async def list_enabled_services(self) -> set[str]:
        self._record("list_enabled_services")
        return set(self.enabled_services)

    async def enable_services(self, services: list[str]) -> None:
        self._record("enable_services", services=list(services))
        self.enabled_services.update(services)

    # =========================================================================
    # Identity & Access
    # =========================================================================

    def default_runtime_identity(self, project_id: str, project_number: str) -> str:
        return f"serviceAccount:{project_number}-compute@developer.gserviceaccount.com"

    async def grant_role(self, target: ResourceDescriptor, member: str, role: str) -> None:
        self._record("grant_role", target, member=member, role=role)
        if target.kind != ResourceKind.PROJECT and target.key not in self.resources:
            raise self._not_found("grant_role", target)
        self.grants.append((target.label, member, role))

    # =========================================================================
    # Secrets
    # =========================================================================

    async def add_secret_version(self, secret_name: str, data: bytes) -> int:
        descriptor = ResourceDescriptor(kind=ResourceKind.SECRET, name=secret_name)
        self._record("add_secret_version", descriptor)
        if descriptor.key not in self.resources:
            raise self._not_found("add_secret_version", descriptor)
        versions = self.secret_versions.setdefault(secret_name, [])
        versions.append(bytes(data))
        return len(versions)

    def latest_secret(self, secret_name: str) -> bytes:
        return self.secret_versions[secret_name][-1]

    # =========================================================================
    # Images
    # =========================================================================

    def image_reference(self, region: str, project_id: str, repository: str, image: str, tag: str) -> str:
        return f"{region}-docker.pkg.dev/{project_id}/{repository}/{image}:{tag}"

    async def build_and_push_image(self, source_image: str, target_image: str, builder_image: str) -> None:
        self._record("build_and_push_image", source=source_image, target=target_image)
        self.builds.append((source_image, target_image))

    # =========================================================================
    # Service
    # =========================================================================

    async def deploy_service(self, deployment: ServiceDeployment) -> None:
        descriptor = ResourceDescriptor(
            kind=ResourceKind.RUN_SERVICE, name=deployment.name, scope=deployment.region,
        )
        self._record("deploy_service", descriptor)
        self.deployments[deployment.name] = deployment
        if descriptor.key not in self.resources:
            record = self._store(descriptor)
        else:
            record = self.resources[descriptor.key]
        if self._assign_urls:
            digest = hashlib.sha1(deployment.name.encode()).hexdigest()[:10]
            record["url"] = f"https://{deployment.name}-{digest}.a.run.app"

    async def update_service(self, name: str, region: str, env: dict[str, str]) -> None:
        descriptor = ResourceDescriptor(kind=ResourceKind.RUN_SERVICE, name=name, scope=region)
        self._record("update_service", descriptor, env=dict(env))
        if name not in self.deployments:
            raise self._not_found("update_service", descriptor)
        current = self.deployments[name]
        merged = dict(current.env)
        merged.update(env)
        self.deployments[name] = current.model_copy(update={"env": merged})

    async def get_service_url(self, name: str, region: str) -> Optional[str]:
        descriptor = ResourceDescriptor(kind=ResourceKind.RUN_SERVICE, name=name, scope=region)
        self._record("get_service_url", descriptor)
        record = self.resources.get(descriptor.key)
        if record is None:
            raise self._not_found("get_service_url", descriptor)
        return record.get("url")

    async def read_logs(self, name: str, region: str, project_id: str, limit: int) -> list[LogEntry]:
        self._record("read_logs", service=name, region=region, project_id=project_id, limit=limit)
        return list(self.logs.get(name, []))[:limit]
