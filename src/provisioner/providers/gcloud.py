"""
provisioner.providers.gcloud - Google Cloud CLI Provider
==========================================================

Drives Google Cloud through the ``gcloud`` command-line tool, run as an
asyncio subprocess. Every command gets ``--quiet`` (never prompt) and, where a
result is parsed, ``--format=json``.

Command Mapping:
    Each ResourceKind maps to a gcloud command group plus the flag that scopes
    the name:

        sql-instance        sql instances               (project scope)
        sql-database        sql databases               --instance=<scope>
        connector           compute networks vpc-access connectors  --region=<scope>
        address-reservation compute addresses           --global
        artifact-repo       artifacts repositories      --location=<scope>
        ...

    Peerings have no ``describe`` subcommand; existence is decided by listing
    the peerings on the network.

Error Classification:
    A non-zero exit is turned into an exception from stderr:

        "NOT_FOUND" / "not found" / "does not exist" → ResourceNotFoundError
        "PERMISSION_DENIED" / "permission"           → PermissionDeniedError
        anything else                                → ProviderError

Credentials passed on the command line (``--root-password``, ``--password``)
are masked in log output.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from typing import Any, Optional

import structlog
import yaml

from provisioner.core.enums import ResourceKind
from provisioner.core.exceptions import (
    PermissionDeniedError,
    ProviderError,
    ResourceNotFoundError,
)
from provisioner.core.models import LogEntry, ResourceDescriptor, ServiceDeployment
from provisioner.providers.base import CloudProvider


logger = structlog.get_logger()


# =============================================================================
# Command Tables
# =============================================================================
# kind → (command group, scope flag template). The scope flag is formatted
# with the descriptor's scope; templates without a placeholder are fixed.
# =============================================================================
_RESOURCE_COMMANDS: dict[ResourceKind, tuple[list[str], Optional[str]]] = {
    ResourceKind.PROJECT: (["projects"], None),
    ResourceKind.NETWORK: (["compute", "networks"], None),
    ResourceKind.ADDRESS_RESERVATION: (["compute", "addresses"], "--global"),
    ResourceKind.CONNECTOR: (["compute", "networks", "vpc-access", "connectors"], "--region={scope}"),
    ResourceKind.SQL_INSTANCE: (["sql", "instances"], None),
    ResourceKind.SQL_DATABASE: (["sql", "databases"], "--instance={scope}"),
    ResourceKind.SQL_USER: (["sql", "users"], "--instance={scope}"),
    ResourceKind.SECRET: (["secrets"], None),
    ResourceKind.ARTIFACT_REPO: (["artifacts", "repositories"], "--location={scope}"),
    ResourceKind.IMAGE: (["artifacts", "docker", "images"], None),
    ResourceKind.RUN_SERVICE: (["run", "services"], "--region={scope}"),
}

_SENSITIVE_FLAGS = ("--root-password=", "--password=")

_NOT_FOUND_MARKERS = ("not_found", "not found", "does not exist")
_PERMISSION_MARKERS = ("permission_denied", "permission")


def _join_pairs(pairs: dict[str, str]) -> str:
    """Render KEY=VALUE pairs for gcloud list flags.

    Values containing a comma switch to gcloud's alternate delimiter syntax
    (``^@^K=V@K2=V2``).
    """
    items = [f"{key}={value}" for key, value in pairs.items()]
    if any("," in item for item in items):
        return "^@^" + "@".join(items)
    return ",".join(items)


def _redact(argv: list[str]) -> list[str]:
    redacted = []
    for arg in argv:
        for flag in _SENSITIVE_FLAGS:
            if arg.startswith(flag):
                arg = flag + "***"
                break
        redacted.append(arg)
    return redacted


class GcloudProvider(CloudProvider):
    """CloudProvider implementation backed by the gcloud CLI.

    Subprocess execution is isolated in ``_exec`` so tests can substitute a
    fake that returns canned (returncode, stdout, stderr) triples.

    Args:
        binary: gcloud executable name or path.
    """

    def __init__(self, binary: str = "gcloud") -> None:
        self._binary = binary
        self._logger = logger.bind(component="gcloud_provider")

    @property
    def name(self) -> str:
        return "gcloud"

    # =========================================================================
    # Subprocess Plumbing
    # =========================================================================

    async def _exec(self, argv: list[str], input_data: Optional[bytes] = None) -> tuple[int, str, str]:
        """Run one command and return (returncode, stdout, stderr)."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if input_data is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProviderError(
                message=f"Could not execute {argv[0]}: {e}",
                operation="exec",
                hint="Install the Google Cloud SDK or set GCLOUD_BINARY.",
            ) from e

        stdout, stderr = await proc.communicate(input=input_data)
        return (
            proc.returncode if proc.returncode is not None else 1,
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
        )

    async def _run(
        self,
        args: list[str],
        operation: str,
        descriptor: Optional[ResourceDescriptor] = None,
        input_data: Optional[bytes] = None,
        json_output: bool = True,
    ) -> Any:
        """Run ``gcloud <args>`` and return parsed JSON (or raw stdout).

        Raises:
            ResourceNotFoundError, PermissionDeniedError, ProviderError:
                On non-zero exit, classified from stderr.
        """
        argv = [self._binary, *args, "--quiet"]
        if json_output:
            argv.append("--format=json")

        self._logger.debug("gcloud_command", argv=_redact(argv))
        returncode, stdout, stderr = await self._exec(argv, input_data)

        if returncode != 0:
            raise self._classify(operation, descriptor, returncode, stderr)

        if not json_output:
            return stdout.strip()
        if not stdout.strip():
            return None
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise ProviderError(
                message=f"Unparseable gcloud output for {operation}: {e}",
                operation=operation,
                resource_kind=descriptor.kind.value if descriptor else None,
                resource_name=descriptor.name if descriptor else None,
            ) from e

    def _classify(
        self,
        operation: str,
        descriptor: Optional[ResourceDescriptor],
        returncode: int,
        stderr: str,
    ) -> ProviderError:
        text = stderr.lower()
        kind = descriptor.kind.value if descriptor else None
        name = descriptor.name if descriptor else None
        message = stderr.strip().splitlines()[-1] if stderr.strip() else f"gcloud exited with {returncode}"

        if any(marker in text for marker in _NOT_FOUND_MARKERS):
            return ResourceNotFoundError(
                message=message, operation=operation,
                resource_kind=kind, resource_name=name, stderr=stderr,
            )
        if any(marker in text for marker in _PERMISSION_MARKERS):
            return PermissionDeniedError(
                message=message, operation=operation,
                resource_kind=kind, resource_name=name, stderr=stderr,
            )
        return ProviderError(
            message=message,
            operation=operation,
            resource_kind=kind,
            resource_name=name,
            stderr=stderr,
            details={"returncode": returncode},
        )

    def _resource_args(self, verb: str, descriptor: ResourceDescriptor) -> list[str]:
        if descriptor.kind not in _RESOURCE_COMMANDS:
            raise ProviderError(
                message=f"Unsupported resource kind for {verb}: {descriptor.kind.value}",
                operation=verb,
                resource_kind=descriptor.kind.value,
                resource_name=descriptor.name,
            )
        group, scope_flag = _RESOURCE_COMMANDS[descriptor.kind]
        args = [*group, verb, descriptor.name]
        if scope_flag:
            args.append(scope_flag.format(scope=descriptor.scope))
        return args

    # =========================================================================
    # Generic Resource Operations
    # =========================================================================

    async def describe(self, descriptor: ResourceDescriptor) -> dict[str, Any]:
        if descriptor.kind == ResourceKind.PEERING:
            return await self._describe_peering(descriptor)
        result = await self._run(self._resource_args("describe", descriptor), "describe", descriptor)
        return result or {}

    async def _describe_peering(self, descriptor: ResourceDescriptor) -> dict[str, Any]:
        peerings = await self._run(
            ["services", "vpc-peerings", "list", f"--network={descriptor.scope}"],
            "describe",
            descriptor,
        ) or []
        for peering in peerings:
            if descriptor.name in str(peering.get("peering", "")) or descriptor.name in str(
                peering.get("service", "")
            ):
                return peering
        raise ResourceNotFoundError(
            message=f"No {descriptor.name} peering on network {descriptor.scope}",
            operation="describe",
            resource_kind=descriptor.kind.value,
            resource_name=descriptor.name,
        )

    async def create(self, descriptor: ResourceDescriptor) -> dict[str, Any]:
        attrs = descriptor.attributes
        kind = descriptor.kind

        if kind == ResourceKind.PEERING:
            args = [
                "services", "vpc-peerings", "connect",
                f"--service={attrs.get('service', 'servicenetworking.googleapis.com')}",
                f"--network={descriptor.scope}",
                f"--ranges={attrs['ranges']}",
            ]
            if attrs.get("project"):
                args.append(f"--project={attrs['project']}")
            return await self._run(args, "create", descriptor) or {}

        args = self._resource_args("create", descriptor)
        if kind == ResourceKind.ADDRESS_RESERVATION:
            args += [
                "--purpose=VPC_PEERING",
                f"--network={attrs.get('network', 'default')}",
                f"--prefix-length={attrs.get('prefix_length', 24)}",
            ]
        elif kind == ResourceKind.CONNECTOR:
            args += [
                f"--network={attrs.get('network', 'default')}",
                f"--range={attrs['range']}",
            ]
        elif kind == ResourceKind.SQL_INSTANCE:
            args += [
                f"--database-version={attrs['database_version']}",
                f"--region={attrs['region']}",
                f"--tier={attrs['tier']}",
                f"--network={attrs.get('network', 'default')}",
                "--no-assign-ip",
                "--database-flags=cloudsql.iam_authentication=on",
                f"--root-password={attrs['root_password']}",
            ]
        elif kind == ResourceKind.SQL_USER:
            args.append(f"--password={attrs['password']}")
        elif kind == ResourceKind.SECRET:
            args.append(f"--replication-policy={attrs.get('replication_policy', 'automatic')}")
        elif kind == ResourceKind.ARTIFACT_REPO:
            args += [
                "--repository-format=docker",
                f"--description={attrs.get('description', 'Docker repository')}",
            ]

        return await self._run(args, "create", descriptor) or {}

    async def delete(self, descriptor: ResourceDescriptor) -> None:
        if descriptor.kind == ResourceKind.PEERING:
            await self._run(
                [
                    "services", "vpc-peerings", "delete",
                    f"--service={descriptor.attributes.get('service', 'servicenetworking.googleapis.com')}",
                    f"--network={descriptor.scope}",
                ],
                "delete",
                descriptor,
                json_output=False,
            )
            return
        await self._run(self._resource_args("delete", descriptor), "delete", descriptor, json_output=False)

    # =========================================================================
    # Project & Services
    # =========================================================================

    async def get_configured_project(self) -> Optional[str]:
        value = await self._run(["config", "get-value", "project"], "get_configured_project", json_output=False)
        if not value or value == "(unset)":
            return None
        return value

    async def set_project(self, project_id: str) -> None:
        await self._run(["config", "set", "project", project_id], "set_project", json_output=False)

    async def list_projects(self) -> list[str]:
        projects = await self._run(["projects", "list"], "list_projects") or []
        return [p["projectId"] for p in projects if p.get("projectId")]

    async def get_project_number(self, project_id: str) -> str:
        descriptor = ResourceDescriptor(kind=ResourceKind.PROJECT, name=project_id)
        result = await self._run(["projects", "describe", project_id], "get_project_number", descriptor) or {}
        number = result.get("projectNumber")
        if not number:
            raise ProviderError(
                message=f"Project {project_id} has no projectNumber",
                operation="get_project_number",
                resource_kind=ResourceKind.PROJECT.value,
                resource_name=project_id,
            )
        return str(number)

    async def list_enabled_services(self) -> set[str]:
        services = await self._run(["services", "list", "--enabled"], "list_enabled_services") or []
        names = set()
        for service in services:
            name = (service.get("config") or {}).get("name") or service.get("name", "")
            names.add(name.rsplit("/", 1)[-1])
        return names

    async def enable_services(self, services: list[str]) -> None:
        if not services:
            return
        await self._run(["services", "enable", *services], "enable_services", json_output=False)

    # =========================================================================
    # Identity & Access
    # =========================================================================

    def default_runtime_identity(self, project_id: str, project_number: str) -> str:
        return f"serviceAccount:{project_number}-compute@developer.gserviceaccount.com"

    async def grant_role(self, target: ResourceDescriptor, member: str, role: str) -> None:
        if target.kind == ResourceKind.SECRET:
            group = ["secrets"]
        elif target.kind == ResourceKind.PROJECT:
            group = ["projects"]
        else:
            raise ProviderError(
                message=f"Role grants on {target.kind.value} are not supported",
                operation="grant_role",
                resource_kind=target.kind.value,
                resource_name=target.name,
            )
        await self._run(
            [*group, "add-iam-policy-binding", target.name, f"--member={member}", f"--role={role}"],
            "grant_role",
            target,
        )

    # =========================================================================
    # Secrets
    # =========================================================================

    async def add_secret_version(self, secret_name: str, data: bytes) -> int:
        descriptor = ResourceDescriptor(kind=ResourceKind.SECRET, name=secret_name)
        result = await self._run(
            ["secrets", "versions", "add", secret_name, "--data-file=-"],
            "add_secret_version",
            descriptor,
            input_data=data,
        ) or {}
        version = str(result.get("name", "")).rsplit("/", 1)[-1]
        if not version.isdigit():
            raise ProviderError(
                message=f"Could not read the new version of secret {secret_name}",
                operation="add_secret_version",
                resource_kind=ResourceKind.SECRET.value,
                resource_name=secret_name,
            )
        return int(version)

    # =========================================================================
    # Images
    # =========================================================================

    def image_reference(self, region: str, project_id: str, repository: str, image: str, tag: str) -> str:
        return f"{region}-docker.pkg.dev/{project_id}/{repository}/{image}:{tag}"

    async def build_and_push_image(self, source_image: str, target_image: str, builder_image: str) -> None:
        build_config = {
            "steps": [
                {"name": builder_image, "args": ["pull", source_image]},
                {"name": builder_image, "args": ["tag", source_image, target_image]},
            ],
            "images": [target_image],
        }
        fd, path = tempfile.mkstemp(prefix="cloudbuild-", suffix=".yaml")
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(build_config, f, sort_keys=False)
            await self._run(
                ["builds", "submit", f"--config={path}", "--no-source"],
                "build_and_push_image",
                ResourceDescriptor(kind=ResourceKind.IMAGE, name=target_image),
                json_output=False,
            )
        finally:
            os.unlink(path)

    # =========================================================================
    # Service
    # =========================================================================

    async def deploy_service(self, deployment: ServiceDeployment) -> None:
        args = [
            "run", "deploy", deployment.name,
            f"--image={deployment.image}",
            "--platform=managed",
            f"--region={deployment.region}",
            f"--port={deployment.port}",
            f"--cpu={deployment.cpu}",
            f"--memory={deployment.memory}",
            f"--min-instances={deployment.min_instances}",
            f"--max-instances={deployment.max_instances}",
            f"--timeout={deployment.timeout}",
        ]
        if deployment.env:
            args.append(f"--set-env-vars={_join_pairs(deployment.env)}")
        if deployment.secrets:
            refs = {key: str(ref) for key, ref in deployment.secrets.items()}
            args.append(f"--set-secrets={_join_pairs(refs)}")
        if deployment.sql_instances:
            args.append(f"--set-cloudsql-instances={','.join(deployment.sql_instances)}")
        if deployment.connector:
            args.append(f"--vpc-connector={deployment.connector}")
        if deployment.vpc_egress:
            args.append(f"--vpc-egress={deployment.vpc_egress}")
        if deployment.cpu_boost:
            args.append("--cpu-boost")
        args.append("--allow-unauthenticated" if deployment.allow_unauthenticated else "--no-allow-unauthenticated")

        descriptor = ResourceDescriptor(
            kind=ResourceKind.RUN_SERVICE, name=deployment.name, scope=deployment.region,
        )
        await self._run(args, "deploy_service", descriptor, json_output=False)

    async def update_service(self, name: str, region: str, env: dict[str, str]) -> None:
        descriptor = ResourceDescriptor(kind=ResourceKind.RUN_SERVICE, name=name, scope=region)
        await self._run(
            [
                "run", "services", "update", name,
                "--platform=managed",
                f"--region={region}",
                f"--update-env-vars={_join_pairs(env)}",
            ],
            "update_service",
            descriptor,
            json_output=False,
        )

    async def get_service_url(self, name: str, region: str) -> Optional[str]:
        descriptor = ResourceDescriptor(kind=ResourceKind.RUN_SERVICE, name=name, scope=region)
        result = await self._run(
            ["run", "services", "describe", name, "--platform=managed", f"--region={region}"],
            "get_service_url",
            descriptor,
        ) or {}
        url = (result.get("status") or {}).get("url")
        return url or None

    async def read_logs(self, name: str, region: str, project_id: str, limit: int) -> list[LogEntry]:
        log_filter = (
            "resource.type=cloud_run_revision AND "
            f"resource.labels.service_name={name} AND "
            f"resource.labels.location={region}"
        )
        entries = await self._run(
            [
                "logging", "read", log_filter,
                f"--project={project_id}",
                f"--limit={limit}",
                "--order=desc",
            ],
            "read_logs",
        ) or []
        return [
            LogEntry(
                timestamp=entry.get("timestamp", ""),
                log_name=entry.get("logName", ""),
                text=entry.get("textPayload") or json.dumps(entry.get("jsonPayload", "")),
            )
            for entry in entries
        ]
