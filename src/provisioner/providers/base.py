"""
provisioner.providers.base - Abstract Cloud Provider Interface
================================================================

The contract between the provisioning core and a cloud platform. Steps and
the reconciler never shell out or call SDKs directly; they go through this
interface, which gives us:

    1. **Swappability**: the pipeline is provider-agnostic.
    2. **Testability**: InMemoryCloudProvider simulates the platform.
    3. **One error vocabulary**: every implementation reports a missing
       resource as ResourceNotFoundError, a permission failure as
       PermissionDeniedError and anything else as ProviderError.

    ┌────────────────────┐   describe/create/delete   ┌───────────────────┐
    │ ResourceReconciler │ ─────────────────────────→ │  CloudProvider    │
    │ Steps              │   grant/deploy/build/...   │  (abstract)       │
    └────────────────────┘                            └─────────┬─────────┘
                                                                │
                                                     ┌──────────┴─────────┐
                                                ┌────▼─────┐      ┌───────▼──────┐
                                                │ InMemory │      │   Gcloud     │
                                                └──────────┘      └──────────────┘

All operations are coroutines and are awaited one at a time; a slow platform
operation (instance creation, build, deploy) simply blocks the pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from provisioner.core.models import LogEntry, ResourceDescriptor, ServiceDeployment


class CloudProvider(ABC):
    """Abstract base class for cloud platform integrations.

    Resource operations take a ResourceDescriptor; the provider maps
    ``descriptor.kind`` to its own API. Operations that are not about a single
    resource (services, IAM, builds, deploys, logs) have dedicated methods.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short provider identifier ("gcloud", "memory")."""

    # =========================================================================
    # Generic Resource Operations
    # =========================================================================

    @abstractmethod
    async def describe(self, descriptor: ResourceDescriptor) -> dict[str, Any]:
        """Describe an existing resource.

        Returns:
            The provider's description of the resource.

        Raises:
            ResourceNotFoundError: If the resource does not exist.
            ProviderError: For any other failure.
        """

    @abstractmethod
    async def create(self, descriptor: ResourceDescriptor) -> dict[str, Any]:
        """Create a resource using ``descriptor.attributes`` as parameters.

        Raises:
            ProviderError: If creation fails.
        """

    @abstractmethod
    async def delete(self, descriptor: ResourceDescriptor) -> None:
        """Delete a resource.

        Raises:
            ResourceNotFoundError: If the resource does not exist.
            PermissionDeniedError: If the caller may not delete it.
            ProviderError: For any other failure.
        """

    # =========================================================================
    # Project & Services
    # =========================================================================

    @abstractmethod
    async def get_configured_project(self) -> Optional[str]:
        """Project the provider tooling is currently pointed at, if any."""

    @abstractmethod
    async def set_project(self, project_id: str) -> None:
        """Point the provider tooling at ``project_id``."""

    @abstractmethod
    async def list_projects(self) -> list[str]:
        """Project IDs visible to the caller."""

    @abstractmethod
    async def get_project_number(self, project_id: str) -> str:
        """Numeric project identifier used to derive default identities."""

    @abstractmethod
    async def list_enabled_services(self) -> set[str]:
        """Names of the services already enabled on the project."""

    @abstractmethod
    async def enable_services(self, services: list[str]) -> None:
        """Enable services. Enabling an enabled service is a no-op."""

    # =========================================================================
    # Identity & Access
    # =========================================================================

    @abstractmethod
    def default_runtime_identity(self, project_id: str, project_number: str) -> str:
        """Identity the deployed service runs as, in member form."""

    @abstractmethod
    async def grant_role(self, target: ResourceDescriptor, member: str, role: str) -> None:
        """Grant ``role`` on ``target`` (a secret or the project) to ``member``."""

    # =========================================================================
    # Secrets
    # =========================================================================

    @abstractmethod
    async def add_secret_version(self, secret_name: str, data: bytes) -> int:
        """Append a new version to an existing secret.

        Returns:
            The new version number (1 for the first version).

        Raises:
            ResourceNotFoundError: If the secret does not exist.
        """

    # =========================================================================
    # Images
    # =========================================================================

    @abstractmethod
    def image_reference(self, region: str, project_id: str, repository: str, image: str, tag: str) -> str:
        """Fully qualified registry reference for an image."""

    @abstractmethod
    async def build_and_push_image(self, source_image: str, target_image: str, builder_image: str) -> None:
        """Run a remote build that pulls ``source_image`` and pushes it as ``target_image``."""

    # =========================================================================
    # Service
    # =========================================================================

    @abstractmethod
    async def deploy_service(self, deployment: ServiceDeployment) -> None:
        """Create or replace the service with a new revision."""

    @abstractmethod
    async def update_service(self, name: str, region: str, env: dict[str, str]) -> None:
        """Merge ``env`` into the running service's environment (new revision)."""

    @abstractmethod
    async def get_service_url(self, name: str, region: str) -> Optional[str]:
        """Externally visible URL of the service, or None if not yet assigned."""

    @abstractmethod
    async def read_logs(self, name: str, region: str, project_id: str, limit: int) -> list[LogEntry]:
        """Most recent application log entries, newest first."""
