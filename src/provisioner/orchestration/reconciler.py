"""
provisioner.orchestration.reconciler - Resource Reconciler
============================================================

One uniform way to bring a resource to "present", honouring the run's
ActionMode. Every step goes through here instead of writing its own
describe/create/delete dance.

    ensure_present(descriptor, mode)
        mode == DESTROY → delete(descriptor.parent or descriptor)  best effort
        exists?         → EXISTS  ("already exists, skipping")
        otherwise       → create  → CREATED

    ensure_absent_then_present(descriptor, mode)
        mode == DROP    → delete(descriptor)                       best effort
        ensure_present(descriptor, IGNORE)

Existence is always decided by a provider describe, never by local state.

Error Policy:
    describe  ResourceNotFoundError   → absent
              any other ProviderError → propagates (fatal)
    create    any ProviderError       → propagates (fatal)
    delete    ResourceNotFoundError   → info "did not exist", continue
              PermissionDeniedError   → warning, continue
              any other ProviderError → warning, continue
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

import structlog

from provisioner.core.enums import ActionMode, ReconcileOutcome
from provisioner.core.exceptions import (
    PermissionDeniedError,
    ProviderError,
    ResourceNotFoundError,
)
from provisioner.core.models import ReconcileResult, ResourceDescriptor
from provisioner.providers.base import CloudProvider


logger = structlog.get_logger()

BeforeCreateHook = Callable[[ResourceDescriptor], Awaitable[ResourceDescriptor]]
OnExistingHook = Callable[[ResourceDescriptor], Awaitable[None]]


class ResourceReconciler:
    """Idempotent create/skip/delete-then-recreate for provider resources.

    Hooks:
        before_create: Awaited only when the resource is really about to be
            created; returns the descriptor to create (typically with
            generated credentials added to its attributes).
        on_existing: Awaited when the resource already exists, before the
            caller goes on to mutate anything else.

    Example:
        >>> reconciler = ResourceReconciler(provider)
        >>> result = await reconciler.ensure_present(instance, ActionMode.DESTROY)
        >>> result.outcome
        <ReconcileOutcome.CREATED: 'created'>
    """

    def __init__(self, provider: CloudProvider) -> None:
        self._provider = provider
        self._logger = logger.bind(component="reconciler")

    @property
    def provider(self) -> CloudProvider:
        return self._provider

    async def exists(self, descriptor: ResourceDescriptor) -> bool:
        """Whether the provider can describe the resource.

        Raises:
            ProviderError: Any describe failure other than not-found.
        """
        try:
            await self._provider.describe(descriptor)
        except ResourceNotFoundError:
            return False
        return True

    async def ensure_present(
        self,
        descriptor: ResourceDescriptor,
        mode: ActionMode = ActionMode.IGNORE,
        *,
        before_create: Optional[BeforeCreateHook] = None,
        on_existing: Optional[OnExistingHook] = None,
    ) -> ReconcileResult:
        """Make sure the resource exists.

        Under DESTROY the broad parent (or the resource itself) is deleted
        first; delete failures are logged and do not stop reconciliation.

        Returns:
            ReconcileResult with outcome EXISTS or CREATED.

        Raises:
            ProviderError: If describe (other than not-found) or create fails.
        """
        deleted = False
        if mode == ActionMode.DESTROY:
            deleted = await self._best_effort_delete(descriptor.parent or descriptor)

        if await self.exists(descriptor):
            self._logger.info("resource_exists_skipping", resource=descriptor.label)
            if on_existing is not None:
                await on_existing(descriptor)
            return ReconcileResult(
                descriptor=descriptor, outcome=ReconcileOutcome.EXISTS, deleted=deleted,
            )

        to_create = descriptor
        if before_create is not None:
            to_create = await before_create(descriptor)

        self._logger.info("resource_creating", resource=descriptor.label)
        await self._provider.create(to_create)
        self._logger.info("resource_created", resource=descriptor.label)
        return ReconcileResult(
            descriptor=to_create, outcome=ReconcileOutcome.CREATED, deleted=deleted,
        )

    async def ensure_absent_then_present(
        self,
        descriptor: ResourceDescriptor,
        mode: ActionMode = ActionMode.IGNORE,
        *,
        before_create: Optional[BeforeCreateHook] = None,
        on_existing: Optional[OnExistingHook] = None,
    ) -> ReconcileResult:
        """Under DROP, delete the resource; then make sure it exists.

        Any other mode behaves like ``ensure_present(descriptor, IGNORE)``;
        the DESTROY case is handled by the caller's parent reconciliation.
        """
        deleted = False
        if mode == ActionMode.DROP:
            deleted = await self._best_effort_delete(descriptor)

        result = await self.ensure_present(
            descriptor,
            ActionMode.IGNORE,
            before_create=before_create,
            on_existing=on_existing,
        )
        if deleted:
            return result.model_copy(update={"deleted": True})
        return result

    async def _best_effort_delete(self, descriptor: ResourceDescriptor) -> bool:
        """Delete a resource, downgrading every provider failure to a log line.

        Returns:
            True if the delete succeeded.
        """
        self._logger.info("resource_deleting", resource=descriptor.label)
        try:
            await self._provider.delete(descriptor)
        except ResourceNotFoundError:
            self._logger.info("resource_did_not_exist", resource=descriptor.label)
            return False
        except PermissionDeniedError as e:
            self._logger.warning(
                "resource_delete_denied", resource=descriptor.label, error=e.message,
            )
            return False
        except ProviderError as e:
            self._logger.warning(
                "resource_delete_failed", resource=descriptor.label, error=e.message,
            )
            return False
        self._logger.info("resource_deleted", resource=descriptor.label)
        return True
