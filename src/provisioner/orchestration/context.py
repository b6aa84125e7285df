"""
provisioner.orchestration.context - Pipeline Context
======================================================

Everything a step needs, passed explicitly instead of read from process-wide
variables:

    PipelineContext
        ├── config       ProvisionerConfig (naming conventions, knobs)
        ├── state        ProvisioningState (typed, refreshed on every save)
        ├── store        StateStore (durable KEY='value' entries)
        ├── provider     CloudProvider
        ├── reconciler   ResourceReconciler bound to the provider
        ├── action_mode  the run's global ActionMode
        └── output       operator-facing stream (one-time credential display)

The typed state is built from the store's environment once the store is
loaded, so command-line overrides and pre-set variables take precedence over
the file. From then on, steps read ``context.state`` and write through
``context.save()``; nothing else touches the store.
"""

from __future__ import annotations

import sys
from typing import IO, Optional

import structlog

from provisioner.core.config import ProvisionerConfig
from provisioner.core.enums import ActionMode
from provisioner.core.exceptions import PreconditionError, StateError
from provisioner.core.state import ProvisioningState
from provisioner.orchestration.reconciler import ResourceReconciler
from provisioner.orchestration.state_store import StateStore
from provisioner.providers.base import CloudProvider


logger = structlog.get_logger()


class PipelineContext:
    """Shared, explicit context for one pipeline run.

    Example:
        >>> context = PipelineContext(config, store, provider)
        >>> await context.save("REGION", "europe-west1")
        >>> context.state.region
        'europe-west1'
    """

    def __init__(
        self,
        config: ProvisionerConfig,
        store: StateStore,
        provider: CloudProvider,
        reconciler: Optional[ResourceReconciler] = None,
        action_mode: Optional[ActionMode] = None,
        output: Optional[IO[str]] = None,
    ) -> None:
        """Initialize the context.

        Args:
            config: Provisioner configuration.
            store: A LOADED state store.
            provider: Cloud provider used by every step.
            reconciler: Defaults to a ResourceReconciler over ``provider``.
            action_mode: Defaults to ``config.db_action``.
            output: Operator output stream. Defaults to stdout.

        Raises:
            StateError: If the store is not loaded or holds invalid values.
        """
        if not store.loaded:
            raise StateError(
                message="PipelineContext requires a loaded state store",
                error_code="STATE_NOT_LOADED",
            )
        self.config = config
        self.store = store
        self.provider = provider
        self.reconciler = reconciler or ResourceReconciler(provider)
        self.action_mode = action_mode if action_mode is not None else config.db_action
        self._output = output or sys.stdout
        self._state = ProvisioningState.from_mapping(store.environ)
        self._written_keys: list[str] = []
        self._emitted: set[str] = set()
        self._logger = logger.bind(component="pipeline_context")

    @property
    def state(self) -> ProvisioningState:
        return self._state

    @property
    def written_keys(self) -> list[str]:
        """State keys written during this run, in write order."""
        return list(self._written_keys)

    async def save(self, key: str, value: str) -> None:
        """Persist one state entry and refresh the typed state.

        The value is validated before anything is written.

        Raises:
            StateError: If the key is unknown, the value invalid, or the
                write fails.
        """
        updated = self._state.with_entry(key, value)
        await self.store.put(key, value)
        self._state = updated
        self._written_keys.append(key)
        self._logger.debug("state_saved", key=key)

    def require(self, field: str, hint: Optional[str] = None) -> str:
        """Return a state value that a step cannot proceed without.

        Args:
            field: ProvisioningState field name (e.g. "sql_user_password").
            hint: Remediation shown to the operator when missing.

        Raises:
            PreconditionError: If the value is absent.
        """
        value = getattr(self._state, field)
        if value is None:
            key = ProvisioningState.model_fields[field].alias or field.upper()
            raise PreconditionError(
                message=f"{key} is not set",
                key=key,
                hint=hint or f"Add {key}='...' to {self.config.state_file} and re-run.",
            )
        return value.value if hasattr(value, "value") else str(value)

    def emit(self, message: str) -> None:
        """Write one line to the operator output."""
        self._output.write(message + "\n")
        self._output.flush()

    def emit_credential(self, label: str, value: str) -> None:
        """Display a generated credential to the operator, at most once per label."""
        if label in self._emitted:
            return
        self._emitted.add(label)
        self.emit(f"{label}: {value}")
