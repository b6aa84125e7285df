"""
provisioner.facade - Provisioner Top-Level Facade
===================================================

The single entry point that wires the layers together and owns their
lifecycle.

    ┌──────────────────────────────────────────────────┐
    │              Provisioner (Facade)                 │
    │                                                   │
    │  ┌─────────────────────────────────────────────┐ │
    │  │         Orchestration Layer                   │ │
    │  │  PipelineEngine, PipelineContext,             │ │
    │  │  ResourceReconciler, StateStore               │ │
    │  └─────────────────────┬───────────────────────┘ │
    │                        │                          │
    │  ┌─────────────────────▼───────────────────────┐ │
    │  │            Step Layer                         │ │
    │  │  network, database, secrets, image, deploy   │ │
    │  └─────────────────────┬───────────────────────┘ │
    │                        │                          │
    │  ┌─────────────────────▼───────────────────────┐ │
    │  │         Provider Layer                        │ │
    │  │  GcloudProvider, InMemoryCloudProvider        │ │
    │  └─────────────────────────────────────────────┘ │
    └──────────────────────────────────────────────────┘

Lifecycle:
    1. ``Provisioner(config)``  build components (no side effects)
    2. ``await initialize()``   check the runtime, load the state file ONCE
    3. ``await run()``          run the configured steps
    4. ``await shutdown()``

Usage:
    >>> async with Provisioner(load_config()) as provisioner:
    ...     run = await provisioner.run()
    >>> run.succeeded
    True
"""

from __future__ import annotations

import os
import shutil
import sys
from typing import IO, Any, MutableMapping, Optional, Sequence

import structlog

from provisioner.core.config import ProvisionerConfig
from provisioner.core.exceptions import UnsupportedContextError
from provisioner.core.state import PipelineRun
from provisioner.orchestration.context import PipelineContext
from provisioner.orchestration.pipeline_engine import PipelineEngine
from provisioner.orchestration.state_store import FileStateStore, StateStore
from provisioner.providers.base import CloudProvider
from provisioner.providers.factory import create_provider
from provisioner.providers.gcloud import GcloudProvider


logger = structlog.get_logger()

MINIMUM_PYTHON = (3, 10)


class Provisioner:
    """Top-level facade for the provisioning pipeline.

    Attributes:
        _config: Provisioner configuration.
        _store: State store (FileStateStore on ``config.state_file`` by default).
        _provider: Cloud provider (from ``config.provider`` by default).
        _engine: Pipeline engine.
        _context: Built by initialize().
    """

    def __init__(
        self,
        config: Optional[ProvisionerConfig] = None,
        *,
        store: Optional[StateStore] = None,
        provider: Optional[CloudProvider] = None,
        engine: Optional[PipelineEngine] = None,
        output: Optional[IO[str]] = None,
        environ: Optional[MutableMapping[str, str]] = None,
    ) -> None:
        """Initialize the facade.

        Args:
            config: Configuration. Defaults to ProvisionerConfig() (environment).
            store: Custom state store. Defaults to FileStateStore.
            provider: Custom provider. Defaults to create_provider(config).
            engine: Custom engine. Defaults to PipelineEngine().
            output: Operator output stream. Defaults to stdout.
            environ: Environment the default store exports to.
        """
        self._config = config or ProvisionerConfig()
        self._store = store or FileStateStore(
            self._config.state_file, environ=os.environ if environ is None else environ,
        )
        self._provider = provider or create_provider(self._config)
        self._engine = engine or PipelineEngine()
        self._output = output
        self._context: Optional[PipelineContext] = None
        self._initialized = False
        self._logger = logger.bind(component="provisioner")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config(self) -> ProvisionerConfig:
        return self._config

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def provider(self) -> CloudProvider:
        return self._provider

    @property
    def context(self) -> PipelineContext:
        self._ensure_initialized()
        assert self._context is not None
        return self._context

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # Lifecycle Management
    # =========================================================================

    async def initialize(self) -> None:
        """Check the runtime and load state. Idempotent.

        Raises:
            UnsupportedContextError: Before any side effect, if the runtime
                cannot run the pipeline.
            StateError: If the state file cannot be read or is invalid.
        """
        if self._initialized:
            self._logger.debug("provisioner_already_initialized")
            return

        self.check_runtime()
        self._logger.info("provisioner_initializing", provider=self._provider.name)
        await self._store.load()
        self._context = PipelineContext(
            config=self._config,
            store=self._store,
            provider=self._provider,
            output=self._output,
        )
        self._initialized = True
        self._logger.info("provisioner_initialized", action_mode=self._context.action_mode.value)

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        self._context = None
        self._initialized = False
        self._logger.info("provisioner_shutdown_complete")

    async def __aenter__(self) -> Provisioner:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    def check_runtime(self) -> None:
        """Refuse to run where the pipeline cannot work.

        Raises:
            UnsupportedContextError: On an old interpreter, or when the gcloud
                provider is selected and its binary is not on PATH.
        """
        if sys.version_info < MINIMUM_PYTHON:
            raise UnsupportedContextError(
                message=(
                    f"Python {MINIMUM_PYTHON[0]}.{MINIMUM_PYTHON[1]}+ is required, "
                    f"running {sys.version_info.major}.{sys.version_info.minor}"
                ),
            )
        if isinstance(self._provider, GcloudProvider) and shutil.which(self._config.gcloud_binary) is None:
            raise UnsupportedContextError(
                message=f"'{self._config.gcloud_binary}' was not found on PATH",
                hint="Install the Google Cloud SDK, or run with PROVIDER=memory for a dry run.",
            )

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def run(self, steps: Optional[Sequence[str]] = None) -> PipelineRun:
        """Run the configured steps (or ``steps``) in order.

        Raises:
            ConfigurationError: If a step name is unknown.
        """
        self._ensure_initialized()
        return await self._engine.run(self.context, steps)

    async def tail_logs(self) -> PipelineRun:
        """Print the most recent service logs."""
        return await self.run(["logs"])

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(
                "Provisioner has not been initialized. "
                "Call await provisioner.initialize() or use 'async with Provisioner() as provisioner:'"
            )

    def __repr__(self) -> str:
        return (
            f"Provisioner(provider={self._provider.name!r}, "
            f"initialized={self._initialized})"
        )
