"""
provisioner.orchestration - Pipeline Coordination
===================================================

    - state_store:      Durable KEY='value' state (FileStateStore, InMemoryStateStore)
    - reconciler:       Idempotent create/skip/delete-then-recreate
    - context:          PipelineContext passed to every step
    - overrides:        KEY=VALUE command-line overrides
    - pipeline_engine:  Runs the steps in order, stops on first failure
"""

from provisioner.orchestration.context import PipelineContext
from provisioner.orchestration.overrides import apply_overrides, parse_overrides
from provisioner.orchestration.pipeline_engine import STEP_REGISTRY, PipelineEngine
from provisioner.orchestration.reconciler import ResourceReconciler
from provisioner.orchestration.state_store import (
    FileStateStore,
    InMemoryStateStore,
    StateStore,
    encode_entry,
    parse_entries,
)

__all__ = [
    "PipelineContext",
    "apply_overrides",
    "parse_overrides",
    "STEP_REGISTRY",
    "PipelineEngine",
    "ResourceReconciler",
    "FileStateStore",
    "InMemoryStateStore",
    "StateStore",
    "encode_entry",
    "parse_entries",
]
