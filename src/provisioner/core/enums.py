"""
provisioner.core.enums - Type-Safe Enumerations
=================================================

All enumeration types used throughout the provisioner. Every enum inherits
from both ``str`` and ``Enum`` so values serialize cleanly into the state file
and compare equal to their plain-string form:

    >>> ActionMode.DROP == "drop_db"
    True

Architecture Mapping:

    ┌─────────────────────────────────────────────────────────────────┐
    │  ORCHESTRATION                                                  │
    │    ActionMode:       operator policy for existing resources     │
    │    StepStatus:       step / pipeline lifecycle                  │
    ├─────────────────────────────────────────────────────────────────┤
    │  RECONCILIATION                                                 │
    │    ResourceKind:     what kind of provider resource             │
    │    ReconcileOutcome: what the reconciler did about it           │
    ├─────────────────────────────────────────────────────────────────┤
    │  SERVICE DEPLOY                                                 │
    │    ServiceStage:     CREATED → ADDRESS_KNOWN → CONFIGURED       │
    └─────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from enum import Enum


# =============================================================================
# Action Mode
# =============================================================================
# Selected once per run through DB_ACTION and applied to every step.
#
#   IGNORE  → leave existing resources untouched
#   DROP    → delete the narrow sub-resources (database + user), recreate them
#   DESTROY → delete the broad parent (the whole instance), recreate everything
#
# The values are the ones operators already type on the command line
# (DB_ACTION=drop_db, DB_ACTION=destroy_sql_instance). The short forms
# "drop" and "destroy" are accepted by ActionMode.parse().
# =============================================================================
class ActionMode(str, Enum):
    """Policy governing destructive handling of already-existing resources.

    Usage:
        >>> ActionMode.parse("destroy")
        <ActionMode.DESTROY: 'destroy_sql_instance'>
        >>> ActionMode.parse(None)
        <ActionMode.IGNORE: 'ignore'>
    """

    IGNORE = "ignore"
    DROP = "drop_db"
    DESTROY = "destroy_sql_instance"

    @classmethod
    def parse(cls, value: "str | ActionMode | None") -> "ActionMode":
        """Parse an operator-supplied mode string.

        Args:
            value: A wire value ("ignore", "drop_db", "destroy_sql_instance"),
                a short alias ("drop", "destroy"), an ActionMode, or None/"".

        Returns:
            The matching ActionMode. None and "" map to IGNORE.

        Raises:
            ValueError: If the value is not a recognized mode.
        """
        if isinstance(value, ActionMode):
            return value
        if value is None or not str(value).strip():
            return cls.IGNORE

        normalized = str(value).strip().lower()
        for mode in cls:
            if normalized == mode.value:
                return mode
        if normalized in _ACTION_MODE_ALIASES:
            return _ACTION_MODE_ALIASES[normalized]

        accepted = sorted([m.value for m in cls] + list(_ACTION_MODE_ALIASES))
        raise ValueError(
            f"Unknown action mode '{value}'. Accepted values: {', '.join(accepted)}"
        )


_ACTION_MODE_ALIASES: dict[str, ActionMode] = {
    "drop": ActionMode.DROP,
    "destroy": ActionMode.DESTROY,
}


# =============================================================================
# Resource Kind
# =============================================================================
# Every resource the pipeline owns has exactly one kind. The provider maps a
# kind to the concrete describe/create/delete calls for its platform.
# =============================================================================
class ResourceKind(str, Enum):
    """Kinds of provider-side resources managed by the pipeline."""

    PROJECT = "project"                          # role-grant target only
    NETWORK = "network"
    ADDRESS_RESERVATION = "address-reservation"  # peering range for managed services
    PEERING = "peering"                          # private service connectivity
    CONNECTOR = "connector"                      # serverless → VPC bridge
    SQL_INSTANCE = "sql-instance"
    SQL_DATABASE = "sql-database"
    SQL_USER = "sql-user"
    SECRET = "secret"
    ARTIFACT_REPO = "artifact-repo"
    IMAGE = "image"
    RUN_SERVICE = "run-service"


class ReconcileOutcome(str, Enum):
    """What ``ResourceReconciler.ensure_present`` ended up doing."""

    EXISTS = "exists"      # resource was already present, nothing created
    CREATED = "created"    # resource was absent and has been created


# =============================================================================
# Service Stage
# =============================================================================
# The deployed service only learns its public address after the first deploy,
# so it passes through an intermediate, persisted stage:
#
#   CREATED ──(read URL)──→ ADDRESS_KNOWN ──(update env)──→ CONFIGURED
#
# Persisting the stage lets an interrupted run resume with the update pass.
# =============================================================================
class ServiceStage(str, Enum):
    """Deployment stages of the serverless service."""

    CREATED = "created"
    ADDRESS_KNOWN = "address_known"
    CONFIGURED = "configured"


class StepStatus(str, Enum):
    """Lifecycle of a step and of a whole pipeline run.

    State Transitions:
        PENDING → RUNNING → COMPLETED | FAILED
        PENDING → SKIPPED (step module not available)
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
