"""
Shared Test Fixtures for the Provisioner
==========================================

Reusable pytest fixtures, organized by layer:

    1. Configuration fixtures
    2. Provider fixtures (InMemoryCloudProvider)
    3. Orchestration fixtures (state store, context factory)
"""

from __future__ import annotations

import io

import pytest

from provisioner.core.config import ProvisionerConfig
from provisioner.core.enums import ActionMode
from provisioner.orchestration.context import PipelineContext
from provisioner.orchestration.state_store import InMemoryStateStore
from provisioner.providers.memory import InMemoryCloudProvider


PROJECT_ID = "acme-prod"
PROJECT_NUMBER = "123456789012"


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def config():
    """Provisioner configuration for the in-memory provider."""
    return ProvisionerConfig(provider="memory", db_action="ignore", steps="network,database,secrets,image,deploy")


# =============================================================================
# Providers
# =============================================================================

@pytest.fixture
def provider():
    """Simulated platform with one project, already selected."""
    return InMemoryCloudProvider(
        projects={PROJECT_ID: PROJECT_NUMBER},
        configured_project=PROJECT_ID,
    )


# =============================================================================
# Orchestration
# =============================================================================

@pytest.fixture
def output():
    """Captured operator output."""
    return io.StringIO()


@pytest.fixture
def make_context(config, provider, output):
    """Factory for a PipelineContext over a freshly loaded InMemoryStateStore.

    Usage:
        context = await make_context({"REGION": "europe-west1"}, action_mode=ActionMode.DROP)
    """

    async def _make(
        initial: dict[str, str] | None = None,
        environ: dict[str, str] | None = None,
        action_mode: ActionMode | None = None,
    ) -> PipelineContext:
        store = InMemoryStateStore(initial, environ={} if environ is None else environ)
        await store.load()
        return PipelineContext(
            config=config,
            store=store,
            provider=provider,
            action_mode=action_mode,
            output=output,
        )

    return _make


@pytest.fixture
def provisioned_state() -> dict[str, str]:
    """State as left behind by the network, database, secrets and image steps."""
    return {
        "PROJECT_ID": PROJECT_ID,
        "PROJECT_NUMBER": PROJECT_NUMBER,
        "REGION": "us-central1",
        "CONNECTOR_NAME": "vpc-connector",
        "SQL_INSTANCE_NAME": "n8n-postgres-instance",
        "SQL_DATABASE_NAME": "n8n_db",
        "SQL_USER_NAME": "n8n_user",
        "SQL_USER_PASSWORD": "s3cr3t-pw",
        "DB_PASSWORD_SECRET_NAME": "n8n-db-password",
        "N8N_ENCRYPTION_KEY_SECRET_NAME": "n8n-encryption-key",
        "N8N_BASIC_AUTH_SECRET_NAME": "n8n-basic-auth-password",
        "DOCKER_IMAGE_NAME": f"us-central1-docker.pkg.dev/{PROJECT_ID}/n8n-repo/n8n:1.108.2",
    }
