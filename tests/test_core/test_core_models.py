"""Tests for provisioner.core.models and provisioner.core.credentials."""

import base64

import pytest

from provisioner.core.credentials import generate_credential
from provisioner.core.enums import ReconcileOutcome, ResourceKind, StepStatus
from provisioner.core.models import (
    ReconcileResult,
    ResourceDescriptor,
    SecretRef,
    StepResult,
)


# =============================================================================
# Test: ResourceDescriptor
# =============================================================================
class TestResourceDescriptor:
    """Identity, labels and attribute handling."""

    def test_label_without_scope(self) -> None:
        secret = ResourceDescriptor(kind=ResourceKind.SECRET, name="n8n-db-password")
        assert secret.label == "secret/n8n-db-password"

    def test_label_with_scope(self) -> None:
        db = ResourceDescriptor(kind=ResourceKind.SQL_DATABASE, name="app", scope="pg")
        assert db.label == "sql-database/pg/app"
        assert db.key == ("sql-database", "pg", "app")

    def test_label_excludes_attributes(self) -> None:
        user = ResourceDescriptor(
            kind=ResourceKind.SQL_USER, name="u", scope="pg", attributes={"password": "hunter2"},
        )
        assert "hunter2" not in user.label

    def test_with_attributes_merges_and_copies(self) -> None:
        original = ResourceDescriptor(kind=ResourceKind.SQL_INSTANCE, name="pg", attributes={"tier": "a"})
        updated = original.with_attributes(root_password="pw")
        assert updated.attributes == {"tier": "a", "root_password": "pw"}
        assert original.attributes == {"tier": "a"}

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            ResourceDescriptor(kind=ResourceKind.SECRET, name="")


# =============================================================================
# Test: Results
# =============================================================================
class TestResults:
    def test_reconcile_result_created(self) -> None:
        descriptor = ResourceDescriptor(kind=ResourceKind.SECRET, name="s")
        assert ReconcileResult(descriptor=descriptor, outcome=ReconcileOutcome.CREATED).created
        assert not ReconcileResult(descriptor=descriptor, outcome=ReconcileOutcome.EXISTS).created

    def test_step_result_created_count(self) -> None:
        descriptor = ResourceDescriptor(kind=ResourceKind.SECRET, name="s")
        result = StepResult(
            step_name="secrets",
            status=StepStatus.COMPLETED,
            resources=[
                ReconcileResult(descriptor=descriptor, outcome=ReconcileOutcome.CREATED),
                ReconcileResult(descriptor=descriptor, outcome=ReconcileOutcome.EXISTS),
            ],
        )
        assert result.created_count == 1

    def test_secret_ref_str(self) -> None:
        assert str(SecretRef(secret="n8n-db-password")) == "n8n-db-password:latest"


# =============================================================================
# Test: Credentials
# =============================================================================
class TestGenerateCredential:
    def test_length_matches_base64_of_bytes(self) -> None:
        assert len(generate_credential(12)) == 16
        assert len(generate_credential(32)) == 44

    def test_decodes_to_requested_bytes(self) -> None:
        assert len(base64.b64decode(generate_credential(24))) == 24

    def test_values_differ(self) -> None:
        assert generate_credential(16) != generate_credential(16)

    def test_rejects_non_positive(self) -> None:
        with pytest.raises(ValueError):
            generate_credential(0)
