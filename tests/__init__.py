"""
Provisioner Test Suite
======================

Test organization mirrors the source code structure:
    tests/
    ├── test_core/          → Tests for provisioner.core (config, state, enums)
    ├── test_orchestration/ → Tests for provisioner.orchestration (store, reconciler, engine)
    ├── test_providers/     → Tests for provisioner.providers (memory, gcloud)
    ├── test_steps/         → Tests for each provisioning step
    ├── test_integration/   → End-to-end pipeline properties
    └── conftest.py         → Shared pytest fixtures

Test module names are unique across directories (no package __init__ files
below this one).

Running Tests:
    pytest                          # Run all tests
    pytest tests/test_steps/        # Run only step tests
"""
