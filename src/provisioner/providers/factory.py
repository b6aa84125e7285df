"""
provisioner.providers.factory - Cloud Provider Factory
========================================================

Maps the configured provider name to a concrete CloudProvider.

Usage:
    >>> from provisioner.providers import create_provider
    >>> provider = create_provider(ProvisionerConfig(provider="memory"))
    >>> provider.name
    'memory'
"""

from __future__ import annotations

from provisioner.core.config import ProvisionerConfig
from provisioner.core.exceptions import ConfigurationError
from provisioner.providers.base import CloudProvider


def create_provider(config: ProvisionerConfig) -> CloudProvider:
    """Create a cloud provider instance based on configuration.

        - "gcloud" → GcloudProvider (drives the gcloud CLI)
        - "memory" → InMemoryCloudProvider (simulated platform, dry runs)

    Args:
        config: Provisioner configuration.

    Returns:
        A ready-to-use CloudProvider.

    Raises:
        ConfigurationError: If the provider name is not recognized.
    """
    provider_name = config.provider.lower()

    if provider_name == "gcloud":
        from provisioner.providers.gcloud import GcloudProvider
        return GcloudProvider(binary=config.gcloud_binary)

    if provider_name == "memory":
        from provisioner.providers.memory import InMemoryCloudProvider
        return InMemoryCloudProvider(
            projects={config.fallback_project: "000000000000"} if config.fallback_project else None,
            configured_project=config.fallback_project,
        )

    raise ConfigurationError(
        message=f"Unknown provider: '{provider_name}'",
        hint="Set PROVIDER to 'gcloud' or 'memory'.",
    )
