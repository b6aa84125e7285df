"""
provisioner.providers - Cloud Platform Integrations
=====================================================

Steps talk to the cloud only through the CloudProvider interface.

Available Providers:
    - CloudProvider:          Abstract base class defining the platform contract.
    - GcloudProvider:         Drives Google Cloud through the gcloud CLI.
    - InMemoryCloudProvider:  Simulated platform for tests and dry runs.

Usage:
    >>> from provisioner.providers import create_provider
    >>> provider = create_provider(config)
    >>> await provider.describe(descriptor)
"""

from provisioner.providers.base import CloudProvider
from provisioner.providers.factory import create_provider
from provisioner.providers.gcloud import GcloudProvider
from provisioner.providers.memory import InMemoryCloudProvider

__all__ = [
    "CloudProvider",
    "GcloudProvider",
    "InMemoryCloudProvider",
    "create_provider",
]
