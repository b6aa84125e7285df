"""
Dry Run Example: Full Pipeline Against the In-Memory Provider
===============================================================

Runs every step against InMemoryCloudProvider and an in-memory state store,
then runs it again to show that the second pass creates nothing.

Usage:
    python examples/dry_run.py
"""

from __future__ import annotations

import asyncio

from provisioner.core.config import ProvisionerConfig
from provisioner.core.logging import configure_logging
from provisioner.facade import Provisioner
from provisioner.orchestration.state_store import InMemoryStateStore
from provisioner.providers.memory import InMemoryCloudProvider


async def main() -> None:
    """Provision twice and compare the number of create calls."""
    configure_logging("WARNING")
    config = ProvisionerConfig(provider="memory")
    provider = InMemoryCloudProvider(projects={"demo-project": "123456789012"})
    backing: dict[str, str] = {}

    for attempt in (1, 2):
        store = InMemoryStateStore(backing, environ={})
        provider.reset_history()
        async with Provisioner(config, store=store, provider=provider) as provisioner:
            run = await provisioner.run()
        backing = store.backing

        print(f"Run {attempt}: {run.status.value}")
        for result in run.step_results:
            print(f"  {result.step_name:<10} created={result.created_count} keys={result.state_keys}")
        print(f"  create calls: {len(provider.calls('create'))}")

    print(f"Service URL: {backing.get('N8N_URL')}")


if __name__ == "__main__":
    asyncio.run(main())
