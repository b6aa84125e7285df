"""
Provisioner - Idempotent n8n Provisioning Pipeline
====================================================

Stands up a hosted n8n instance on Google Cloud: private networking, a
managed Postgres database, secrets, a re-published container image and a
serverless service deployment. Every step detects what already exists and
only creates what is missing, so the whole pipeline is safely re-runnable.

    network  →  database  →  secrets  →  image  →  deploy

Quick Start:
    >>> from provisioner import Provisioner
    >>> async with Provisioner() as provisioner:
    ...     run = await provisioner.run()

Or from a shell:
    $ provisioner DB_ACTION=drop_db REGION=europe-west1
"""

# =============================================================================
# Package Version
# =============================================================================
__version__ = "0.1.0"

from provisioner.facade import Provisioner

__all__ = ["Provisioner", "__version__"]
