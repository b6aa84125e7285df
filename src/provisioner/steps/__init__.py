"""
provisioner.steps - Provisioning Steps
========================================

One module per step, loaded lazily by the PipelineEngine:

    network   NetworkSetupStep    project, services, private connectivity
    database  DatabaseSetupStep   Postgres instance, database, user
    secrets   SecretSetupStep     credential and encryption key secrets
    image     ImagePublishStep    registry repository, image publication
    deploy    ServiceDeployStep   serverless service, two-pass configuration
    logs      LogTailStep         recent service logs (not run by default)

The step modules are not imported here; a missing module only skips its
own step.
"""

from provisioner.steps.base import BaseStep

__all__ = ["BaseStep"]
