"""Re-publish the upstream application image into the regional registry.

The build runs remotely (pull, tag, push), so no local container runtime is
needed.
"""

from __future__ import annotations

from provisioner.core.enums import ResourceKind
from provisioner.core.models import ResourceDescriptor
from provisioner.steps.base import BaseStep


class ImagePublishStep(BaseStep):
    """Artifact repository and image publication."""

    name = "image"
    description = "Publish the application image to the regional registry"

    async def _execute(self) -> None:
        image_config = self.context.config.image
        project_id = self.context.require("project_id", hint="Run the network step first.")
        region = await self.ensure_region()

        repository = ResourceDescriptor(
            kind=ResourceKind.ARTIFACT_REPO,
            name=image_config.repository,
            scope=region,
            attributes={"description": f"Docker repository for {image_config.image_name} images"},
        )
        await self.ensure_present(repository)

        target = self.context.provider.image_reference(
            region, project_id, image_config.repository, image_config.image_name, image_config.upstream_tag,
        )
        self._logger.info("image_publishing", source=image_config.upstream_image, target=target)
        await self.context.provider.build_and_push_image(
            image_config.upstream_image, target, image_config.builder_image,
        )
        await self.context.save("DOCKER_IMAGE_NAME", target)
