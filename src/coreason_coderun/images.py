# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_coderun

import asyncio
from typing import Any

from docker import DockerClient
from docker.errors import DockerException, ImageNotFound
from docker.utils import parse_repository_tag
from loguru import logger

from coreason_coderun.exceptions import ImagePullError


class ImageProvisioner:
    """
    Makes sure a container image is available locally, pulling it on first use.
    """

    def __init__(self, client: DockerClient, auth_config: dict[str, Any] | None = None):
        self.client = client
        self.auth_config = auth_config

    async def ensure(self, image: str) -> None:
        """
        Return once ``image`` is present locally.

        Concurrent calls for the same image may pull it twice; the engine
        stores the layers once either way.

        Raises:
            ImagePullError: If the image is missing and the pull fails.
        """
        try:
            await asyncio.to_thread(self.client.images.get, image)
            return
        except ImageNotFound:
            logger.info(f"Pulling Docker image: {image}")
        except DockerException as e:
            # Inspect failures other than 404 still warrant a pull attempt
            logger.warning(f"Failed to inspect image {image}: {e}. Attempting pull.")

        await self._pull(image)

    async def _pull(self, image: str) -> None:
        repository, tag = parse_repository_tag(image)
        try:
            # images.pull consumes the progress stream and returns when the pull completes
            await asyncio.to_thread(
                self.client.images.pull,
                repository,
                tag=tag or "latest",
                auth_config=self.auth_config,
            )
        except DockerException as e:
            logger.error(f"Failed to pull image {image}: {e}")
            raise ImagePullError(f"Failed to pull image {image}: {e}") from e
        logger.info(f"Pulled Docker image: {image}")
