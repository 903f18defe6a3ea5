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
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from docker import DockerClient
from docker.errors import APIError, DockerException, NotFound
from docker.utils import socket as docker_socket
from loguru import logger

from coreason_coderun.config import RunnerConfig
from coreason_coderun.exceptions import (
    AttachError,
    ContainerCreateError,
    ContainerStartError,
    ExecutionTimeoutError,
    InspectError,
)
from coreason_coderun.models import RunOutput, StagedSource
from coreason_coderun.profiles import ExecutionProfile

READ_CHUNK = 4096


class SandboxRunner:
    """
    Runs one submission in a fresh, resource-constrained container.

    Each call to ``run`` owns exactly one container from creation to removal.
    Containers are created with ``auto_remove`` so the engine deletes them as
    soon as they exit or are killed.

    Attach-stream reads block for the whole lifetime of a program, so they run
    on a pool of their own. Create, start, kill and inspect stay on the event
    loop's default executor and are never starved by long-running programs.
    """

    def __init__(self, client: DockerClient, config: RunnerConfig | None = None):
        self.client = client
        self.config = config or RunnerConfig()
        self._readers = ThreadPoolExecutor(
            max_workers=self.config.stream_reader_threads,
            thread_name_prefix="coderun-attach",
        )

    def close(self) -> None:
        """Stop the reader pool. Reads still in flight end when their sockets close."""
        self._readers.shutdown(wait=False, cancel_futures=True)

    def _container_path(self, profile: ExecutionProfile) -> str:
        return f"{self.config.container_work_dir}/{profile.source_filename}"

    def _host_config(self, profile: ExecutionProfile, staged: StagedSource) -> dict[str, Any]:
        return self.client.api.create_host_config(
            mem_limit=self.config.memory_limit_bytes,
            cpu_quota=self.config.cpu_quota,
            cpu_period=self.config.cpu_period,
            network_mode="none",
            binds={
                str(staged.host_path): {
                    "bind": self._container_path(profile),
                    "mode": "ro",
                }
            },
            auto_remove=True,
        )

    async def run(self, profile: ExecutionProfile, staged: StagedSource) -> RunOutput:
        """
        Execute a staged source file and capture its framed output.

        Args:
            profile: The execution profile (image and command).
            staged: The staged source file to mount into the container.

        Returns:
            RunOutput: The raw attach stream and the exit code (None if unknown).

        Raises:
            ContainerCreateError: If the container cannot be created.
            AttachError: If the output stream cannot be attached.
            ContainerStartError: If the container cannot be started.
            ExecutionTimeoutError: If the program exceeds the wall-clock limit.
        """
        container_id = await self._create(profile, staged)

        # Attach before start so no early output is lost
        try:
            sock = await asyncio.to_thread(
                self.client.api.attach_socket,
                container_id,
                params={"stdout": 1, "stderr": 1, "stream": 1},
            )
        except DockerException as e:
            logger.error(f"Failed to attach to container {container_id[:12]}: {e}")
            await self._discard(container_id)
            raise AttachError(f"Failed to attach to container output: {e}") from e
        except asyncio.CancelledError:
            await asyncio.shield(self._discard(container_id))
            raise

        try:
            await self._start(container_id)
            raw_output = await self._collect(container_id, sock)
        finally:
            self._close(sock)

        exit_code = await self._exit_code(container_id)
        logger.info(f"Container {container_id[:12]} exited with code {exit_code}")
        return RunOutput(raw_output=raw_output, exit_code=exit_code)

    async def _create(self, profile: ExecutionProfile, staged: StagedSource) -> str:
        try:
            host_config = self._host_config(profile, staged)
            container = await asyncio.to_thread(
                self.client.api.create_container,
                image=profile.image,
                command=profile.argv(),
                working_dir=self.config.container_work_dir,
                host_config=host_config,
                network_disabled=True,
                stdin_open=False,
                tty=False,
            )
        except DockerException as e:
            logger.error(f"Failed to create container for {profile.language.value}: {e}")
            raise ContainerCreateError(f"Failed to create container: {e}") from e

        container_id: str = container["Id"]
        logger.debug(f"Created container {container_id[:12]} from {profile.image}")
        return container_id

    async def _start(self, container_id: str) -> None:
        try:
            await asyncio.to_thread(self.client.api.start, container_id)
        except DockerException as e:
            logger.error(f"Failed to start container {container_id[:12]}: {e}")
            await self._discard(container_id)
            raise ContainerStartError(f"Failed to start container: {e}") from e
        except asyncio.CancelledError:
            logger.warning(f"Run cancelled while starting container {container_id[:12]}. Removing it.")
            await asyncio.shield(self._discard(container_id))
            raise
        logger.debug(f"Started container {container_id[:12]}")

    async def _collect(self, container_id: str, sock: Any) -> bytes:
        timeout = self.config.execution_timeout
        loop = asyncio.get_running_loop()
        read = loop.run_in_executor(self._readers, self._read_stream, sock)
        try:
            return await asyncio.wait_for(read, timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Execution timed out ({timeout}s). Killing container {container_id[:12]}.")
            await self._kill(container_id)
            raise ExecutionTimeoutError(timeout) from e
        except asyncio.CancelledError:
            logger.warning(f"Run cancelled. Killing container {container_id[:12]}.")
            await asyncio.shield(self._kill(container_id))
            raise

    def _read_stream(self, sock: Any) -> bytes:
        """Read the attach socket until EOF. Runs on the reader pool."""
        chunks: list[bytes] = []
        while True:
            try:
                chunk = docker_socket.read(sock, READ_CHUNK)
            except (OSError, ValueError) as e:
                # The socket is closed underneath us after a timeout kill
                logger.debug(f"Attach stream closed: {e}")
                break
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)

    async def _exit_code(self, container_id: str) -> int | None:
        try:
            return await self._inspect_exit_code(container_id)
        except InspectError as e:
            logger.warning(f"Exit status of container {container_id[:12]} unavailable: {e}")
            return None

    async def _inspect_exit_code(self, container_id: str) -> int:
        try:
            info = await asyncio.to_thread(self.client.api.inspect_container, container_id)
        except DockerException as e:
            raise InspectError(f"Failed to inspect container: {e}") from e

        exit_code = (info.get("State") or {}).get("ExitCode")
        if not isinstance(exit_code, int):
            raise InspectError(f"Container state has no exit code: {info.get('State')!r}")
        return exit_code

    async def _kill(self, container_id: str) -> None:
        """Force-kill a container. A container that already exited or was removed is not an error."""
        try:
            await asyncio.to_thread(self.client.api.kill, container_id)
            logger.debug(f"Killed container {container_id[:12]}")
        except NotFound:
            logger.debug(f"Container {container_id[:12]} already removed")
        except APIError as e:
            if e.status_code == 409:
                logger.debug(f"Container {container_id[:12]} is not running")
            else:
                logger.warning(f"Error killing container {container_id[:12]}: {e}")
        except DockerException as e:
            logger.warning(f"Error killing container {container_id[:12]}: {e}")

    async def _discard(self, container_id: str) -> None:
        """Remove a container that never ran to completion."""
        try:
            await asyncio.to_thread(self.client.api.remove_container, container_id, force=True)
        except NotFound:
            pass
        except DockerException as e:
            logger.warning(f"Error removing container {container_id[:12]}: {e}")

    @staticmethod
    def _close(sock: Any) -> None:
        try:
            sock.close()
        except OSError as e:
            logger.debug(f"Error closing attach stream: {e}")
