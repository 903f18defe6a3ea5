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
import time

import anyio
import docker
from docker import DockerClient
from loguru import logger

from coreason_coderun.config import RunnerConfig
from coreason_coderun.demux import demux
from coreason_coderun.exceptions import CodeExecutionError, UnsupportedLanguageError
from coreason_coderun.images import ImageProvisioner
from coreason_coderun.models import DemuxedOutput, ExecutionRequest, ExecutionResult
from coreason_coderun.profiles import Language, lookup
from coreason_coderun.runner import SandboxRunner
from coreason_coderun.staging import SourceStager

EXIT_STATUS_UNKNOWN = "Exit status unavailable: the container was removed before it could be inspected"


def _elapsed_ms(start: float) -> int:
    return max(1, round((time.monotonic() - start) * 1000))


class CodeExecutorAsync:
    """Async-native execution coordinator (The Core).

    Runs each submission through stage, provision, run and demux, and turns
    every failure into an ``ExecutionResult``. One instance serves any number
    of concurrent ``execute`` calls.
    """

    def __init__(
        self,
        config: RunnerConfig | None = None,
        client: DockerClient | None = None,
    ):
        """Initializes the CodeExecutorAsync service.

        Args:
            config: Configuration for the engine.
            client: Optional docker client. When omitted, one is created on first
                use from ``config.docker_base_url`` or the environment.
        """
        self.config = config or RunnerConfig()
        self._internal_client = client is None
        self._client = client
        self._client_lock = asyncio.Lock()
        self.stager = SourceStager(self.config.workspace_dir)
        self._provisioner: ImageProvisioner | None = None
        self._runner: SandboxRunner | None = None

    async def __aenter__(self) -> "CodeExecutorAsync":
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Closes the docker client if this instance created it."""
        await self.aclose()

    async def aclose(self) -> None:
        if self._runner is not None:
            self._runner.close()
            self._runner = None
            self._provisioner = None
        if self._internal_client and self._client is not None:
            await asyncio.to_thread(self._client.close)
            self._client = None

    def _connect(self) -> DockerClient:
        if self.config.docker_base_url:
            return docker.DockerClient(base_url=self.config.docker_base_url)
        return docker.from_env()

    async def _get_client(self) -> DockerClient:
        if self._client is None:
            async with self._client_lock:
                if self._client is None:
                    self._client = await asyncio.to_thread(self._connect)
        return self._client

    async def _engine(self) -> tuple[ImageProvisioner, SandboxRunner]:
        client = await self._get_client()
        if self._provisioner is None or self._runner is None:
            self._provisioner = ImageProvisioner(client, auth_config=self.config.registry_auth)
            self._runner = SandboxRunner(client, self.config)
        return self._provisioner, self._runner

    async def execute(self, code: str, language: Language | str) -> ExecutionResult:
        """Executes code in a fresh sandbox.

        Never raises: every failure is reported as ``success=False`` with a
        message and the time spent before the failure.

        Args:
            code: The source code to execute.
            language: A supported language identifier.

        Returns:
            ExecutionResult: The verdict, output or error, and elapsed milliseconds.
        """
        start = time.monotonic()
        try:
            profile = lookup(language)
        except UnsupportedLanguageError as e:
            logger.warning(str(e))
            return ExecutionResult(success=False, error=str(e), execution_time=0)

        logger.info("Executing code", language=profile.language.value, code_length=len(code))
        try:
            async with self.stager.staged(code, profile) as staged:
                provisioner, runner = await self._engine()
                await provisioner.ensure(profile.image)
                run_output = await runner.run(profile, staged)
                output = demux(run_output.raw_output)
        except CodeExecutionError as e:
            logger.warning(f"Execution failed ({profile.language.value}): {e}")
            return ExecutionResult(success=False, error=str(e), execution_time=_elapsed_ms(start))
        except Exception as e:
            logger.exception(f"Code execution error ({profile.language.value})")
            return ExecutionResult(
                success=False,
                error=str(e) or "Unknown execution error",
                execution_time=_elapsed_ms(start),
            )

        return self._verdict(output, run_output.exit_code, start)

    async def submit(self, request: ExecutionRequest) -> ExecutionResult:
        """Executes an ``ExecutionRequest``. See ``execute``."""
        return await self.execute(request.code, request.language)

    @staticmethod
    def _verdict(output: DemuxedOutput, exit_code: int | None, start: float) -> ExecutionResult:
        stdout = output.stdout.strip()
        stderr = output.stderr.strip()

        if exit_code == 0:
            return ExecutionResult(success=True, output=stdout, exit_code=0, execution_time=_elapsed_ms(start))

        if exit_code is None:
            error = stderr or stdout or EXIT_STATUS_UNKNOWN
        else:
            error = stderr or stdout or f"Process exited with code {exit_code}"
        return ExecutionResult(success=False, error=error, exit_code=exit_code, execution_time=_elapsed_ms(start))

    async def health(self) -> bool:
        """Returns True if the container engine answers a ping."""
        try:
            client = await self._get_client()
            return bool(await asyncio.to_thread(client.ping))
        except Exception as e:
            logger.error(f"Docker is not available: {e}")
            return False


class CodeExecutor:
    """Sync Facade for CodeExecutorAsync (The Facade).

    Wraps CodeExecutorAsync and executes methods via anyio.run.
    """

    def __init__(
        self,
        config: RunnerConfig | None = None,
        client: DockerClient | None = None,
    ):
        self._async = CodeExecutorAsync(config, client)

    def __enter__(self) -> "CodeExecutor":
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    def close(self) -> None:
        anyio.run(self._async.aclose)

    def execute(self, code: str, language: Language | str) -> ExecutionResult:
        """Executes code in a fresh sandbox synchronously.

        Args:
            code: The source code to execute.
            language: A supported language identifier.

        Returns:
            ExecutionResult: The verdict of the execution.
        """
        return anyio.run(self._async.execute, code, language)

    def health(self) -> bool:
        return anyio.run(self._async.health)
