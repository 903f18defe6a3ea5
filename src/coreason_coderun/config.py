# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_coderun

from pathlib import Path
from typing import Any

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024


class RunnerConfig(BaseSettings):
    """
    Configuration for the code execution engine.
    """

    workspace_dir: Path = Path("/tmp/code-execution")
    container_work_dir: str = "/workspace"

    execution_timeout: float = 10.0
    memory_limit_bytes: int = 128 * MIB
    # 0.5 core
    cpu_quota: int = 50_000
    cpu_period: int = 100_000

    # None means docker.from_env()
    docker_base_url: str | None = None

    # Private registry credentials, used only when pulling missing images
    registry_username: str | None = None
    registry_password: SecretStr | None = None

    # Threads reserved for blocking attach-stream reads, one per running container.
    # Control calls (create, start, kill, inspect) never run on this pool.
    stream_reader_threads: int = 64

    # Session layer: sessions idle longer than this are dropped by the reaper
    session_idle_timeout: float = 300.0
    session_reaper_interval: float = 60.0

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="COREASON_CODERUN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("execution_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("execution_timeout must be positive")
        return value

    @field_validator("session_idle_timeout", "session_reaper_interval")
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("session intervals must be positive")
        return value

    @field_validator("memory_limit_bytes", "cpu_quota", "cpu_period", "stream_reader_threads")
    @classmethod
    def _positive_limit(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("resource limits must be positive")
        return value

    @field_validator("container_work_dir")
    @classmethod
    def _absolute_work_dir(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("container_work_dir must be an absolute path")
        return value.rstrip("/") or "/"

    @property
    def registry_auth(self) -> dict[str, Any] | None:
        """docker-py ``auth_config`` for image pulls, if credentials are set."""
        if not self.registry_username or self.registry_password is None:
            return None
        return {
            "username": self.registry_username,
            "password": self.registry_password.get_secret_value(),
        }
