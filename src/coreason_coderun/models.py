# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_coderun

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from coreason_coderun.profiles import Language


class ExecutionRequest(BaseModel):
    """A single user submission.

    Attributes:
        code: The source code, written to disk verbatim.
        language: The language identifier, resolved against the profile registry.
    """

    code: str
    language: Language | str


class StagedSource(BaseModel):
    """A submission written to the shared workspace directory.

    Attributes:
        host_path: Absolute path of the file on the host.
        created_at: When the file was written.
    """

    model_config = ConfigDict(frozen=True)

    host_path: Path
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RunOutput(BaseModel):
    """Raw outcome of one sandbox run.

    Attributes:
        raw_output: The framed stdout/stderr byte stream as received from the engine.
        exit_code: The process exit code, or None if it could not be read.
    """

    model_config = ConfigDict(frozen=True)

    raw_output: bytes
    exit_code: int | None


class DemuxedOutput(BaseModel):
    """Stdout and stderr text split out of a framed stream."""

    model_config = ConfigDict(frozen=True)

    stdout: str = ""
    stderr: str = ""


class ExecutionResult(BaseModel):
    """Final verdict of one execution.

    Attributes:
        success: True only if the program exited with code 0.
        output: Captured stdout, set on success.
        error: Human-readable failure message, set on failure.
        exit_code: The program's exit code, when known.
        execution_time: Milliseconds from call start to result assembly.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    output: str | None = None
    error: str | None = None
    exit_code: int | None = None
    execution_time: int = 0

    def to_payload(self) -> dict[str, Any]:
        """Returns the wire form sent to callers: success, output, error, execution_time."""
        return self.model_dump(exclude={"exit_code"}, exclude_none=True)
