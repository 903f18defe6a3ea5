# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_coderun

"""Failure taxonomy of the execution engine.

Every error raised below the coordinator derives from ``CodeExecutionError`` so
that a single ``except`` at the coordinator boundary can normalize it into an
``ExecutionResult``.
"""


class CodeExecutionError(Exception):
    """Base class for all execution engine failures."""


class UnsupportedLanguageError(CodeExecutionError):
    """The requested language has no execution profile."""

    def __init__(self, language: str):
        self.language = language
        super().__init__(f"Unsupported language: {language}")


class StageError(CodeExecutionError):
    """The submitted source could not be written to the workspace."""


class ImagePullError(CodeExecutionError):
    """The container image is missing locally and could not be pulled."""


class ContainerCreateError(CodeExecutionError):
    """The engine refused to create the sandbox container."""


class ContainerStartError(CodeExecutionError):
    """The sandbox container was created but could not be started."""


class AttachError(CodeExecutionError):
    """Attaching to the container's output stream failed."""


class ExecutionTimeoutError(CodeExecutionError):
    """The program did not finish within the wall-clock limit."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Execution timeout: exceeded {timeout:g} seconds limit")


class InspectError(CodeExecutionError):
    """The container's exit code could not be read after its output ended."""
