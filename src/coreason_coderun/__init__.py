# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_coderun

"""
coreason-coderun
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .utils.logger import logger
from .config import RunnerConfig
from .demux import demux
from .exceptions import (
    AttachError,
    CodeExecutionError,
    ContainerCreateError,
    ContainerStartError,
    ExecutionTimeoutError,
    ImagePullError,
    InspectError,
    StageError,
    UnsupportedLanguageError,
)
from .executor import CodeExecutor, CodeExecutorAsync
from .images import ImageProvisioner
from .models import DemuxedOutput, ExecutionRequest, ExecutionResult, RunOutput, StagedSource
from .profiles import ExecutionProfile, Language, lookup, supported_languages
from .runner import SandboxRunner
from .session_manager import SessionBusyError, SessionManager
from .staging import SourceStager

__all__ = [
    "logger",
    "RunnerConfig",
    "demux",
    "AttachError",
    "CodeExecutionError",
    "ContainerCreateError",
    "ContainerStartError",
    "ExecutionTimeoutError",
    "ImagePullError",
    "InspectError",
    "StageError",
    "UnsupportedLanguageError",
    "CodeExecutor",
    "CodeExecutorAsync",
    "ImageProvisioner",
    "DemuxedOutput",
    "ExecutionRequest",
    "ExecutionResult",
    "RunOutput",
    "StagedSource",
    "ExecutionProfile",
    "Language",
    "lookup",
    "supported_languages",
    "SandboxRunner",
    "SessionBusyError",
    "SessionManager",
    "SourceStager",
]
