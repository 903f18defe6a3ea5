# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_coderun

"""Per-language execution profiles.

The set of languages is closed. Adding one means adding a ``Language`` member
and a branch in ``_profile_for``; type checkers flag a missing branch through
``assert_never``.
"""

from enum import Enum
from typing import assert_never

from pydantic import BaseModel, ConfigDict

from coreason_coderun.exceptions import UnsupportedLanguageError


class Language(str, Enum):
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    PYTHON = "python"
    JAVA = "java"
    GO = "go"
    RUST = "rust"
    CPP = "cpp"


class ExecutionProfile(BaseModel):
    """How to run one language inside a container.

    Attributes:
        language: The language this profile serves.
        image: Container image reference.
        command: Argument list; the in-container source filename is appended to it.
        source_filename: Name the source file is mounted under in the container.
        file_extension: Extension used for the staged file on the host.
    """

    model_config = ConfigDict(frozen=True)

    language: Language
    image: str
    command: tuple[str, ...]
    source_filename: str
    file_extension: str

    def argv(self) -> list[str]:
        """Full container command for this profile."""
        return [*self.command, self.source_filename]


def _compile_and_run(compiler: str) -> tuple[str, ...]:
    # The workspace mount is read-only, so binaries go to /tmp. $0 is the source file.
    return ("sh", "-c", f'{compiler} -o /tmp/main "$0" && /tmp/main')


def _profile_for(language: Language) -> ExecutionProfile:
    match language:
        case Language.JAVASCRIPT:
            return ExecutionProfile(
                language=language,
                image="node:18-alpine",
                command=("node",),
                source_filename="index.js",
                file_extension="js",
            )
        case Language.TYPESCRIPT:
            return ExecutionProfile(
                language=language,
                image="denoland/deno:alpine",
                command=("deno", "run", "--quiet"),
                source_filename="index.ts",
                file_extension="ts",
            )
        case Language.PYTHON:
            return ExecutionProfile(
                language=language,
                image="python:3.11-alpine",
                command=("python",),
                source_filename="main.py",
                file_extension="py",
            )
        case Language.JAVA:
            return ExecutionProfile(
                language=language,
                image="eclipse-temurin:17-jdk-alpine",
                command=("java",),
                source_filename="Main.java",
                file_extension="java",
            )
        case Language.GO:
            return ExecutionProfile(
                language=language,
                image="golang:1.21-alpine",
                command=("go", "run"),
                source_filename="main.go",
                file_extension="go",
            )
        case Language.RUST:
            return ExecutionProfile(
                language=language,
                image="rust:1.75-alpine",
                command=_compile_and_run("rustc"),
                source_filename="main.rs",
                file_extension="rs",
            )
        case Language.CPP:
            return ExecutionProfile(
                language=language,
                image="gcc:12",
                command=_compile_and_run("g++"),
                source_filename="main.cpp",
                file_extension="cpp",
            )
        case _:
            assert_never(language)


PROFILES: dict[Language, ExecutionProfile] = {language: _profile_for(language) for language in Language}


def supported_languages() -> list[str]:
    """Language identifiers accepted by ``lookup``."""
    return [language.value for language in Language]


def lookup(language: Language | str) -> ExecutionProfile:
    """Resolve the execution profile for a language identifier.

    Args:
        language: A ``Language`` member or its string value (case-sensitive).

    Returns:
        ExecutionProfile: The profile for the language.

    Raises:
        UnsupportedLanguageError: If the identifier is not a supported language.
    """
    try:
        key = Language(language)
    except ValueError as e:
        raise UnsupportedLanguageError(str(language)) from e
    return PROFILES[key]
