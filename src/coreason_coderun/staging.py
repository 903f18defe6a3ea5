# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_coderun

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from uuid import uuid4

import aiofiles
import aiofiles.os
from loguru import logger

from coreason_coderun.exceptions import StageError
from coreason_coderun.models import StagedSource
from coreason_coderun.profiles import ExecutionProfile


class SourceStager:
    """Writes submissions to a shared workspace directory and removes them afterwards.

    Every staged file gets a fresh UUID name and is created exclusively, so
    concurrent requests never collide and no locking is needed.
    """

    def __init__(self, workspace_dir: Path):
        """Initializes the SourceStager.

        Args:
            workspace_dir: Host directory that holds staged files. Created on first use.
        """
        self.workspace_dir = Path(workspace_dir)

    async def stage(self, code: str, profile: ExecutionProfile) -> StagedSource:
        """Write ``code`` verbatim to a new file named with the profile's extension.

        Args:
            code: The submitted source code.
            profile: The execution profile, used for the file extension.

        Returns:
            StagedSource: Handle to the written file.

        Raises:
            StageError: If the directory or file cannot be written.
        """
        path = self.workspace_dir / f"{uuid4().hex}.{profile.file_extension}"
        try:
            await aiofiles.os.makedirs(self.workspace_dir, exist_ok=True)
            async with aiofiles.open(path, "xb") as f:
                await f.write(code.encode("utf-8"))
        except OSError as e:
            logger.error(f"Failed to stage source at {path}: {e}")
            raise StageError(f"Failed to stage source file: {e}") from e

        logger.debug(f"Staged {len(code)} chars of {profile.language.value} at {path}")
        return StagedSource(host_path=path.resolve())

    async def release(self, staged: StagedSource) -> None:
        """Delete a staged file. Safe to call repeatedly; never raises."""
        try:
            await aiofiles.os.remove(staged.host_path)
            logger.debug(f"Released staged source {staged.host_path}")
        except FileNotFoundError:
            logger.debug(f"Staged source already removed: {staged.host_path}")
        except OSError as e:
            logger.warning(f"Failed to remove staged source {staged.host_path}: {e}")

    @asynccontextmanager
    async def staged(self, code: str, profile: ExecutionProfile) -> AsyncIterator[StagedSource]:
        """Stage ``code`` for the duration of the block and release it on exit."""
        source = await self.stage(code, profile)
        try:
            yield source
        finally:
            await self.release(source)
