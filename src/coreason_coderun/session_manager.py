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
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from coreason_coderun.config import RunnerConfig
from coreason_coderun.executor import CodeExecutorAsync
from coreason_coderun.models import ExecutionRequest, ExecutionResult
from coreason_coderun.profiles import Language

EXECUTION_STARTED = "execution-started"
EXECUTION_RESULT = "execution-result"

Notifier = Callable[[str, dict[str, Any]], Awaitable[None]]


class SessionBusyError(RuntimeError):
    """A run is already in flight for this session."""


@dataclass
class CursorPosition:
    line: int
    column: int


@dataclass
class PadSession:
    session_id: str
    pad_id: str
    username: str
    last_seen: float
    cursor: CursorPosition | None = None
    running: bool = False


class SessionManager:
    """Keyed store of connected collaborators (session id -> PadSession).

    All reads and writes of the store go through one asyncio.Lock. Code runs
    happen outside the lock so a long execution never blocks other sessions.
    The first join starts a background reaper that drops idle sessions every
    ``session_reaper_interval`` seconds; ``shutdown()`` stops it.
    """

    def __init__(self, executor: CodeExecutorAsync | None = None, config: RunnerConfig | None = None):
        """Initializes the SessionManager.

        Args:
            executor: The execution coordinator shared by all sessions.
            config: Optional configuration object. If not provided, defaults are used.
        """
        self.config = config or RunnerConfig()
        self.executor = executor or CodeExecutorAsync(self.config)
        self.sessions: dict[str, PadSession] = {}
        self._lock = asyncio.Lock()
        self._reaper_task: asyncio.Task[None] | None = None

    async def join(self, session_id: str, pad_id: str, username: str) -> list[PadSession]:
        """Register a session on a pad.

        Rejoining moves the session to the new pad.

        Returns:
            list[PadSession]: Everyone on the pad, including the new session.

        Raises:
            ValueError: If any identifier is empty.
        """
        if not session_id or not pad_id or not username:
            raise ValueError("session_id, pad_id and username are required")

        await self._start_reaper_if_needed()
        async with self._lock:
            self.sessions[session_id] = PadSession(
                session_id=session_id,
                pad_id=pad_id,
                username=username,
                last_seen=time.time(),
            )
            logger.info(f"User {username} joined pad {pad_id}", session_id=session_id)
            return self._members(pad_id)

    async def leave(self, session_id: str) -> PadSession | None:
        """Forget a session. Returns the removed session, or None if it was unknown."""
        async with self._lock:
            session = self.sessions.pop(session_id, None)
        if session:
            logger.info(f"User {session.username} left pad {session.pad_id}", session_id=session_id)
        return session

    async def update_cursor(self, session_id: str, line: int, column: int) -> PadSession:
        async with self._lock:
            session = self._get(session_id)
            session.cursor = CursorPosition(line=line, column=column)
            session.last_seen = time.time()
            return session

    async def members(self, pad_id: str) -> list[PadSession]:
        async with self._lock:
            return self._members(pad_id)

    async def run(
        self,
        session_id: str,
        pad_id: str,
        code: str,
        language: Language | str,
        notify: Notifier,
    ) -> ExecutionResult:
        """Execute code on behalf of a session and report progress through ``notify``.

        Sends ``execution-started`` immediately, then ``execution-result`` with
        the call-contract payload once the run settles.

        Raises:
            KeyError: If the session is unknown.
            PermissionError: If the session is not on ``pad_id``.
            SessionBusyError: If the session already has a run in flight.
        """
        async with self._lock:
            session = self._get(session_id)
            if session.pad_id != pad_id:
                logger.warning(f"Session {session_id} tried to run code on pad {pad_id} it has not joined")
                raise PermissionError("Session has not joined this pad")
            if session.running:
                raise SessionBusyError(f"Session {session_id} already has a run in progress")
            session.running = True
            session.last_seen = time.time()

        try:
            await notify(EXECUTION_STARTED, {})
            result = await self.executor.submit(ExecutionRequest(code=code, language=language))
            await notify(EXECUTION_RESULT, result.to_payload())
            return result
        finally:
            async with self._lock:
                session.running = False

    async def reap_idle(self, idle_timeout: float | None = None) -> list[str]:
        """Drop sessions idle for longer than ``idle_timeout`` seconds.

        Sessions with a run in flight are kept.

        Returns:
            list[str]: The removed session ids.
        """
        limit = self.config.session_idle_timeout if idle_timeout is None else idle_timeout
        now = time.time()
        async with self._lock:
            expired = [
                sid
                for sid, session in self.sessions.items()
                if not session.running and now - session.last_seen > limit
            ]
            for sid in expired:
                del self.sessions[sid]

        for sid in expired:
            logger.info(f"Session {sid} expired. Removed.")
        return expired

    async def _start_reaper_if_needed(self) -> None:
        """Start the background reaper task if it is not already running."""
        if self._reaper_task is None or self._reaper_task.done():
            self._reaper_task = asyncio.create_task(self._reaper_loop())

    async def _reaper_loop(self) -> None:
        """Periodically drop sessions idle for longer than ``session_idle_timeout``."""
        logger.info("Session reaper started")
        try:
            while True:
                await asyncio.sleep(self.config.session_reaper_interval)
                await self.reap_idle()
        except asyncio.CancelledError:
            logger.info("Session reaper cancelled")
        except Exception as e:
            logger.error(f"Session reaper crashed: {e}")

    async def shutdown(self) -> None:
        """Stop the reaper and forget every session.

        Runs already in flight are left to settle on their own.
        """
        if self._reaper_task and not self._reaper_task.done():
            self._reaper_task.cancel()
            try:
                await self._reaper_task
            except asyncio.CancelledError:
                pass
        self._reaper_task = None

        async with self._lock:
            count = len(self.sessions)
            self.sessions.clear()
        logger.info(f"Shutting down SessionManager. Dropped {count} sessions.")

    def _get(self, session_id: str) -> PadSession:
        try:
            return self.sessions[session_id]
        except KeyError:
            raise KeyError(f"Unknown session: {session_id}") from None

    def _members(self, pad_id: str) -> list[PadSession]:
        return [s for s in self.sessions.values() if s.pad_id == pad_id]
