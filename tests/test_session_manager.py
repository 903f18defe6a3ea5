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
from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio

from coreason_coderun.config import RunnerConfig
from coreason_coderun.models import ExecutionRequest, ExecutionResult
from coreason_coderun.session_manager import (
    EXECUTION_RESULT,
    EXECUTION_STARTED,
    SessionBusyError,
    SessionManager,
)


@pytest.fixture
def mock_executor() -> Any:
    executor = MagicMock()
    executor.submit = AsyncMock(return_value=ExecutionResult(success=True, output="hi", exit_code=0, execution_time=12))
    return executor


@pytest_asyncio.fixture
async def manager(mock_executor: Any) -> AsyncGenerator[SessionManager, None]:
    manager = SessionManager(executor=mock_executor)
    yield manager
    await manager.shutdown()


@pytest.mark.asyncio
async def test_join_and_members(manager: SessionManager) -> None:
    await manager.join("s1", "pad-a", "ada")
    members = await manager.join("s2", "pad-a", "grace")
    await manager.join("s3", "pad-b", "linus")

    assert [m.username for m in members] == ["ada", "grace"]
    assert [m.session_id for m in await manager.members("pad-b")] == ["s3"]


@pytest.mark.asyncio
async def test_join_requires_identifiers(manager: SessionManager) -> None:
    with pytest.raises(ValueError, match="required"):
        await manager.join("", "pad-a", "ada")


@pytest.mark.asyncio
async def test_rejoin_moves_session(manager: SessionManager) -> None:
    await manager.join("s1", "pad-a", "ada")
    await manager.join("s1", "pad-b", "ada")

    assert await manager.members("pad-a") == []
    assert len(await manager.members("pad-b")) == 1


@pytest.mark.asyncio
async def test_leave(manager: SessionManager) -> None:
    await manager.join("s1", "pad-a", "ada")

    left = await manager.leave("s1")

    assert left is not None and left.username == "ada"
    assert await manager.leave("s1") is None
    assert manager.sessions == {}


@pytest.mark.asyncio
async def test_update_cursor(manager: SessionManager) -> None:
    await manager.join("s1", "pad-a", "ada")

    session = await manager.update_cursor("s1", line=3, column=14)

    assert session.cursor is not None
    assert (session.cursor.line, session.cursor.column) == (3, 14)
    with pytest.raises(KeyError, match="Unknown session"):
        await manager.update_cursor("ghost", 1, 1)


@pytest.mark.asyncio
async def test_run_notifies_started_then_result(manager: SessionManager, mock_executor: Any) -> None:
    await manager.join("s1", "pad-a", "ada")
    notify = AsyncMock()

    result = await manager.run("s1", "pad-a", "print('hi')", "python", notify)

    assert result.output == "hi"
    mock_executor.submit.assert_awaited_once_with(ExecutionRequest(code="print('hi')", language="python"))
    assert [c.args for c in notify.await_args_list] == [
        (EXECUTION_STARTED, {}),
        (EXECUTION_RESULT, {"success": True, "output": "hi", "execution_time": 12}),
    ]
    assert manager.sessions["s1"].running is False


@pytest.mark.asyncio
async def test_run_requires_pad_membership(manager: SessionManager, mock_executor: Any) -> None:
    await manager.join("s1", "pad-a", "ada")

    with pytest.raises(PermissionError):
        await manager.run("s1", "pad-b", "print(1)", "python", AsyncMock())
    with pytest.raises(KeyError):
        await manager.run("ghost", "pad-a", "print(1)", "python", AsyncMock())

    mock_executor.submit.assert_not_awaited()


@pytest.mark.asyncio
async def test_second_concurrent_run_is_rejected(manager: SessionManager, mock_executor: Any) -> None:
    await manager.join("s1", "pad-a", "ada")
    release = asyncio.Event()

    async def slow_submit(request: ExecutionRequest) -> ExecutionResult:
        await release.wait()
        return ExecutionResult(success=True, output="done", execution_time=5)

    mock_executor.submit.side_effect = slow_submit
    first = asyncio.create_task(manager.run("s1", "pad-a", "x", "python", AsyncMock()))
    while not manager.sessions["s1"].running:
        await asyncio.sleep(0)

    with pytest.raises(SessionBusyError):
        await manager.run("s1", "pad-a", "y", "python", AsyncMock())

    release.set()
    assert (await first).output == "done"

    # Free again once the first run settles
    await manager.run("s1", "pad-a", "z", "python", AsyncMock())


@pytest.mark.asyncio
async def test_runs_in_different_sessions_overlap(manager: SessionManager, mock_executor: Any) -> None:
    await manager.join("s1", "pad-a", "ada")
    await manager.join("s2", "pad-a", "grace")
    in_flight = 0
    peak = 0

    async def submit(request: ExecutionRequest) -> ExecutionResult:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return ExecutionResult(success=True, output=request.code, execution_time=10)

    mock_executor.submit.side_effect = submit

    r1, r2 = await asyncio.gather(
        manager.run("s1", "pad-a", "one", "python", AsyncMock()),
        manager.run("s2", "pad-a", "two", "go", AsyncMock()),
    )

    assert (r1.output, r2.output) == ("one", "two")
    assert peak == 2


@pytest.mark.asyncio
async def test_run_flag_cleared_when_notify_fails(manager: SessionManager) -> None:
    await manager.join("s1", "pad-a", "ada")
    notify = AsyncMock(side_effect=ConnectionError("socket closed"))

    with pytest.raises(ConnectionError):
        await manager.run("s1", "pad-a", "x", "python", notify)

    assert manager.sessions["s1"].running is False


@pytest.mark.asyncio
async def test_reap_idle(manager: SessionManager) -> None:
    with patch("coreason_coderun.session_manager.time.time", return_value=1000.0):
        await manager.join("old", "pad-a", "ada")
        await manager.join("busy", "pad-a", "grace")
    manager.sessions["busy"].running = True
    await manager.join("fresh", "pad-a", "linus")

    expired = await manager.reap_idle(idle_timeout=60)

    assert expired == ["old"]
    assert set(manager.sessions) == {"busy", "fresh"}


def test_default_executor_is_created() -> None:
    manager = SessionManager()
    assert manager.executor.config is manager.config


@pytest.mark.asyncio
async def test_join_starts_reaper_once(manager: SessionManager) -> None:
    await manager.join("s1", "pad-a", "ada")
    reaper = manager._reaper_task
    await manager.join("s2", "pad-a", "grace")

    assert reaper is not None and not reaper.done()
    assert manager._reaper_task is reaper


@pytest.mark.asyncio
async def test_reaper_drops_idle_sessions(mock_executor: Any) -> None:
    config = RunnerConfig(session_idle_timeout=0.05, session_reaper_interval=0.02)
    manager = SessionManager(executor=mock_executor, config=config)
    await manager.join("s1", "pad-a", "ada")

    for _ in range(100):
        if not manager.sessions:
            break
        await asyncio.sleep(0.02)

    assert manager.sessions == {}
    await manager.shutdown()


@pytest.mark.asyncio
async def test_reaper_survives_cancellation(manager: SessionManager) -> None:
    await manager._start_reaper_if_needed()
    assert manager._reaper_task is not None
    await asyncio.sleep(0.01)

    manager._reaper_task.cancel()
    await manager._reaper_task

    assert manager._reaper_task.done()


@pytest.mark.asyncio
async def test_reaper_crash_is_logged(mock_executor: Any) -> None:
    config = RunnerConfig(session_reaper_interval=0.01)
    manager = SessionManager(executor=mock_executor, config=config)

    with patch.object(manager, "reap_idle", AsyncMock(side_effect=RuntimeError("boom"))):
        await manager._start_reaper_if_needed()
        assert manager._reaper_task is not None
        await asyncio.wait_for(manager._reaper_task, timeout=1)

    # A finished reaper is restarted by the next join
    await manager.join("s1", "pad-a", "ada")
    assert not manager._reaper_task.done()
    await manager.shutdown()


@pytest.mark.asyncio
async def test_shutdown_stops_reaper_and_clears_sessions(manager: SessionManager) -> None:
    await manager.join("s1", "pad-a", "ada")
    reaper = manager._reaper_task

    await manager.shutdown()

    assert reaper is not None and reaper.done()
    assert manager._reaper_task is None
    assert manager.sessions == {}
    # Safe to call again
    await manager.shutdown()
