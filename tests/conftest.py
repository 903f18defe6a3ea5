# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_coderun

import threading
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from coreason_coderun.config import RunnerConfig


class FakeAttachSocket:
    """Stands in for the raw socket returned by ``attach_socket``.

    ``chunks`` are handed out one per read. With ``block=True`` reads hang
    until ``close()`` is called, like a container that never exits.
    """

    def __init__(self, chunks: list[bytes] | None = None, block: bool = False):
        self.chunks = list(chunks or [])
        self.block = block
        self.closed = threading.Event()

    def close(self) -> None:
        self.closed.set()


def fake_read(sock: FakeAttachSocket, n: int = 4096) -> bytes:
    if sock.chunks:
        return sock.chunks.pop(0)
    if sock.block:
        sock.closed.wait(timeout=5)
    return b""


@pytest.fixture
def runner_config(tmp_path: Path) -> RunnerConfig:
    return RunnerConfig(workspace_dir=tmp_path / "workspace", execution_timeout=2.0)


@pytest.fixture
def make_socket() -> Callable[..., FakeAttachSocket]:
    return FakeAttachSocket


@pytest.fixture
def attach_read() -> Generator[MagicMock, None, None]:
    with patch("coreason_coderun.runner.docker_socket.read", side_effect=fake_read) as mock:
        yield mock


@pytest.fixture
def mock_docker_client() -> MagicMock:
    client = MagicMock()
    client.api.create_host_config.side_effect = lambda **kwargs: kwargs
    client.api.create_container.return_value = {"Id": "0123456789abcdef" * 4}
    client.api.attach_socket.return_value = FakeAttachSocket()
    client.api.inspect_container.return_value = {"State": {"Status": "exited", "ExitCode": 0}}
    client.images.get.return_value = MagicMock()
    client.ping.return_value = True
    return client


@pytest.fixture
def created_containers(mock_docker_client: MagicMock) -> list[dict[str, Any]]:
    """Records every create_container call, including the staged file's content at creation time."""
    records: list[dict[str, Any]] = []
    lock = threading.Lock()

    def create(**kwargs: Any) -> dict[str, str]:
        (host_path,) = kwargs["host_config"]["binds"]
        record = dict(kwargs, host_path=host_path, source=Path(host_path).read_text(encoding="utf-8"))
        with lock:
            records.append(record)
            return {"Id": f"container-{len(records) - 1}"}

    mock_docker_client.api.create_container.side_effect = create
    return records
