"""Pytest configuration and shared fakes for asyncssh."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from clusterssh.credentials import Credentials
from clusterssh.executor import SessionOptions


class FakeWriter:
    """Stand-in for asyncssh.SSHWriter that records every write."""

    def __init__(self, broken: bool = False) -> None:
        self.writes: list[bytes] = []
        self.broken = broken

    def write(self, data: bytes) -> None:
        if self.broken:
            raise BrokenPipeError("Channel not open for sending")
        self.writes.append(bytes(data))

    async def drain(self) -> None:
        return None

    @property
    def data(self) -> bytes:
        return b"".join(self.writes)


class FakeReader:
    """Stand-in for asyncssh.SSHReader.

    Returns ``chunks`` one at a time. When ``hold`` is set, reading blocks
    after the last chunk until the event fires.
    """

    def __init__(
        self,
        chunks: list[bytes] | None = None,
        hold: asyncio.Event | None = None,
        error: Exception | None = None,
    ) -> None:
        self.chunks = list(chunks or [])
        self.hold = hold
        self.error = error

    async def read(self, n: int = -1) -> bytes:
        await asyncio.sleep(0)
        if self.chunks:
            return self.chunks.pop(0)
        if self.error is not None:
            raise self.error
        if self.hold is not None:
            await self.hold.wait()
        return b""


class FakeProcess:
    def __init__(
        self,
        output: list[bytes] | None = None,
        exit_status: int | None = 0,
        exit_signal: tuple | None = None,
        hold: asyncio.Event | None = None,
        read_error: Exception | None = None,
    ) -> None:
        self.stdin = FakeWriter()
        self.stdout = FakeReader(output, hold=hold, error=read_error)
        self.exit_status = exit_status
        self.exit_signal = exit_signal

    async def wait(self) -> SimpleNamespace:
        return SimpleNamespace(
            exit_status=self.exit_status,
            exit_signal=self.exit_signal,
        )


class FakeConnection:
    def __init__(self, process: FakeProcess | None = None, open_error: Exception | None = None):
        self.process = process or FakeProcess()
        self.create_process = AsyncMock(
            return_value=self.process, side_effect=open_error
        )
        self.closed = False

    async def __aenter__(self) -> FakeConnection:
        return self

    async def __aexit__(self, *exc_info: Any) -> bool:
        self.closed = True
        return False


@pytest.fixture
def options() -> SessionOptions:
    """Session options that never touch the local key files."""
    return SessionOptions(credentials=Credentials(), connect_timeout=5)


@pytest.fixture
def fake_ssh():
    """Patch asyncssh.connect; map host names to connections or exceptions."""
    targets: dict[str, FakeConnection | Exception] = {}

    async def connect(name: str, **kwargs: Any) -> FakeConnection:
        await asyncio.sleep(0)
        target = targets[name]
        if isinstance(target, Exception):
            raise target
        return target

    with patch("clusterssh.executor.asyncssh.connect", new=AsyncMock(side_effect=connect)) as mock:
        mock.targets = targets
        yield mock
