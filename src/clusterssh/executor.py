"""SSH execution engine for clusterssh."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable

import asyncssh
from asyncssh.constants import (
    OPEN_REQUEST_PTY_FAILED,
    PTY_ECHO,
    PTY_OP_ISPEED,
    PTY_OP_OSPEED,
)
from loguru import logger

from .credentials import Credentials
from .errors import (
    AuthenticationError,
    CommandExecutionError,
    HostConnectionError,
    HostError,
    PtyRequestError,
    SessionSetupError,
)
from .hosts import Host

CTRL_C = b"\x03"
EOF_MARKER = b"\x04"

TERM_TYPE = "xterm"
TERM_SIZE = (80, 40)
TERM_MODES = {
    PTY_ECHO: 0,  # disable echoing
    PTY_OP_ISPEED: 14400,  # input speed = 14.4kbaud
    PTY_OP_OSPEED: 14400,  # output speed = 14.4kbaud
}

READ_CHUNK = 64 * 1024


class HostStatus(Enum):
    """Status of a host's session."""

    CONNECTING = "connecting"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


# Type alias for status callback
StatusCallback = Callable[[Host, HostStatus], None]  # (host, status) -> None


@dataclass(frozen=True)
class Result:
    """Outcome of running the command on one host."""

    host: Host
    output: bytes = b""
    error: HostError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class SessionOptions:
    """Settings shared by every session of a run."""

    credentials: Credentials | None = None
    connect_timeout: float | None = 30
    max_output: int | None = None


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


async def run_session(
    host: Host,
    command: str,
    stdin: bytes,
    options: SessionOptions,
    ready: asyncio.Future,
    on_status: StatusCallback | None = None,
) -> Result:
    """Run ``command`` on one host and return its Result.

    ``ready`` is resolved exactly once: with the remote stdin writer when the
    session is about to execute, or with None if setup failed first.
    """

    def emit(status: HostStatus) -> None:
        if on_status:
            on_status(host, status)

    output = bytearray()
    error: HostError | None = None
    input_task: asyncio.Task | None = None

    emit(HostStatus.CONNECTING)
    logger.debug(f"Connecting to {host}")
    try:
        conn = await _connect(host, options)
        async with conn:
            proc = await _open_process(conn, command)
            input_task = asyncio.create_task(_deliver_input(host, proc.stdin, stdin))
            if not ready.done():
                ready.set_result(proc.stdin)

            emit(HostStatus.RUNNING)
            logger.debug(f"Running on {host}: {command}")
            await _run_process(host, proc, output, options.max_output)
    except HostError as e:
        error = e
    finally:
        if not ready.done():
            ready.set_result(None)
        if input_task is not None and not input_task.done():
            input_task.cancel()

    if error is not None:
        logger.warning(f"{host}: {error}")
        emit(HostStatus.FAILED)
    else:
        emit(HostStatus.SUCCESS)
    return Result(host=host, output=bytes(output), error=error)


async def _connect(host: Host, options: SessionOptions) -> asyncssh.SSHClientConnection:
    credentials = options.credentials or Credentials()
    try:
        return await asyncssh.connect(
            host.name,
            port=host.port,
            known_hosts=None,  # Skip host key verification
            connect_timeout=options.connect_timeout,
            **credentials.for_host(host),
        )
    except asyncssh.PermissionDenied as e:
        raise AuthenticationError(f"Unable to authenticate: {_describe(e)}") from e
    except (asyncssh.Error, OSError, asyncio.TimeoutError) as e:
        raise HostConnectionError(f"Unable to connect: {_describe(e)}") from e


async def _open_process(
    conn: asyncssh.SSHClientConnection, command: str
) -> asyncssh.SSHClientProcess:
    """Open a session channel with a PTY and start ``command``."""
    try:
        return await conn.create_process(
            command,
            term_type=TERM_TYPE,
            term_size=TERM_SIZE,
            term_modes=TERM_MODES,
            encoding=None,
        )
    except asyncssh.ChannelOpenError as e:
        if e.code == OPEN_REQUEST_PTY_FAILED:
            raise PtyRequestError(f"Failed to request pty: {e.reason}") from e
        raise SessionSetupError(f"Unable to get ssh session: {e.reason}") from e
    except (asyncssh.Error, OSError) as e:
        raise SessionSetupError(f"Unable to get ssh session: {_describe(e)}") from e


async def _deliver_input(host: Host, writer: asyncssh.SSHWriter, data: bytes) -> None:
    """Write the caller's input followed by the end-of-input marker."""
    try:
        if data:
            writer.write(data)
            await writer.drain()
        writer.write(EOF_MARKER)
        await writer.drain()
    except (asyncssh.Error, OSError) as e:
        logger.debug(f"{host}: input not delivered: {_describe(e)}")


async def _run_process(
    host: Host,
    proc: asyncssh.SSHClientProcess,
    output: bytearray,
    max_output: int | None,
) -> None:
    """Capture stdout into ``output`` and check the exit status."""
    truncated = False
    try:
        while True:
            chunk = await proc.stdout.read(READ_CHUNK)
            if not chunk:
                break
            if max_output is None:
                output.extend(chunk)
                continue
            room = max_output - len(output)
            if room > 0:
                output.extend(chunk[:room])
            if len(chunk) > room:
                truncated = True

        completed = await proc.wait()
    except (asyncssh.Error, OSError) as e:
        raise HostConnectionError(f"Connection lost: {_describe(e)}") from e
    finally:
        if truncated:
            logger.warning(f"{host}: output truncated at {max_output} bytes")
            output.extend(f"\n[output truncated after {max_output} bytes]\n".encode())

    if completed.exit_signal:
        signal_name = completed.exit_signal[0]
        raise CommandExecutionError(
            f"Process killed by signal {signal_name}", exit_signal=signal_name
        )
    if completed.exit_status is None:
        raise CommandExecutionError("Process exited without reporting a status")
    if completed.exit_status != 0:
        raise CommandExecutionError(
            f"Process exited with status {completed.exit_status}",
            exit_status=completed.exit_status,
        )


async def _interrupt(writer: asyncssh.SSHWriter) -> None:
    try:
        writer.write(CTRL_C)
        await writer.drain()
    except (asyncssh.Error, OSError) as e:
        logger.debug(f"Interrupt not delivered: {_describe(e)}")


@dataclass
class Command:
    """Handle on an in-flight run across a cluster.

    ``results`` receives exactly ``total`` Results and is never closed.
    ``writers`` holds the stdin of every host that reached execution.
    """

    results: asyncio.Queue
    writers: tuple[asyncssh.SSHWriter, ...]
    total: int
    sessions: list[asyncio.Task] = field(default_factory=list, repr=False)
    _pending: set[asyncio.Task] = field(default_factory=set, repr=False)

    def send_stop_signal(self) -> None:
        """Ask every running remote process to stop; returns immediately."""
        loop = asyncio.get_running_loop()
        for writer in self.writers:
            task = loop.create_task(_interrupt(writer))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)


@dataclass
class Cluster:
    """An ordered collection of hosts to run commands on."""

    hosts: list[Host] = field(default_factory=list)

    async def run(
        self,
        command: str,
        stdin: bytes = b"",
        options: SessionOptions | None = None,
        on_status: StatusCallback | None = None,
    ) -> Command:
        """Start ``command`` on every host in parallel.

        Returns once every host is either executing or has failed to get
        there, so an interrupt sent right away reaches every running host.
        """
        options = options or SessionOptions()
        if options.credentials is None:
            options = replace(options, credentials=Credentials.discover())

        loop = asyncio.get_running_loop()
        results: asyncio.Queue = asyncio.Queue()

        readies = []
        sessions = []
        for host in self.hosts:
            ready = loop.create_future()
            readies.append(ready)
            sessions.append(
                asyncio.create_task(
                    _run_host(host, command, stdin, options, ready, results, on_status)
                )
            )

        writers = await asyncio.gather(*readies)
        return Command(
            results=results,
            writers=tuple(w for w in writers if w is not None),
            total=len(self.hosts),
            sessions=sessions,
        )


async def _run_host(
    host: Host,
    command: str,
    stdin: bytes,
    options: SessionOptions,
    ready: asyncio.Future,
    results: asyncio.Queue,
    on_status: StatusCallback | None,
) -> None:
    try:
        result = await run_session(host, command, stdin, options, ready, on_status)
    except Exception as e:
        # A host is never dropped from the result stream
        logger.exception(f"Unexpected error on {host}")
        if not ready.done():
            ready.set_result(None)
        result = Result(host=host, error=HostError(f"Unexpected error: {_describe(e)}"))
    results.put_nowait(result)
