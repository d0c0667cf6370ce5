#!/usr/bin/env python3
"""Main entry point for clusterssh."""

import argparse
import asyncio
import math
import signal
import sys
from pathlib import Path
from typing import IO

from loguru import logger

from .config import Config, Defaults, load_config
from .credentials import Credentials
from .errors import ConfigError, HostSpecError, LocalIOError
from .executor import Cluster, HostStatus, Result, SessionOptions
from .hosts import Host, parse_hosts
from .log import setup_logging
from .orchestrator import Orchestrator

# ANSI colors for different hosts
COLORS = [
    "\033[36m",  # Cyan
    "\033[33m",  # Yellow
    "\033[35m",  # Magenta
    "\033[32m",  # Green
    "\033[34m",  # Blue
    "\033[91m",  # Light Red
    "\033[96m",  # Light Cyan
    "\033[93m",  # Light Yellow
]
ERROR_COLOR = "\033[31m"
RESET = "\033[0m"


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = _build_parser()
    args = parser.parse_intermixed_args(argv)

    setup_logging(args.verbose)

    # Load configuration
    try:
        config = load_config(args.config) if args.config else Config()
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    _apply_overrides(config.defaults, args)

    try:
        hosts = parse_hosts(
            config.hosts + args.hosts,
            default_user=config.defaults.user,
            default_port=config.defaults.port,
        )
    except HostSpecError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        stdin = read_local_input(sys.stdin)
    except LocalIOError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    use_color = not args.no_color and sys.stdout.isatty()
    printer = ResultPrinter(hosts, use_color=use_color)

    return asyncio.run(
        run_command(
            hosts,
            args.command,
            stdin,
            config.defaults,
            printer,
            verbose=args.verbose,
        )
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clusterssh",
        description="Run a command on many SSH hosts in parallel",
    )
    parser.add_argument("command", help="Shell command to run on every host")
    parser.add_argument(
        "hosts",
        nargs="*",
        metavar="HOST",
        help="Host as [user[:password]@]host[:port]",
    )
    parser.add_argument("--config", type=Path, help="Path to YAML configuration file")
    parser.add_argument("--user", help="Default user for hosts without one")
    parser.add_argument("--port", type=_port, help="Default port for hosts without one")
    parser.add_argument(
        "--grace-period",
        type=_positive_float,
        help="Seconds to wait after an interrupt before giving up on hosts",
    )
    parser.add_argument(
        "--connect-timeout",
        type=_positive_float,
        help="Seconds allowed for connecting to each host",
    )
    parser.add_argument(
        "--max-output",
        type=_positive_int,
        help="Keep at most this many bytes of output per host",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show per-host status changes and debug logging",
    )
    return parser


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if not math.isfinite(number):
        raise argparse.ArgumentTypeError(f"must be finite: {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value!r}")
    return number


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value!r}")
    return number


def _port(value: str) -> int:
    port = _positive_int(value)
    if port > 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {value!r}")
    return port


def _apply_overrides(defaults: Defaults, args: argparse.Namespace) -> None:
    """Command line options win over the config file."""
    if args.user:
        defaults.user = args.user
    if args.port is not None:
        defaults.port = args.port
    if args.grace_period is not None:
        defaults.grace_period = args.grace_period
    if args.connect_timeout is not None:
        defaults.connect_timeout = args.connect_timeout
    if args.max_output is not None:
        defaults.max_output = args.max_output


def read_local_input(stream: IO | None) -> bytes:
    """Read piped input; interactive terminals are never read."""
    if stream is None or stream.isatty():
        return b""
    try:
        return getattr(stream, "buffer", stream).read()
    except (OSError, ValueError) as e:
        raise LocalIOError(f"Unable to read standard input: {e}") from e


class ResultPrinter:
    """Render results and status changes, one color per host."""

    def __init__(self, hosts: list[Host], use_color: bool = True, out: IO | None = None):
        self.use_color = use_color
        self.out = out or sys.stdout
        self.colors: dict[Host, str] = {}
        for i, host in enumerate(hosts):
            self.colors.setdefault(host, COLORS[i % len(COLORS)])

    def _paint(self, text: str, color: str) -> str:
        if not self.use_color:
            return text
        return f"{color}{text}{RESET}"

    def _label(self, host: Host) -> str:
        return self._paint(f"[{host}]", self.colors.get(host, ""))

    def print_result(self, result: Result) -> None:
        label = self._label(result.host)
        text = result.output.decode("utf-8", errors="replace")
        for line in text.splitlines():
            print(f"{label} {line.rstrip(chr(13))}", file=self.out)
        if result.error is not None:
            print(f"{label} {self._paint(f'ERROR: {result.error}', ERROR_COLOR)}", file=self.out)
        self.out.flush()

    def print_status(self, host: Host, status: HostStatus) -> None:
        print(f"{self._label(host)} Status: {status.value}", file=self.out)


async def run_command(
    hosts: list[Host],
    command: str,
    stdin: bytes,
    defaults: Defaults,
    printer: ResultPrinter,
    verbose: bool = False,
) -> int:
    """Run ``command`` across ``hosts`` until done or interrupted."""
    loop = asyncio.get_running_loop()

    # Interrupts that arrive while sessions are still being set up are
    # replayed once the orchestrator exists
    early_interrupts: list[int] = []
    _install_signal_handlers(loop, lambda: early_interrupts.append(1))

    try:
        options = SessionOptions(
            credentials=Credentials.discover(defaults.key_files),
            connect_timeout=defaults.connect_timeout,
            max_output=defaults.max_output,
        )
        cmd = await Cluster(hosts).run(
            command,
            stdin,
            options=options,
            on_status=printer.print_status if verbose else None,
        )

        orchestrator = Orchestrator(
            cmd,
            on_result=printer.print_result,
            grace_period=defaults.grace_period,
            on_interrupt=lambda: print("terminating...", file=sys.stderr),
        )
        _install_signal_handlers(loop, orchestrator.request_interrupt)
        for _ in early_interrupts:
            orchestrator.request_interrupt()

        results = await orchestrator.run()
    finally:
        _remove_signal_handlers(loop)

    if orchestrator.timed_out:
        print(
            f"Timed out; abandoning {orchestrator.remaining} unfinished host(s)",
            file=sys.stderr,
        )

    failed = [str(r.host) for r in results if not r.ok]
    if failed:
        print(f"\nFailed hosts: {', '.join(failed)}", file=sys.stderr)
    return 0


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, handler) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handler)
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this platform")
            return


def _remove_signal_handlers(loop: asyncio.AbstractEventLoop) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.remove_signal_handler(sig)
        except NotImplementedError:
            return


if __name__ == "__main__":
    sys.exit(main())
