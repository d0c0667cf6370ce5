"""Control loop that drives a Command to completion or forced exit."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable

from loguru import logger

from .executor import Command, Result

DEFAULT_GRACE_PERIOD = 5.0

ResultCallback = Callable[[Result], None]


class LoopState(Enum):
    RUNNING = "running"
    INTERRUPTING = "interrupting"
    DONE = "done"


class _Event(Enum):
    RESULT = "result"
    INTERRUPT = "interrupt"
    TIMEOUT = "timeout"


class Orchestrator:
    """Consume a Command's results and handle operator interrupts.

    Every interrupt request forwards a stop signal to the remote processes and
    arms its own grace timer. The loop finishes when all results are in or
    when the first grace timer fires, whichever comes first; hosts still
    running at that point are abandoned.
    """

    def __init__(
        self,
        command: Command,
        on_result: ResultCallback | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        on_interrupt: Callable[[], None] | None = None,
    ):
        self.command = command
        self.on_result = on_result
        self.grace_period = grace_period
        self.on_interrupt = on_interrupt
        self.state = LoopState.RUNNING
        self.remaining = command.total
        self.results: list[Result] = []
        self._events: asyncio.Queue = asyncio.Queue()
        self._timers: list[asyncio.TimerHandle] = []

    @property
    def timed_out(self) -> bool:
        return self.state is LoopState.DONE and self.remaining > 0

    def request_interrupt(self) -> None:
        """Queue an operator interrupt; safe to call from a signal handler."""
        self._events.put_nowait((_Event.INTERRUPT, None))

    async def run(self) -> list[Result]:
        """Run until DONE and return the results consumed along the way."""
        if self.remaining <= 0:
            self.state = LoopState.DONE
            return self.results

        pump = asyncio.create_task(self._pump_results())
        try:
            while self.state is not LoopState.DONE:
                event, payload = await self._events.get()
                if event is _Event.RESULT:
                    self._handle_result(payload)
                elif event is _Event.INTERRUPT:
                    self._handle_interrupt()
                elif event is _Event.TIMEOUT:
                    logger.warning(
                        f"Grace period expired with {self.remaining} host(s) still running"
                    )
                    self.state = LoopState.DONE
        finally:
            pump.cancel()
            for timer in self._timers:
                timer.cancel()
        return self.results

    async def _pump_results(self) -> None:
        while True:
            result = await self.command.results.get()
            self._events.put_nowait((_Event.RESULT, result))

    def _handle_result(self, result: Result) -> None:
        self.results.append(result)
        self.remaining -= 1
        if self.on_result:
            self.on_result(result)
        if self.remaining <= 0:
            self.state = LoopState.DONE

    def _handle_interrupt(self) -> None:
        logger.debug(f"Interrupt requested, {self.remaining} host(s) still running")
        if self.on_interrupt:
            self.on_interrupt()
        self.command.send_stop_signal()
        loop = asyncio.get_running_loop()
        self._timers.append(
            loop.call_later(
                self.grace_period, self._events.put_nowait, (_Event.TIMEOUT, None)
            )
        )
        self.state = LoopState.INTERRUPTING
