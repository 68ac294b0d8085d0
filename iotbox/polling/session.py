"""Continuous and one-shot register polling on a background event loop."""
from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

from ..errors import TransportFailure
from ..hardware.modbus import PollRequest, RegisterBlock
from ..runtime import LoopRunner

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 1.0

BlockSink = Callable[[RegisterBlock], object]
SleepFunc = Callable[[float], Awaitable[object]]


class RegisterTransport(Protocol):
    async def request(self, request: PollRequest) -> RegisterBlock:  # pragma: no cover - protocol signature
        ...


class SessionState(Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass(slots=True)
class PollHandle:
    """The live loop of one :meth:`PollSession.start` call."""

    request: PollRequest
    cancel: threading.Event = field(default_factory=threading.Event)
    future: Optional["concurrent.futures.Future[int]"] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()

    def done(self) -> bool:
        return self.future is None or self.future.done()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the loop to exit; returns False on timeout."""

        if self.future is None:
            return True
        done, _ = concurrent.futures.wait([self.future], timeout=timeout)
        return bool(done)


class PollSession:
    """Repeat one request at a fixed interval and hand each block to a sink.

    * ``start`` while running returns the running handle unchanged.
    * ``stop`` only raises the cancellation flag; the loop sees it at the top
      of its next iteration and nothing is delivered after it is raised.
    * A failed cycle is logged and the loop carries on after the usual
      interval. There is no backoff and no failure budget.
    """

    def __init__(
        self,
        transport: RegisterTransport,
        runner: LoopRunner,
        *,
        interval_s: float = DEFAULT_INTERVAL_S,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._runner = runner
        self._interval_s = interval_s if interval_s > 0 else DEFAULT_INTERVAL_S
        self._sleep = sleep
        self._handle: Optional[PollHandle] = None
        self._lock = threading.Lock()

    @property
    def interval_s(self) -> float:
        return self._interval_s

    @property
    def handle(self) -> Optional[PollHandle]:
        return self._handle

    @property
    def state(self) -> SessionState:
        handle = self._handle
        if handle is None or handle.cancelled or handle.done():
            return SessionState.IDLE
        return SessionState.RUNNING

    def start(self, request: PollRequest, sink: BlockSink) -> PollHandle:
        with self._lock:
            current = self._handle
            if current is not None and not current.cancelled and not current.done():
                logger.debug("Poll session already running for %s", current.request.describe())
                return current
            handle = PollHandle(request=request)
            self._handle = handle
            handle.future = self._runner.submit(self.run(request, sink, handle.cancel))
            handle.future.add_done_callback(self._on_loop_done)
        return handle

    def stop(self) -> None:
        handle = self._handle
        if handle is not None:
            handle.cancel.set()

    def read_once(self, request: PollRequest, sink: BlockSink) -> "concurrent.futures.Future[RegisterBlock]":
        """Run one request/deliver cycle, independent of the polling loop.

        The returned future resolves to the delivered block, or carries the
        :class:`TransportFailure` when the exchange failed.
        """

        return self._runner.submit(self._read_once(request, sink))

    async def run(self, request: PollRequest, sink: BlockSink, cancel: threading.Event) -> int:
        """The polling loop itself; returns the number of delivered blocks."""

        logger.info("Polling %s every %.3fs", request.describe(), self._interval_s)
        delivered = 0
        while not cancel.is_set():
            try:
                block = await self._transport.request(request)
            except TransportFailure as exc:
                logger.warning("Poll cycle failed (%s): %s", request.describe(), exc)
            else:
                if cancel.is_set():
                    break
                sink(block)
                delivered += 1
            await self._sleep(self._interval_s)
        logger.info("Polling stopped after %d block(s)", delivered)
        return delivered

    async def _read_once(self, request: PollRequest, sink: BlockSink) -> RegisterBlock:
        try:
            block = await self._transport.request(request)
        except TransportFailure as exc:
            logger.warning("Read failed (%s): %s", request.describe(), exc)
            raise
        sink(block)
        return block

    def _on_loop_done(self, future: "concurrent.futures.Future[int]") -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Poll loop terminated unexpectedly: %s", exc, exc_info=exc)


__all__ = ["PollHandle", "PollSession", "SessionState"]
