"""Headless state of the register tool: request parameters, last block, rows."""
from __future__ import annotations

import asyncio
import concurrent.futures
import dataclasses
import itertools
import logging
from collections import deque
from typing import Any, Callable, Deque, List, Optional, Tuple, Union

from ..channel import ResultChannel
from ..codec.registers import DisplayFormat, RegisterRow, build_rows
from ..config import AppConfig
from ..errors import ConfigError, EndpointError, TransportFailure
from ..hardware.modbus import ModbusTransport, PollRequest, RegisterBlock, request_from_config
from ..polling.session import PollSession, SessionState, SleepFunc
from ..runtime import LoopRunner

logger = logging.getLogger(__name__)

ChannelItem = Union[RegisterBlock, TransportFailure]
# items carry their arrival number so both channels can be applied in one FIFO order
TaggedItem = Tuple[int, ChannelItem]


class ModbusTool:
    """Consumer side of the register path.

    Blocks arrive through channels drained by :meth:`update`. A new block
    replaces the previous one entirely; :meth:`rows` re-decodes the current
    block with the selected format without issuing a request.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        runner: Optional[LoopRunner] = None,
        transport: Optional[ModbusTransport] = None,
        session: Optional[PollSession] = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.config = config or AppConfig()
        self._owns_runner = runner is None
        self._runner = runner or LoopRunner()
        self._transport = transport or ModbusTransport(timeout_s=self.config.modbus.timeout_s)
        self._session = session or PollSession(
            self._transport,
            self._runner,
            interval_s=self.config.poll.interval_s,
            sleep=sleep,
        )
        self.display_format = DisplayFormat.parse(self.config.modbus.display_format)
        self.data: Optional[RegisterBlock] = None
        self.blocks_received = 0
        self.logs: Deque[str] = deque(maxlen=self.config.poll.max_log_lines)
        self._poll_channel: Optional[ResultChannel[TaggedItem]] = None
        self._once_channel: ResultChannel[TaggedItem] = ResultChannel()
        self._arrivals = itertools.count()

    @property
    def session(self) -> PollSession:
        return self._session

    @property
    def auto_poll(self) -> bool:
        return self._session.state is SessionState.RUNNING

    def configure(self, **changes: Any) -> None:
        """Update request parameters; a running poll keeps its old request until restarted."""

        try:
            self.config.modbus = dataclasses.replace(self.config.modbus, **changes)
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc
        if "display_format" in changes:
            self.display_format = DisplayFormat.parse(self.config.modbus.display_format)

    def request(self) -> PollRequest:
        return request_from_config(self.config)

    def set_display_format(self, fmt: Union[DisplayFormat, str]) -> None:
        self.display_format = DisplayFormat.parse(fmt)
        self.config.modbus.display_format = self.display_format.name.lower()

    def read_once(self) -> Optional["concurrent.futures.Future[RegisterBlock]"]:
        try:
            request = self.request()
        except EndpointError as exc:
            self._log(f"Invalid endpoint: {exc}")
            return None
        channel = self._once_channel
        self._log(f"TX {request.function.label}")
        deliver = self._tagging(channel)
        future = self._session.read_once(request, deliver)

        def _report(done: "concurrent.futures.Future[RegisterBlock]") -> None:
            if done.cancelled():
                return
            exc = done.exception()
            if isinstance(exc, TransportFailure):
                deliver(exc)

        future.add_done_callback(_report)
        return future

    def set_auto_poll(self, enabled: bool) -> bool:
        """Start or stop continuous polling; returns the resulting state."""

        if enabled:
            if self.auto_poll:
                return True
            try:
                request = self.request()
            except EndpointError as exc:
                self._log(f"Invalid endpoint: {exc}")
                return False
            self._retire_poll_channel()
            channel: ResultChannel[TaggedItem] = ResultChannel()
            self._poll_channel = channel
            self._session.start(request, self._tagging(channel))
            self._log(f"Auto Poll started ({self._session.interval_s:g}s)")
            return True
        if self._poll_channel is not None or self.auto_poll:
            self._session.stop()
            self._retire_poll_channel()
            self._log("Auto Poll stopped")
        return False

    def update(self) -> int:
        """Apply everything pending, oldest first; returns the number of items."""

        tagged: List[TaggedItem] = []
        if self._poll_channel is not None:
            tagged.extend(self._poll_channel.try_receive())
        tagged.extend(self._once_channel.try_receive())
        tagged.sort(key=lambda pair: pair[0])
        for _, item in tagged:
            if isinstance(item, RegisterBlock):
                self.data = item
                self.blocks_received += 1
                self._log(f"RX {len(item)} registers")
            else:
                self._log(f"Read failed: {item}")
        return len(tagged)

    def rows(self, limit: Optional[int] = None) -> List[RegisterRow]:
        if self.data is None:
            return []
        rows = build_rows(self.data.words, self.data.address, self.display_format)
        if limit is not None:
            return rows[:max(limit, 0)]
        return rows

    def close(self) -> None:
        self.set_auto_poll(False)
        self._once_channel.close()
        if self._owns_runner:
            self._runner.close()

    def _tagging(self, channel: ResultChannel[TaggedItem]) -> Callable[[ChannelItem], bool]:
        def deliver(item: ChannelItem) -> bool:
            return channel.put((next(self._arrivals), item))

        return deliver

    def _retire_poll_channel(self) -> None:
        if self._poll_channel is not None:
            self._poll_channel.close()
            self._poll_channel = None

    def _log(self, line: str) -> None:
        self.logs.append(line)

    def __enter__(self) -> "ModbusTool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["ModbusTool"]
