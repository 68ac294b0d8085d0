"""Headless state of the serial console: connection, send path and RX log."""
from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Deque, List, Optional

from ..channel import ResultChannel
from ..codec.text import SendFormat, bytes_to_hex, encode_payload
from ..config import AppConfig, SerialConfig
from ..errors import TransportConnectError, TransportIOError
from ..hardware.framer import FrameAssembler
from ..hardware.serial_link import ListedPort, SerialLink, list_ports

logger = logging.getLogger(__name__)

STATUS_DISCONNECTED = "Disconnected"


class SerialTool:
    """Consumer side of the serial path.

    Frames are produced by a :class:`FrameAssembler` thread into a channel
    that :meth:`update` drains; every :meth:`connect` gets a fresh channel so
    nothing from a previous connection leaks into the log.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        link_factory: Optional[Callable[[SerialConfig], SerialLink]] = None,
        port_lister: Callable[[], List[ListedPort]] = list_ports,
    ) -> None:
        self.config = config or AppConfig()
        self._link_factory = link_factory or SerialLink
        self._port_lister = port_lister
        self.available_ports: List[ListedPort] = []
        self.send_format = SendFormat.ASCII
        self.status = STATUS_DISCONNECTED
        self.logs: Deque[str] = deque(maxlen=self.config.poll.max_log_lines)
        self._link: Optional[SerialLink] = None
        self._assembler: Optional[FrameAssembler] = None
        self._channel: Optional[ResultChannel[bytes]] = None

    @property
    def connected(self) -> bool:
        return self._link is not None and self._link.is_open

    def refresh_ports(self) -> List[ListedPort]:
        try:
            self.available_ports = self._port_lister()
        except OSError as exc:
            logger.warning("Port enumeration failed: %s", exc)
            self.available_ports = []
        return self.available_ports

    def select_port(self, port: Optional[str]) -> None:
        self.config.serial.port = (port or "").strip() or None

    def connect(self) -> bool:
        serial_cfg = self.config.serial
        if not serial_cfg.port:
            self.status = "Please select a serial port"
            return False
        self.disconnect()
        link = self._link_factory(serial_cfg)
        try:
            link.open()
        except TransportConnectError as exc:
            self.status = f"Connection failed: {exc}"
            logger.warning("%s", self.status)
            return False
        channel: ResultChannel[bytes] = ResultChannel()
        assembler = FrameAssembler(
            link,
            channel.put,
            idle_threshold_s=self.config.poll.idle_threshold_s,
            idle_sleep_s=self.config.poll.idle_sleep_s,
        )
        self._link = link
        self._channel = channel
        self._assembler = assembler
        assembler.start()
        self.status = f"Connected to {serial_cfg.port}"
        return True

    def disconnect(self) -> None:
        assembler, link, channel = self._assembler, self._link, self._channel
        self._assembler = None
        self._link = None
        self._channel = None
        if assembler is not None:
            assembler.stop()
            grace = max(self.config.serial.read_timeout_s * 5, 0.5)
            if not assembler.join(timeout=grace):
                logger.warning("Serial reader did not stop within %.1fs", grace)
        if channel is not None:
            self._append_frames(channel.try_receive())
            channel.close()
        if link is not None:
            link.close()
            self.status = STATUS_DISCONNECTED

    def send(self, text: str, fmt: Optional[SendFormat] = None) -> bool:
        fmt = fmt or self.send_format
        if not self.connected:
            self._log("Not connected to serial port")
            return False
        try:
            payload = encode_payload(text, fmt)
        except ValueError as exc:
            self._log(f"Send failed: {exc}")
            return False
        assert self._link is not None
        try:
            self._link.write(payload)
        except TransportIOError as exc:
            self._log(f"Send failed: {exc}")
            return False
        self._log(f"TX: {text}")
        return True

    def update(self) -> int:
        """Drain pending frames into the log; returns how many were applied."""

        channel = self._channel
        if channel is None:
            return 0
        assembler = self._assembler
        # checked before draining: a dead reader has already queued its last frame
        error = None
        if assembler is not None and not assembler.running:
            error = assembler.error
        frames = channel.try_receive()
        self._append_frames(frames)
        if error is not None:
            self.disconnect()
            self.status = f"Disconnected: {error}"
        return len(frames)

    def clear_logs(self) -> None:
        self.logs.clear()

    def _append_frames(self, frames: List[bytes]) -> None:
        for frame in frames:
            self._log(f"RX: {bytes_to_hex(frame)}")

    def _log(self, line: str) -> None:
        self.logs.append(line)


__all__ = ["SerialTool", "STATUS_DISCONNECTED"]
