"""Serial transport: port enumeration and a lock-guarded byte handle."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import serial
from serial.tools import list_ports as serial_list_ports

from ..config import SerialConfig
from ..errors import TransportConnectError, TransportIOError

logger = logging.getLogger(__name__)


class ByteStream(Protocol):
    """The subset of :class:`serial.Serial` used by the link."""

    in_waiting: int

    def read(self, size: int = 1) -> bytes:  # pragma: no cover - protocol signature
        ...

    def write(self, data: bytes) -> Optional[int]:  # pragma: no cover - protocol signature
        ...

    def close(self) -> None:  # pragma: no cover - protocol signature
        ...


@dataclass(slots=True)
class ListedPort:
    """Metadata describing a serial port visible to the OS."""

    device: str
    description: Optional[str] = None
    manufacturer: Optional[str] = None
    hwid: Optional[str] = None
    vid: Optional[int] = None
    pid: Optional[int] = None

    def display_label(self) -> str:
        extras = [part for part in (self.description, self.manufacturer) if part and part != "n/a"]
        if self.vid is not None and self.pid is not None:
            extras.append(f"VID:PID={self.vid:04X}:{self.pid:04X}")
        if not extras:
            return self.device
        return f"{self.device} - {' '.join(extras)}"


def list_ports() -> list[ListedPort]:
    """Enumerate serial ports, sorted by device name."""

    ports: list[ListedPort] = []
    for info in serial_list_ports.comports():
        ports.append(
            ListedPort(
                device=info.device,
                description=getattr(info, "description", None),
                manufacturer=getattr(info, "manufacturer", None),
                hwid=getattr(info, "hwid", None),
                vid=getattr(info, "vid", None),
                pid=getattr(info, "pid", None),
            )
        )
    ports.sort(key=lambda port: port.device)
    return ports


SerialFactory = Callable[[SerialConfig], ByteStream]


def _default_serial_factory(config: SerialConfig) -> ByteStream:
    return serial.Serial(
        port=config.port,
        baudrate=config.baud,
        bytesize=config.data_bits,
        parity=config.parity,
        stopbits=config.stop_bits,
        timeout=config.read_timeout_s,
        write_timeout=config.write_timeout_s,
    )


class SerialLink:
    """An open serial port shared by one reader and an occasional writer.

    The lock is held for exactly one underlying ``read`` or ``write`` call, so
    the reader's idle waits never block a foreground send.
    """

    def __init__(
        self,
        config: SerialConfig,
        serial_factory: Optional[SerialFactory] = None,
        chunk_size: int = 1024,
    ) -> None:
        self._config = config
        self._serial_factory = serial_factory or _default_serial_factory
        self._chunk_size = max(chunk_size, 1)
        self._handle: Optional[ByteStream] = None
        self._lock = threading.Lock()

    @property
    def config(self) -> SerialConfig:
        return self._config

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def open(self) -> "SerialLink":
        if self._handle is not None:
            return self
        if not self._config.port:
            raise TransportConnectError("No serial port selected")
        try:
            self._handle = self._serial_factory(self._config)
        except (serial.SerialException, OSError, ValueError) as exc:
            raise TransportConnectError(f"Cannot open {self._config.port}: {exc}") from exc
        logger.info(
            "Opened %s at %d baud (%d%s%d)",
            self._config.port,
            self._config.baud,
            self._config.data_bits,
            self._config.parity,
            self._config.stop_bits,
        )
        return self

    def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        with self._lock:
            try:
                handle.close()
            except (serial.SerialException, OSError) as exc:
                logger.warning("Failed to close %s cleanly: %s", self._config.port, exc)
        logger.info("Closed %s", self._config.port)

    def read_chunk(self) -> bytes:
        """Read whatever arrives within the port's read timeout (may be empty)."""

        handle = self._require_handle()
        with self._lock:
            try:
                pending = handle.in_waiting
                return bytes(handle.read(min(max(pending, 1), self._chunk_size)))
            except (serial.SerialException, OSError) as exc:
                raise TransportIOError(f"Read from {self._config.port} failed: {exc}") from exc

    def write(self, payload: bytes) -> int:
        if not isinstance(payload, (bytes, bytearray)):
            raise TypeError("Serial payloads must be bytes-like")
        handle = self._require_handle()
        with self._lock:
            try:
                written = handle.write(bytes(payload))
            except (serial.SerialException, OSError) as exc:
                raise TransportIOError(f"Write to {self._config.port} failed: {exc}") from exc
        return len(payload) if written is None else int(written)

    def _require_handle(self) -> ByteStream:
        handle = self._handle
        if handle is None:
            raise TransportIOError("Serial port is not open")
        return handle

    def __enter__(self) -> "SerialLink":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["ByteStream", "ListedPort", "SerialLink", "list_ports"]
