"""Transport layer: serial byte stream and Modbus register reads."""
from __future__ import annotations

from .framer import FrameAssembler
from .modbus import (
    ModbusFunction,
    ModbusTransport,
    PollRequest,
    RegisterBlock,
    RtuEndpoint,
    TcpEndpoint,
    parse_endpoint,
)
from .serial_link import ListedPort, SerialLink, list_ports

__all__ = [
    "FrameAssembler",
    "ListedPort",
    "ModbusFunction",
    "ModbusTransport",
    "PollRequest",
    "RegisterBlock",
    "RtuEndpoint",
    "SerialLink",
    "TcpEndpoint",
    "list_ports",
    "parse_endpoint",
]
