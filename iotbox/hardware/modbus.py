"""Single-exchange Modbus register reads returning uniform word blocks."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, Iterator, Optional, Tuple, Union

from pymodbus.client import AsyncModbusSerialClient, AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

from ..config import AppConfig
from ..errors import EndpointError, ProtocolError, TransportConnectError, TransportIOError

logger = logging.getLogger(__name__)

DEFAULT_TCP_PORT = 502
DEFAULT_RTU_BAUD = 9600
RTU_PREFIX = "rtu:"


class ModbusFunction(IntEnum):
    READ_COILS = 1
    READ_DISCRETE_INPUTS = 2
    READ_HOLDING_REGISTERS = 3
    READ_INPUT_REGISTERS = 4

    @property
    def label(self) -> str:
        return _FUNCTION_LABELS[self]

    @classmethod
    def parse(cls, value: Union["ModbusFunction", int, str]) -> "ModbusFunction":
        """Resolve a function from its code (``3``, ``"03"``) or name (``"read_holding_registers"``)."""

        if isinstance(value, ModbusFunction):
            return value
        text = str(value).strip()
        if text.isdigit():
            try:
                return cls(int(text))
            except ValueError:
                pass
        else:
            key = text.upper().replace("-", "_").replace(" ", "_")
            if key in cls.__members__:
                return cls[key]
            if f"READ_{key}" in cls.__members__:
                return cls[f"READ_{key}"]
            if key in _FUNCTION_ALIASES:
                return cls[_FUNCTION_ALIASES[key]]
        allowed = ", ".join(f"{member.value} ({member.name.lower()})" for member in cls)
        raise ValueError(f"Unsupported function {value!r}; expected one of {allowed}")


_FUNCTION_ALIASES = {
    "COILS": "READ_COILS",
    "DISCRETE": "READ_DISCRETE_INPUTS",
    "HOLDING": "READ_HOLDING_REGISTERS",
    "INPUT": "READ_INPUT_REGISTERS",
}

_FUNCTION_LABELS = {
    ModbusFunction.READ_COILS: "01 Read Coils (0x)",
    ModbusFunction.READ_DISCRETE_INPUTS: "02 Read Discrete Inputs (1x)",
    ModbusFunction.READ_HOLDING_REGISTERS: "03 Read Holding Registers (4x)",
    ModbusFunction.READ_INPUT_REGISTERS: "04 Read Input Registers (3x)",
}


@dataclass(frozen=True, slots=True)
class TcpEndpoint:
    host: str
    port: int = DEFAULT_TCP_PORT

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class RtuEndpoint:
    port: str
    baud: int = DEFAULT_RTU_BAUD
    data_bits: int = 8
    parity: str = "N"
    stop_bits: int = 1

    def __str__(self) -> str:
        return f"{RTU_PREFIX}{self.port}@{self.baud}"


Endpoint = Union[TcpEndpoint, RtuEndpoint]


def _parse_port_number(text: str, source: str) -> int:
    try:
        port = int(text)
    except ValueError:
        raise EndpointError(f"Invalid port in endpoint {source!r}") from None
    if not 1 <= port <= 65535:
        raise EndpointError(f"Port out of range in endpoint {source!r}")
    return port


def parse_endpoint(text: str) -> Endpoint:
    """Parse ``host:port``, ``[ipv6]:port`` or ``rtu:<port>[@baud]``.

    Raises :class:`EndpointError` without touching the network.
    """

    source = (text or "").strip()
    if not source:
        raise EndpointError("Endpoint must not be empty")
    if source.lower().startswith(RTU_PREFIX):
        body = source[len(RTU_PREFIX):]
        port, _, baud_text = body.partition("@")
        port = port.strip()
        if not port:
            raise EndpointError(f"Missing serial port in endpoint {source!r}")
        baud = DEFAULT_RTU_BAUD
        if baud_text:
            try:
                baud = int(baud_text)
            except ValueError:
                raise EndpointError(f"Invalid baud rate in endpoint {source!r}") from None
            if baud <= 0:
                raise EndpointError(f"Invalid baud rate in endpoint {source!r}")
        return RtuEndpoint(port=port, baud=baud)
    if source.startswith("["):
        host, bracket, rest = source[1:].partition("]")
        if not bracket or not rest.startswith(":"):
            raise EndpointError(f"Expected [host]:port, got {source!r}")
        port_text = rest[1:]
    else:
        host, colon, port_text = source.rpartition(":")
        if not colon:
            raise EndpointError(f"Expected host:port, got {source!r}")
        if ":" in host:
            raise EndpointError(f"IPv6 hosts must be bracketed: {source!r}")
    host = host.strip()
    if not host or any(char.isspace() for char in host):
        raise EndpointError(f"Invalid host in endpoint {source!r}")
    return TcpEndpoint(host=host, port=_parse_port_number(port_text.strip(), source))


@dataclass(frozen=True, slots=True)
class PollRequest:
    """Immutable parameters of one register read; range checks are the caller's job."""

    endpoint: Endpoint
    unit_id: int
    function: ModbusFunction
    address: int
    quantity: int

    def describe(self) -> str:
        return (
            f"{self.function.name} unit={self.unit_id} addr={self.address} "
            f"qty={self.quantity} @ {self.endpoint}"
        )


@dataclass(frozen=True, slots=True)
class RegisterBlock:
    """The 16-bit words returned by exactly one request/response cycle."""

    words: Tuple[int, ...]
    address: int
    function: ModbusFunction

    def __len__(self) -> int:
        return len(self.words)

    def __iter__(self) -> Iterator[int]:
        return iter(self.words)


def endpoint_from_config(config: AppConfig) -> Endpoint:
    modbus = config.modbus
    if modbus.mode == "rtu":
        serial_cfg = config.serial
        if not serial_cfg.port:
            raise EndpointError("Modbus RTU mode requires serial.port")
        return RtuEndpoint(
            port=serial_cfg.port,
            baud=serial_cfg.baud,
            data_bits=serial_cfg.data_bits,
            parity=serial_cfg.parity,
            stop_bits=serial_cfg.stop_bits,
        )
    if not modbus.host:
        raise EndpointError("Modbus TCP mode requires modbus.host")
    return TcpEndpoint(host=modbus.host, port=modbus.port)


def request_from_config(config: AppConfig) -> PollRequest:
    modbus = config.modbus
    return PollRequest(
        endpoint=endpoint_from_config(config),
        unit_id=modbus.unit_id,
        function=ModbusFunction(modbus.function),
        address=modbus.address,
        quantity=modbus.quantity,
    )


ClientFactory = Callable[[Endpoint, float], Any]


def _default_client_factory(endpoint: Endpoint, timeout_s: float) -> Any:
    if isinstance(endpoint, TcpEndpoint):
        return AsyncModbusTcpClient(endpoint.host, port=endpoint.port, timeout=timeout_s, retries=0)
    return AsyncModbusSerialClient(
        endpoint.port,
        baudrate=endpoint.baud,
        bytesize=endpoint.data_bits,
        parity=endpoint.parity,
        stopbits=endpoint.stop_bits,
        timeout=timeout_s,
        retries=0,
    )


def _bits_to_words(response: Any, quantity: int) -> Tuple[int, ...]:
    # bit responses are padded to a byte boundary
    bits = list(getattr(response, "bits", None) or [])
    if len(bits) < quantity:
        raise ProtocolError(f"Short bit response: expected {quantity}, got {len(bits)}")
    return tuple(1 if bit else 0 for bit in bits[:quantity])


def _registers_to_words(response: Any, quantity: int) -> Tuple[int, ...]:
    registers = list(getattr(response, "registers", None) or [])
    if len(registers) < quantity:
        raise ProtocolError(f"Short register response: expected {quantity}, got {len(registers)}")
    return tuple(int(register) for register in registers[:quantity])


_DISPATCH: Dict[ModbusFunction, Tuple[str, Callable[[Any, int], Tuple[int, ...]]]] = {
    ModbusFunction.READ_COILS: ("read_coils", _bits_to_words),
    ModbusFunction.READ_DISCRETE_INPUTS: ("read_discrete_inputs", _bits_to_words),
    ModbusFunction.READ_HOLDING_REGISTERS: ("read_holding_registers", _registers_to_words),
    ModbusFunction.READ_INPUT_REGISTERS: ("read_input_registers", _registers_to_words),
}


class ModbusTransport:
    """Open a connection, perform one read, close it again.

    There is no pooling and no retry: every call to :meth:`request` is a
    fresh connection and exactly one exchange. All failures surface as a
    :class:`~iotbox.errors.TransportFailure` subclass.
    """

    def __init__(self, timeout_s: float = 3.0, client_factory: Optional[ClientFactory] = None) -> None:
        self._timeout_s = timeout_s if timeout_s > 0 else 3.0
        self._client_factory = client_factory or _default_client_factory

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    async def request(self, request: PollRequest) -> RegisterBlock:
        method_name, extract = _DISPATCH[request.function]
        client = self._client_factory(request.endpoint, self._timeout_s)
        try:
            try:
                connected = await client.connect()
            except (ModbusException, OSError, asyncio.TimeoutError) as exc:
                raise TransportConnectError(f"Unable to connect to {request.endpoint}: {exc}") from exc
            if not connected:
                raise TransportConnectError(f"Unable to connect to {request.endpoint}")
            method = getattr(client, method_name)
            try:
                response = await method(request.address, count=request.quantity, device_id=request.unit_id)
            except ModbusException as exc:
                raise ProtocolError(f"{request.function.name} failed: {exc}") from exc
            except (OSError, asyncio.TimeoutError) as exc:
                raise TransportIOError(f"{request.function.name} failed: {exc}") from exc
            if response is None or response.isError():
                raise ProtocolError(f"{request.function.name} returned {response}")
            words = extract(response, request.quantity)
        finally:
            client.close()
        logger.debug("%s -> %d word(s)", request.describe(), len(words))
        return RegisterBlock(words=words, address=request.address, function=request.function)


__all__ = [
    "Endpoint",
    "ModbusFunction",
    "ModbusTransport",
    "PollRequest",
    "RegisterBlock",
    "RtuEndpoint",
    "TcpEndpoint",
    "endpoint_from_config",
    "parse_endpoint",
    "request_from_config",
]
