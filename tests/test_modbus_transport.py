from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Tuple

import pytest
from pymodbus.exceptions import ModbusException

from iotbox.config import AppConfig, ModbusConfig, SerialConfig
from iotbox.errors import (
    EndpointError,
    ProtocolError,
    TransportConnectError,
    TransportFailure,
    TransportIOError,
)
from iotbox.hardware.modbus import (
    ModbusFunction,
    ModbusTransport,
    PollRequest,
    RtuEndpoint,
    TcpEndpoint,
    parse_endpoint,
    request_from_config,
)


class FakeResponse:
    def __init__(self, registers: Optional[List[int]] = None, bits: Optional[List[bool]] = None, error: bool = False) -> None:
        self.registers = registers or []
        self.bits = bits or []
        self.error = error

    def isError(self) -> bool:
        return self.error


class FakeClient:
    """Records the calls made by the transport, mirroring the pymodbus async client API."""

    def __init__(
        self,
        response: Any = None,
        *,
        connected: bool = True,
        connect_error: Optional[Exception] = None,
        read_error: Optional[Exception] = None,
    ) -> None:
        self.response = response
        self.connected = connected
        self.connect_error = connect_error
        self.read_error = read_error
        self.calls: List[Tuple[str, int, int, int]] = []
        self.closed = False

    async def connect(self) -> bool:
        if self.connect_error is not None:
            raise self.connect_error
        return self.connected

    def close(self) -> None:
        self.closed = True

    async def _read(self, name: str, address: int, count: int, device_id: int) -> Any:
        self.calls.append((name, address, count, device_id))
        if self.read_error is not None:
            raise self.read_error
        return self.response

    async def read_coils(self, address: int, *, count: int, device_id: int) -> Any:
        return await self._read("read_coils", address, count, device_id)

    async def read_discrete_inputs(self, address: int, *, count: int, device_id: int) -> Any:
        return await self._read("read_discrete_inputs", address, count, device_id)

    async def read_holding_registers(self, address: int, *, count: int, device_id: int) -> Any:
        return await self._read("read_holding_registers", address, count, device_id)

    async def read_input_registers(self, address: int, *, count: int, device_id: int) -> Any:
        return await self._read("read_input_registers", address, count, device_id)


def _transport(client: FakeClient, factory_calls: Optional[list] = None) -> ModbusTransport:
    def factory(endpoint, timeout_s):
        if factory_calls is not None:
            factory_calls.append((endpoint, timeout_s))
        return client

    return ModbusTransport(timeout_s=1.5, client_factory=factory)


def _request(function: ModbusFunction = ModbusFunction.READ_HOLDING_REGISTERS, quantity: int = 3) -> PollRequest:
    return PollRequest(
        endpoint=TcpEndpoint("192.168.1.20", 502),
        unit_id=7,
        function=function,
        address=100,
        quantity=quantity,
    )


def test_holding_registers_become_block() -> None:
    client = FakeClient(FakeResponse(registers=[1, 2, 0xFFFF]))
    factory_calls: list = []
    block = asyncio.run(_transport(client, factory_calls).request(_request()))

    assert block.words == (1, 2, 0xFFFF)
    assert block.address == 100
    assert block.function is ModbusFunction.READ_HOLDING_REGISTERS
    assert len(block) == 3
    assert client.calls == [("read_holding_registers", 100, 3, 7)]
    assert client.closed
    assert factory_calls == [(TcpEndpoint("192.168.1.20", 502), 1.5)]


def test_input_registers_use_their_own_read() -> None:
    client = FakeClient(FakeResponse(registers=[10, 20, 30, 40]))
    block = asyncio.run(_transport(client).request(_request(ModbusFunction.READ_INPUT_REGISTERS)))

    assert block.words == (10, 20, 30)
    assert client.calls[0][0] == "read_input_registers"


@pytest.mark.parametrize(
    "function, method",
    [
        (ModbusFunction.READ_COILS, "read_coils"),
        (ModbusFunction.READ_DISCRETE_INPUTS, "read_discrete_inputs"),
    ],
)
def test_bits_widen_to_words_and_drop_padding(function: ModbusFunction, method: str) -> None:
    client = FakeClient(FakeResponse(bits=[True, False, True, False, False, False, False, False]))
    block = asyncio.run(_transport(client).request(_request(function)))

    assert block.words == (1, 0, 1)
    assert client.calls == [(method, 100, 3, 7)]


def test_short_response_is_protocol_error() -> None:
    client = FakeClient(FakeResponse(registers=[1]))
    with pytest.raises(ProtocolError):
        asyncio.run(_transport(client).request(_request()))
    assert client.closed


def test_exception_response_is_protocol_error() -> None:
    client = FakeClient(FakeResponse(error=True))
    with pytest.raises(ProtocolError):
        asyncio.run(_transport(client).request(_request()))
    assert client.closed


def test_missing_response_is_protocol_error() -> None:
    client = FakeClient(None)
    with pytest.raises(ProtocolError):
        asyncio.run(_transport(client).request(_request()))


def test_refused_connection_is_connect_error() -> None:
    client = FakeClient(FakeResponse(registers=[1, 2, 3]), connected=False)
    with pytest.raises(TransportConnectError):
        asyncio.run(_transport(client).request(_request()))
    assert client.calls == []
    assert client.closed


def test_connect_exception_is_connect_error() -> None:
    client = FakeClient(connect_error=ConnectionRefusedError("refused"))
    with pytest.raises(TransportConnectError):
        asyncio.run(_transport(client).request(_request()))


def test_modbus_exception_during_read_is_protocol_error() -> None:
    client = FakeClient(read_error=ModbusException("No response received"))
    with pytest.raises(ProtocolError):
        asyncio.run(_transport(client).request(_request()))
    assert client.closed


def test_timeout_during_read_is_io_error() -> None:
    client = FakeClient(read_error=asyncio.TimeoutError())
    with pytest.raises(TransportIOError) as info:
        asyncio.run(_transport(client).request(_request()))
    assert isinstance(info.value, TransportFailure)


def test_transport_replaces_non_positive_timeout() -> None:
    assert ModbusTransport(timeout_s=0).timeout_s == 3.0


@pytest.mark.parametrize(
    "text, expected",
    [
        ("127.0.0.1:502", TcpEndpoint("127.0.0.1", 502)),
        (" plc.local:1502 ", TcpEndpoint("plc.local", 1502)),
        ("[::1]:5020", TcpEndpoint("::1", 5020)),
        ("rtu:COM3@19200", RtuEndpoint("COM3", 19200)),
        ("rtu:/dev/ttyUSB0", RtuEndpoint("/dev/ttyUSB0", 9600)),
    ],
)
def test_parse_endpoint_accepts(text: str, expected) -> None:
    assert parse_endpoint(text) == expected


@pytest.mark.parametrize(
    "text",
    ["", "   ", "localhost", "host:abc", "host:0", "host:70000", ":502", "::1:502", "[::1]502", "rtu:", "rtu:COM3@fast", "my host:502"],
)
def test_parse_endpoint_rejects(text: str) -> None:
    with pytest.raises(EndpointError):
        parse_endpoint(text)


def test_endpoint_text_forms() -> None:
    assert str(TcpEndpoint("::1", 502)) == "[::1]:502"
    assert str(TcpEndpoint("10.0.0.1", 502)) == "10.0.0.1:502"
    assert str(RtuEndpoint("COM3", 19200)) == "rtu:COM3@19200"
    assert parse_endpoint(str(TcpEndpoint("::1", 502))) == TcpEndpoint("::1", 502)


@pytest.mark.parametrize(
    "value, expected",
    [
        (3, ModbusFunction.READ_HOLDING_REGISTERS),
        ("03", ModbusFunction.READ_HOLDING_REGISTERS),
        ("holding", ModbusFunction.READ_HOLDING_REGISTERS),
        ("input", ModbusFunction.READ_INPUT_REGISTERS),
        ("input_registers", ModbusFunction.READ_INPUT_REGISTERS),
        ("read-coils", ModbusFunction.READ_COILS),
        ("discrete", ModbusFunction.READ_DISCRETE_INPUTS),
    ],
)
def test_function_parse(value, expected: ModbusFunction) -> None:
    assert ModbusFunction.parse(value) is expected


@pytest.mark.parametrize("value", [0, 5, "16", "write", ""])
def test_function_parse_rejects(value) -> None:
    with pytest.raises(ValueError):
        ModbusFunction.parse(value)


def test_function_labels() -> None:
    assert ModbusFunction.READ_HOLDING_REGISTERS.label == "03 Read Holding Registers (4x)"
    assert ModbusFunction.READ_COILS.label.startswith("01 ")


def test_request_from_config_tcp_and_rtu() -> None:
    config = AppConfig(modbus=ModbusConfig(host="10.1.1.9", port=1502, unit_id=3, function=4, address=40, quantity=8))
    request = request_from_config(config)
    assert request.endpoint == TcpEndpoint("10.1.1.9", 1502)
    assert request.function is ModbusFunction.READ_INPUT_REGISTERS
    assert (request.unit_id, request.address, request.quantity) == (3, 40, 8)

    rtu = AppConfig(serial=SerialConfig(port="COM4", baud=19200, parity="E"), modbus=ModbusConfig(mode="rtu"))
    endpoint = request_from_config(rtu).endpoint
    assert endpoint == RtuEndpoint("COM4", 19200, 8, "E", 1)


def test_request_from_config_requires_endpoint() -> None:
    with pytest.raises(EndpointError):
        request_from_config(AppConfig(modbus=ModbusConfig(mode="rtu")))
    with pytest.raises(EndpointError):
        request_from_config(AppConfig(modbus=ModbusConfig(host="")))
