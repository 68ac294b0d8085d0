"""Consumer-side tool state for the serial console and the register reader."""
from __future__ import annotations

from .modbus_tool import ModbusTool
from .serial_tool import SerialTool

__all__ = ["ModbusTool", "SerialTool"]
