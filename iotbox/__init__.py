"""Top-level package for iotbox, a serial and Modbus debugging toolbox."""
from __future__ import annotations

from .config import AppConfig, ModbusConfig, PollConfig, SerialConfig, load_config

__version__ = "1.0.0"

__all__ = ["AppConfig", "ModbusConfig", "PollConfig", "SerialConfig", "load_config"]
