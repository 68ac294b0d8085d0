"""Shared CLI helpers: config overrides, logging setup and row output."""
from __future__ import annotations

import dataclasses
import logging
from argparse import Namespace
from typing import Any, Dict, Iterable, List

from ..codec.registers import DisplayFormat, RegisterRow
from ..config import AppConfig
from ..hardware.modbus import ModbusFunction, RtuEndpoint, parse_endpoint

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


def _collect(args: Namespace, mapping: Dict[str, str]) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    for attr, field_name in mapping.items():
        value = getattr(args, attr, None)
        if value is not None:
            changes[field_name] = value
    return changes


def apply_serial_overrides(config: AppConfig, args: Namespace) -> None:
    """Apply command-line serial settings stored in *args* to *config*."""

    changes = _collect(
        args,
        {
            'port': 'port',
            'baud': 'baud',
            'data_bits': 'data_bits',
            'parity': 'parity',
            'stop_bits': 'stop_bits',
            'read_timeout': 'read_timeout_s',
        },
    )
    if changes:
        config.serial = dataclasses.replace(config.serial, **changes)


def apply_modbus_overrides(config: AppConfig, args: Namespace) -> None:
    """Apply command-line request settings stored in *args* to *config*."""

    changes = _collect(
        args,
        {
            'unit': 'unit_id',
            'address': 'address',
            'quantity': 'quantity',
            'timeout': 'timeout_s',
        },
    )
    if getattr(args, 'function', None) is not None:
        changes['function'] = int(ModbusFunction.parse(args.function))
    if getattr(args, 'format', None) is not None:
        changes['display_format'] = DisplayFormat.parse(args.format).name.lower()
    endpoint_text = getattr(args, 'endpoint', None)
    if endpoint_text:
        endpoint = parse_endpoint(endpoint_text)
        if isinstance(endpoint, RtuEndpoint):
            changes['mode'] = 'rtu'
            config.serial = dataclasses.replace(config.serial, port=endpoint.port, baud=endpoint.baud)
        else:
            changes.update(mode='tcp', host=endpoint.host, port=endpoint.port)
    if changes:
        config.modbus = dataclasses.replace(config.modbus, **changes)
    interval = getattr(args, 'interval', None)
    if interval is not None:
        config.poll = dataclasses.replace(config.poll, interval_s=interval)


def format_rows(rows: Iterable[RegisterRow]) -> List[str]:
    """Return aligned ``address  value  raw`` lines for *rows*."""

    lines: List[str] = []
    for row in rows:
        raw = " ".join(f"{word:04X}" for word in row.words)
        lines.append(f"{row.address:>5}  {row.value:>24}  [{raw}]")
    return lines
