"""CLI entry point for the iotbox serial console and register reader."""
from __future__ import annotations

import argparse
import concurrent.futures
import logging
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional

from ..codec.registers import DisplayFormat
from ..codec.text import SendFormat
from ..config import AppConfig, load_config
from ..errors import IoToolboxError, TransportFailure
from ..hardware.serial_link import list_ports
from ..tools import ModbusTool, SerialTool
from .common import apply_modbus_overrides, apply_serial_overrides, configure_logging, format_rows

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

UPDATE_PERIOD_S = 0.05
ROW_LIMITS = (10, 20, 50)


def _add_serial_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--port', type=str, help='Serial port, e.g. COM3 or /dev/ttyUSB0.')
    parser.add_argument('--baud', type=int, help='Baud rate (default: 9600).')
    parser.add_argument('--data-bits', type=int, choices=[5, 6, 7, 8], help='Data bits (default: 8).')
    parser.add_argument('--parity', type=str, choices=['N', 'O', 'E'], help='Parity (default: N).')
    parser.add_argument('--stop-bits', type=int, choices=[1, 2], help='Stop bits (default: 1).')
    parser.add_argument('--read-timeout', type=float, help='Per-read timeout in seconds (default: 0.1).')


def _add_modbus_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--endpoint', type=str, help='host:port, or rtu:<port>@<baud> for Modbus RTU.')
    parser.add_argument('--unit', type=int, help='Unit/slave id, 1-247 (default: 1).')
    parser.add_argument(
        '--function',
        type=str,
        help='Function code or name: 1/coils, 2/discrete, 3/holding, 4/input (default: 3).',
    )
    parser.add_argument('--address', type=int, help='Start address, 0-65535 (default: 0).')
    parser.add_argument('--quantity', type=int, help='Number of registers/bits, 1-125 (default: 10).')
    parser.add_argument(
        '--format',
        type=str,
        help='Display format: ' + ', '.join(member.name.lower() for member in DisplayFormat) + '.',
    )
    parser.add_argument('--timeout', type=float, help='Exchange timeout in seconds (default: 3).')
    parser.add_argument('--rows', type=int, choices=ROW_LIMITS, help='Show at most this many rows (default: all).')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='iotbox',
        description='Serial console and Modbus register reader for debugging embedded devices.',
    )
    parser.add_argument('--config', type=str, help='Path to a JSON, TOML or YAML config file.')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging.')
    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('ports', help='List serial ports.')

    monitor = commands.add_parser('monitor', help='Print frames received on a serial port.')
    _add_serial_arguments(monitor)
    monitor.add_argument('--duration', type=float, default=0.0, help='Seconds to listen (0 = until Ctrl-C).')

    send = commands.add_parser('send', help='Write one payload to a serial port and show replies.')
    _add_serial_arguments(send)
    payload = send.add_mutually_exclusive_group(required=True)
    payload.add_argument('--ascii', type=str, help='Text to send.')
    payload.add_argument('--hex', type=str, help='Hex bytes to send, e.g. "01 03 00 00".')
    send.add_argument('--wait', type=float, default=0.5, help='Seconds to listen for replies (default: 0.5).')

    read = commands.add_parser('read', help='Issue one register read and print the rows.')
    _add_serial_arguments(read)
    _add_modbus_arguments(read)

    poll = commands.add_parser('poll', help='Read registers repeatedly and print each block.')
    _add_serial_arguments(poll)
    _add_modbus_arguments(poll)
    poll.add_argument('--interval', type=float, help='Seconds between requests (default: 1).')
    poll.add_argument('--cycles', type=int, default=0, help='Stop after this many blocks (0 = until Ctrl-C).')
    return parser


def _run_ports(_config: AppConfig, _args: argparse.Namespace) -> int:
    ports = list_ports()
    if not ports:
        print('No serial ports found')
        return EXIT_OK
    print(f'Found {len(ports)} port(s):')
    for port in ports:
        print(f'  {port.display_label()}')
    return EXIT_OK


def _print_new_logs(logs, printed: int) -> int:
    lines = list(logs)
    # the log is bounded; when it has rotated, print what is left
    start = printed if printed <= len(lines) else 0
    for line in lines[start:]:
        print(line)
    return len(lines)


def _run_monitor(config: AppConfig, args: argparse.Namespace) -> int:
    tool = SerialTool(config)
    if not tool.connect():
        print(tool.status, file=sys.stderr)
        return EXIT_FAILURE
    print(f'{tool.status}; press Ctrl-C to stop')
    deadline = time.monotonic() + args.duration if args.duration > 0 else None
    printed = 0
    try:
        while tool.connected and (deadline is None or time.monotonic() < deadline):
            time.sleep(UPDATE_PERIOD_S)
            tool.update()
            printed = _print_new_logs(tool.logs, printed)
    except KeyboardInterrupt:
        pass
    finally:
        tool.disconnect()
        _print_new_logs(tool.logs, printed)
    if tool.status.startswith('Disconnected:'):
        print(tool.status, file=sys.stderr)
        return EXIT_FAILURE
    return EXIT_OK


def _run_send(config: AppConfig, args: argparse.Namespace) -> int:
    tool = SerialTool(config)
    if not tool.connect():
        print(tool.status, file=sys.stderr)
        return EXIT_FAILURE
    try:
        if args.hex is not None:
            ok = tool.send(args.hex, SendFormat.HEX)
        else:
            ok = tool.send(args.ascii, SendFormat.ASCII)
        if ok and args.wait > 0:
            time.sleep(args.wait)
            tool.update()
    finally:
        tool.disconnect()
    for line in tool.logs:
        print(line)
    return EXIT_OK if ok else EXIT_FAILURE


def _run_read(config: AppConfig, args: argparse.Namespace) -> int:
    with ModbusTool(config) as tool:
        future = tool.read_once()
        if future is None:
            print(tool.logs[-1], file=sys.stderr)
            return EXIT_USAGE
        try:
            future.result(timeout=config.modbus.timeout_s + 2.0)
        except TransportFailure as exc:
            print(f'Read failed: {exc}', file=sys.stderr)
            return EXIT_FAILURE
        except concurrent.futures.TimeoutError:
            print('Read failed: no result within timeout', file=sys.stderr)
            return EXIT_FAILURE
        tool.update()
        for line in format_rows(tool.rows(args.rows)):
            print(line)
    return EXIT_OK


def _run_poll(config: AppConfig, args: argparse.Namespace) -> int:
    blocks = 0
    with ModbusTool(config) as tool:
        if not tool.set_auto_poll(True):
            print(tool.logs[-1], file=sys.stderr)
            return EXIT_USAGE
        try:
            while args.cycles <= 0 or blocks < args.cycles:
                time.sleep(UPDATE_PERIOD_S)
                received = tool.blocks_received
                tool.update()
                # several blocks may land in one update; only the newest is shown
                if tool.blocks_received > received:
                    blocks += tool.blocks_received - received
                    print(f'--- block {blocks} ({tool.display_format.label})')
                    for line in format_rows(tool.rows(args.rows)):
                        print(line)
        except KeyboardInterrupt:
            pass
    return EXIT_OK


_COMMANDS: dict[str, Callable[[AppConfig, argparse.Namespace], int]] = {
    'ports': _run_ports,
    'monitor': _run_monitor,
    'send': _run_send,
    'read': _run_read,
    'poll': _run_poll,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    try:
        config = load_config(Path(args.config) if args.config else None)
        apply_serial_overrides(config, args)
        apply_modbus_overrides(config, args)
    except (IoToolboxError, ValueError) as exc:
        print(f'Error: {exc}', file=sys.stderr)
        return EXIT_USAGE
    try:
        return _COMMANDS[args.command](config, args)
    except IoToolboxError as exc:
        logger.debug('Command %s failed', args.command, exc_info=True)
        print(f'Error: {exc}', file=sys.stderr)
        return EXIT_FAILURE


if __name__ == '__main__':
    raise SystemExit(main())
