"""Configuration management for the iotbox serial and Modbus tools."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .codec.registers import DisplayFormat
from .errors import ConfigError

DATA_BITS = (5, 6, 7, 8)
PARITIES = {'N': 'None', 'O': 'Odd', 'E': 'Even'}
STOP_BITS = (1, 2)
MODBUS_MODES = {'tcp', 'rtu'}
MODBUS_FUNCTIONS = (1, 2, 3, 4)

MAX_UNIT_ID = 247
MAX_ADDRESS = 0xFFFF
MAX_QUANTITY = 125


def _coerce_int(value: Any, label: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{label} must be an integer, got {value!r}") from exc


def _coerce_float(value: Any, default: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if result < 0:
        return default
    return result


def _check_range(value: int, label: str, minimum: int, maximum: int) -> int:
    if value < minimum or value > maximum:
        raise ConfigError(f"{label} must be between {minimum} and {maximum}, got {value}")
    return value


@dataclass(slots=True)
class SerialConfig:
    """Line settings for the raw serial link (also used by Modbus RTU)."""

    port: Optional[str] = None
    baud: int = 9600
    data_bits: int = 8
    parity: str = 'N'
    stop_bits: int = 1
    read_timeout_s: float = 0.1
    write_timeout_s: float = 0.5

    def __post_init__(self) -> None:
        if isinstance(self.port, str):
            self.port = self.port.strip() or None
        self.baud = _coerce_int(self.baud, 'baud')
        if self.baud <= 0:
            raise ConfigError(f"baud must be positive, got {self.baud}")
        self.data_bits = _coerce_int(self.data_bits, 'data_bits')
        if self.data_bits not in DATA_BITS:
            raise ConfigError(f"data_bits must be one of {DATA_BITS}, got {self.data_bits}")
        self.parity = self._normalise_parity(self.parity)
        self.stop_bits = _coerce_int(self.stop_bits, 'stop_bits')
        if self.stop_bits not in STOP_BITS:
            raise ConfigError(f"stop_bits must be one of {STOP_BITS}, got {self.stop_bits}")
        self.read_timeout_s = _coerce_float(self.read_timeout_s, 0.1)
        self.write_timeout_s = _coerce_float(self.write_timeout_s, 0.5)

    @staticmethod
    def _normalise_parity(value: Optional[str]) -> str:
        candidate = (value or 'N').strip().upper()[:1]
        if candidate not in PARITIES:
            allowed = ", ".join(f"{key} ({name})" for key, name in PARITIES.items())
            raise ConfigError(f"parity must be one of {allowed}")
        return candidate


@dataclass(slots=True)
class ModbusConfig:
    """Request parameters for the register tool."""

    mode: str = 'tcp'
    host: str = '127.0.0.1'
    port: int = 502
    unit_id: int = 1
    function: int = 3
    address: int = 0
    quantity: int = 10
    timeout_s: float = 3.0
    display_format: str = 'signed'

    def __post_init__(self) -> None:
        self.mode = (self.mode or 'tcp').strip().lower()
        if self.mode not in MODBUS_MODES:
            raise ConfigError(f"mode must be one of {sorted(MODBUS_MODES)}, got {self.mode!r}")
        self.host = (self.host or '').strip()
        self.port = _check_range(_coerce_int(self.port, 'port'), 'port', 1, 65535)
        self.unit_id = _check_range(_coerce_int(self.unit_id, 'unit_id'), 'unit_id', 1, MAX_UNIT_ID)
        self.function = _coerce_int(self.function, 'function')
        if self.function not in MODBUS_FUNCTIONS:
            raise ConfigError(f"function must be one of {MODBUS_FUNCTIONS}, got {self.function}")
        self.address = _check_range(_coerce_int(self.address, 'address'), 'address', 0, MAX_ADDRESS)
        self.quantity = _check_range(_coerce_int(self.quantity, 'quantity'), 'quantity', 1, MAX_QUANTITY)
        timeout = _coerce_float(self.timeout_s, 3.0)
        self.timeout_s = timeout if timeout > 0 else 3.0
        try:
            self.display_format = DisplayFormat.parse(self.display_format).name.lower()
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc


@dataclass(slots=True)
class PollConfig:
    '''Timing of the background units and size of the tool logs.'''

    interval_s: float = 1.0
    idle_threshold_s: float = 0.03
    idle_sleep_s: float = 0.005
    max_log_lines: int = 2000

    def __post_init__(self) -> None:
        interval = _coerce_float(self.interval_s, 1.0)
        self.interval_s = interval if interval > 0 else 1.0
        self.idle_threshold_s = _coerce_float(self.idle_threshold_s, 0.03)
        self.idle_sleep_s = _coerce_float(self.idle_sleep_s, 0.005)
        try:
            lines = int(self.max_log_lines)
        except (TypeError, ValueError):
            lines = 2000
        self.max_log_lines = max(lines, 1)


@dataclass(slots=True)
class AppConfig:
    """Top-level application configuration bundle."""

    serial: SerialConfig = field(default_factory=SerialConfig)
    modbus: ModbusConfig = field(default_factory=ModbusConfig)
    poll: PollConfig = field(default_factory=PollConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        """Create a configuration instance from a nested dictionary."""

        def _section(name: str, factory: Any) -> Any:
            data = payload.get(name, {}) if payload else {}
            if data is None:
                data = {}
            if not isinstance(data, dict):
                raise ConfigError(f"Expected mapping for section '{name}', got {type(data).__name__}")
            try:
                return factory(**data)
            except TypeError as exc:
                raise ConfigError(f"Invalid keys in section '{name}': {exc}") from exc

        return cls(
            serial=_section("serial", SerialConfig),
            modbus=_section("modbus", ModbusConfig),
            poll=_section("poll", PollConfig),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return a serialisable representation of the configuration."""

        def _asdict(obj: Any) -> Dict[str, Any]:
            return {name: getattr(obj, name) for name in obj.__dataclass_fields__}  # type: ignore[attr-defined]

        return {
            'serial': _asdict(self.serial),
            'modbus': _asdict(self.modbus),
            'poll': _asdict(self.poll),
        }


def load_config(path: Optional[Path]) -> AppConfig:
    """Load configuration from *path* if provided, otherwise return defaults."""

    if path is None:
        return AppConfig()
    resolved = Path(path).expanduser()
    if not resolved.exists():
        return AppConfig()
    payload: Dict[str, Any]
    suffix = resolved.suffix.lower()
    if suffix in {".json", ".jsn"}:
        payload = _load_json(resolved)
    elif suffix in {".toml", ".tml"}:
        payload = _load_toml(resolved)
    elif suffix in {".yaml", ".yml"}:
        payload = _load_yaml(resolved)
    else:
        raise ConfigError(f"Unsupported configuration format: {resolved.suffix}")
    return AppConfig.from_dict(payload)


def _load_json(path: Path) -> Dict[str, Any]:
    import json

    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _load_toml(path: Path) -> Dict[str, Any]:
    try:
        import tomllib  # Python >= 3.11
    except ModuleNotFoundError:
        try:
            import tomli as tomllib  # backport declared for Python 3.10
        except ModuleNotFoundError as exc:
            raise ConfigError("tomli is required to parse TOML configuration files on Python < 3.11") from exc
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        import yaml  # type: ignore
    except ModuleNotFoundError as exc:
        raise ConfigError("PyYAML is required to parse YAML configuration files") from exc
    with path.open("r", encoding="utf-8") as handle:
        try:
            return yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
