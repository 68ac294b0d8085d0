"""Reinterpret raw 16-bit register groups as display strings."""
from __future__ import annotations

import math
import struct
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Sequence, Tuple

UNAVAILABLE = "-"


class DisplayFormat(Enum):
    """Numeric view of a register group: (label, word count, inverse word order)."""

    SIGNED = ("Signed", 1, False)
    UNSIGNED = ("Unsigned", 1, False)
    HEX = ("Hex", 1, False)
    BINARY = ("Binary", 1, False)
    LONG = ("Long", 2, False)
    LONG_INVERSE = ("Long Inverse", 2, True)
    FLOAT = ("Float", 2, False)
    FLOAT_INVERSE = ("Float Inverse", 2, True)
    DOUBLE = ("Double", 4, False)
    DOUBLE_INVERSE = ("Double Inverse", 4, True)

    def __init__(self, label: str, word_count: int, inverse: bool) -> None:
        self.label = label
        self.word_count = word_count
        self.inverse = inverse

    @classmethod
    def parse(cls, value: "DisplayFormat | str") -> "DisplayFormat":
        """Resolve a format from its enum member, name or label (case-insensitive)."""

        if isinstance(value, DisplayFormat):
            return value
        key = str(value or "").strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls[key]
        except KeyError:
            allowed = ", ".join(member.name.lower() for member in cls)
            raise ValueError(f"Unknown display format {value!r}; expected one of {allowed}") from None


def required_word_count(fmt: DisplayFormat) -> int:
    return fmt.word_count


def _assemble(words: Sequence[int], count: int, inverse: bool) -> int:
    group = [int(word) & 0xFFFF for word in words[:count]]
    if inverse:
        group.reverse()
    value = 0
    for word in group:
        value = (value << 16) | word
    return value


def _to_signed(value: int, bits: int) -> int:
    if value & (1 << (bits - 1)):
        return value - (1 << bits)
    return value


def _format_real(value: float, digits: int, pack: Callable[[float], bytes]) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    # shortest decimal that maps back onto the same bit pattern, never in exponent form
    target = pack(value)
    for precision in range(1, digits + 1):
        text = f"{value:.{precision}g}"
        try:
            if pack(float(text)) == target:
                return _positional(text)
        except OverflowError:
            continue
    return _positional(repr(value))


def _positional(text: str) -> str:
    rendered = format(Decimal(text), "f")
    if rendered.endswith(".0"):
        rendered = rendered[:-2]
    return rendered


def _pack_single(value: float) -> bytes:
    return struct.pack(">f", value)


def _pack_double(value: float) -> bytes:
    return struct.pack(">d", value)


def _decode_float(bits: int) -> str:
    (value,) = struct.unpack(">f", bits.to_bytes(4, "big"))
    return _format_real(value, 9, _pack_single)


def _decode_double(bits: int) -> str:
    (value,) = struct.unpack(">d", bits.to_bytes(8, "big"))
    return _format_real(value, 17, _pack_double)


_DECODERS: Dict[DisplayFormat, Callable[[int], str]] = {
    DisplayFormat.SIGNED: lambda bits: str(_to_signed(bits, 16)),
    DisplayFormat.UNSIGNED: str,
    DisplayFormat.HEX: lambda bits: f"0x{bits:04X}",
    DisplayFormat.BINARY: lambda bits: f"{bits:016b}",
    DisplayFormat.LONG: lambda bits: str(_to_signed(bits, 32)),
    DisplayFormat.LONG_INVERSE: lambda bits: str(_to_signed(bits, 32)),
    DisplayFormat.FLOAT: _decode_float,
    DisplayFormat.FLOAT_INVERSE: _decode_float,
    DisplayFormat.DOUBLE: _decode_double,
    DisplayFormat.DOUBLE_INVERSE: _decode_double,
}


def decode(words: Sequence[int], fmt: DisplayFormat) -> str:
    """Render the first ``fmt.word_count`` words of *words* as text.

    Never raises: a group shorter than the format needs yields ``UNAVAILABLE``.
    Words beyond the required count are ignored.
    """

    if len(words) < fmt.word_count:
        return UNAVAILABLE
    bits = _assemble(words, fmt.word_count, fmt.inverse)
    return _DECODERS[fmt](bits)


@dataclass(frozen=True, slots=True)
class RegisterRow:
    """One displayed row: the register group starting at *address*."""

    index: int
    address: int
    words: Tuple[int, ...]
    value: str


def build_rows(words: Sequence[int], start_address: int, fmt: DisplayFormat) -> List[RegisterRow]:
    """Partition *words* into groups of the format's width and decode each group.

    Row *i* starts at ``start_address + i * fmt.word_count``. A trailing group
    that is too short still gets a row, showing ``UNAVAILABLE``.
    """

    step = fmt.word_count
    rows: List[RegisterRow] = []
    for index, offset in enumerate(range(0, len(words), step)):
        group = tuple(int(word) for word in words[offset:offset + step])
        rows.append(
            RegisterRow(
                index=index,
                address=start_address + offset,
                words=group,
                value=decode(group, fmt),
            )
        )
    return rows


__all__ = [
    "DisplayFormat",
    "RegisterRow",
    "UNAVAILABLE",
    "build_rows",
    "decode",
    "required_word_count",
]
