"""Decoding helpers for registers and raw byte frames."""
from __future__ import annotations

from .registers import UNAVAILABLE, DisplayFormat, RegisterRow, build_rows, decode, required_word_count
from .text import SendFormat, bytes_to_hex, encode_payload, hex_to_bytes

__all__ = [
    "DisplayFormat",
    "RegisterRow",
    "SendFormat",
    "UNAVAILABLE",
    "build_rows",
    "bytes_to_hex",
    "decode",
    "encode_payload",
    "hex_to_bytes",
    "required_word_count",
]
