"""Byte/text helpers for the serial console."""
from __future__ import annotations

from enum import Enum


class SendFormat(Enum):
    ASCII = "ascii"
    HEX = "hex"


def hex_to_bytes(payload: str) -> bytes:
    """Parse ``"01 A0 ff"`` / ``"01a0ff"`` / ``"01,A0,FF"`` into bytes."""

    cleaned = "".join(payload.replace(",", " ").split())
    if len(cleaned) % 2:
        raise ValueError("Hex payload must contain an even number of digits")
    try:
        return bytes.fromhex(cleaned)
    except ValueError as exc:
        raise ValueError(f"Invalid hex payload {payload!r}") from exc


def bytes_to_hex(data: bytes) -> str:
    return " ".join(f"{byte:02X}" for byte in data)


def encode_payload(text: str, fmt: SendFormat) -> bytes:
    if fmt is SendFormat.HEX:
        return hex_to_bytes(text)
    return text.encode("utf-8")


__all__ = ["SendFormat", "bytes_to_hex", "encode_payload", "hex_to_bytes"]
