from __future__ import annotations

import math
import struct

import pytest

from iotbox.codec.registers import UNAVAILABLE, DisplayFormat, build_rows, decode, required_word_count


def _words_from(fmt: str, value) -> list[int]:
    packed = struct.pack(fmt, value)
    return [int.from_bytes(packed[i:i + 2], "big") for i in range(0, len(packed), 2)]


def test_word_counts_follow_format_width() -> None:
    assert [required_word_count(fmt) for fmt in DisplayFormat] == [1, 1, 1, 1, 2, 2, 2, 2, 4, 4]
    assert [fmt.inverse for fmt in DisplayFormat] == [
        False, False, False, False, False, True, False, True, False, True,
    ]


@pytest.mark.parametrize("fmt", list(DisplayFormat))
def test_short_groups_yield_sentinel(fmt: DisplayFormat) -> None:
    for length in range(fmt.word_count):
        assert decode([0x1234] * length, fmt) == UNAVAILABLE


@pytest.mark.parametrize("fmt", list(DisplayFormat))
def test_extra_words_are_ignored_and_output_is_stable(fmt: DisplayFormat) -> None:
    group = [0x4049, 0x0FDB, 0x1234, 0x5678]
    exact = decode(group[:fmt.word_count], fmt)
    assert decode(group + [0xFFFF, 0x0001], fmt) == exact
    assert decode(group, fmt) == decode(group, fmt)


def test_single_word_formats() -> None:
    assert decode([0xFFFF], DisplayFormat.SIGNED) == "-1"
    assert decode([0x8000], DisplayFormat.SIGNED) == "-32768"
    assert decode([0x7FFF], DisplayFormat.SIGNED) == "32767"
    assert decode([0xFFFF], DisplayFormat.UNSIGNED) == "65535"
    assert decode([0x00AB], DisplayFormat.HEX) == "0x00AB"
    assert decode([0xBEEF], DisplayFormat.HEX) == "0xBEEF"
    assert decode([5], DisplayFormat.BINARY) == "0000000000000101"
    assert decode([0xFFFF], DisplayFormat.BINARY) == "1" * 16


def test_long_round_trip_in_both_word_orders() -> None:
    words = _words_from(">i", -70000)
    assert words == [0xFFFE, 0xEE90]
    assert decode(words, DisplayFormat.LONG) == "-70000"
    assert decode(list(reversed(words)), DisplayFormat.LONG_INVERSE) == "-70000"
    assert decode([0x0001, 0x0000], DisplayFormat.LONG) == "65536"
    assert decode([0x0001, 0x0000], DisplayFormat.LONG_INVERSE) == "1"


def test_float_fixture_and_inverse_order() -> None:
    assert decode([0x3FC0, 0x0000], DisplayFormat.FLOAT) == "1.5"
    assert decode([0x0000, 0x3FC0], DisplayFormat.FLOAT_INVERSE) == "1.5"
    assert decode([0x3DCC, 0xCCCD], DisplayFormat.FLOAT) == "0.1"
    assert decode([0xC120, 0x0000], DisplayFormat.FLOAT) == "-10"
    assert decode([0x3F80, 0x0000], DisplayFormat.FLOAT) == "1"


def test_reals_render_positionally_without_exponent() -> None:
    assert decode([0x60AD, 0x78EC], DisplayFormat.FLOAT) == "100000000000000000000"
    assert decode([0x2EDB, 0xE6FF], DisplayFormat.FLOAT) == "0.0000000001"
    assert decode([0x8000, 0x0000], DisplayFormat.FLOAT) == "-0"
    assert decode([0x4000, 0, 0, 0], DisplayFormat.DOUBLE) == "2"
    assert decode(_words_from(">d", 1e-300), DisplayFormat.DOUBLE) == "0." + "0" * 299 + "1"


def test_float_special_values() -> None:
    assert decode([0x7FC0, 0x0000], DisplayFormat.FLOAT) == "NaN"
    assert decode([0x7F80, 0x0000], DisplayFormat.FLOAT) == "inf"
    assert decode([0xFF80, 0x0000], DisplayFormat.FLOAT) == "-inf"


def test_double_in_both_word_orders() -> None:
    words = _words_from(">d", 1.5)
    assert words == [0x3FF8, 0, 0, 0]
    assert decode(words, DisplayFormat.DOUBLE) == "1.5"
    assert decode(list(reversed(words)), DisplayFormat.DOUBLE_INVERSE) == "1.5"
    pi_words = _words_from(">d", math.pi)
    assert decode(pi_words, DisplayFormat.DOUBLE) == repr(math.pi)
    assert decode(list(reversed(pi_words)), DisplayFormat.DOUBLE_INVERSE) == repr(math.pi)


def test_parse_accepts_names_and_labels() -> None:
    assert DisplayFormat.parse("Long Inverse") is DisplayFormat.LONG_INVERSE
    assert DisplayFormat.parse("float-inverse") is DisplayFormat.FLOAT_INVERSE
    assert DisplayFormat.parse("hex") is DisplayFormat.HEX
    assert DisplayFormat.parse(DisplayFormat.DOUBLE) is DisplayFormat.DOUBLE
    with pytest.raises(ValueError):
        DisplayFormat.parse("octal")


def test_rows_for_holding_register_block() -> None:
    rows = build_rows(list(range(1, 11)), 100, DisplayFormat.SIGNED)
    assert [row.address for row in rows] == list(range(100, 110))
    assert [row.value for row in rows] == [str(value) for value in range(1, 11)]
    assert [row.index for row in rows] == list(range(10))


def test_rows_follow_format_width_and_keep_partial_group() -> None:
    words = list(range(1, 11))
    rows = build_rows(words, 100, DisplayFormat.LONG)
    assert [row.address for row in rows] == [100, 102, 104, 106, 108]
    assert rows[0].words == (1, 2)
    assert rows[0].value == str((1 << 16) | 2)

    doubles = build_rows(words, 0, DisplayFormat.DOUBLE)
    assert [row.address for row in doubles] == [0, 4, 8]
    assert doubles[-1].words == (9, 10)
    assert doubles[-1].value == UNAVAILABLE


def test_rows_of_empty_block() -> None:
    assert build_rows([], 0, DisplayFormat.HEX) == []
