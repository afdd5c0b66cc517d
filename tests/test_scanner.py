from __future__ import annotations

import pytest

from mentions.scanner import (
    EncodingError,
    OffsetUnit,
    TextOffset,
    TextScanner,
    byte_offset,
    char_offset,
    encoded_length,
    scanner_for,
)


def test_ascii_offsets_are_identical() -> None:
    scanner = TextScanner("hello")
    assert scanner.char_length == 5
    assert scanner.byte_length == 5
    assert scanner.to_byte(3) == byte_offset(3)
    assert scanner.to_char(3) == char_offset(3)


def test_multibyte_offsets() -> None:
    # "é" is 2 bytes, "€" 3 bytes, "🎉" 4 bytes in UTF-8.
    scanner = TextScanner("aé€🎉b")
    assert scanner.char_length == 5
    assert scanner.byte_length == 1 + 2 + 3 + 4 + 1
    assert [scanner.to_byte(i).value for i in range(6)] == [0, 1, 3, 6, 10, 11]


def test_byte_char_round_trip_for_every_range() -> None:
    text = "gm 🌞 café @alice ✨!"
    scanner = TextScanner(text)
    for a in range(len(text) + 1):
        for b in range(a, len(text) + 1):
            start_b, end_b = scanner.byte_range(a, b)
            start_c, end_c = scanner.char_range(start_b, end_b)
            assert (start_c.value, end_c.value) == (a, b)
            assert scanner.byte_range(start_c, end_c) == (start_b, end_b)


def test_byte_offset_inside_a_sequence_is_rejected() -> None:
    scanner = TextScanner("🎉")
    with pytest.raises(ValueError):
        scanner.to_char(2)


def test_out_of_range_offsets_are_rejected() -> None:
    scanner = TextScanner("abc")
    with pytest.raises(ValueError):
        scanner.to_byte(4)
    with pytest.raises(ValueError):
        scanner.to_char(-1)


def test_lone_surrogate_raises_encoding_error() -> None:
    with pytest.raises(EncodingError):
        TextScanner("bad \ud800 text")


def test_invalid_utf8_bytes_raise_encoding_error() -> None:
    with pytest.raises(EncodingError):
        TextScanner(b"\xff\xfe")


def test_bytes_input_is_decoded() -> None:
    scanner = TextScanner("héllo".encode("utf-8"))
    assert scanner.text == "héllo"
    assert scanner.byte_length == 6


def test_utf16_counts_surrogate_pairs_as_two_units() -> None:
    assert encoded_length("a🎉", "utf-16-le") // 2 == 3


def test_offsets_in_different_units_do_not_compare() -> None:
    with pytest.raises(TypeError):
        _ = char_offset(1) < byte_offset(2)
    assert char_offset(1) != byte_offset(1)
    assert char_offset(1) < char_offset(2)


def test_offsets_of_wrong_unit_are_rejected_by_scanner() -> None:
    scanner = TextScanner("abc")
    with pytest.raises(TypeError):
        scanner.to_byte(byte_offset(1))


def test_negative_offset_is_invalid() -> None:
    with pytest.raises(ValueError):
        TextOffset(-1, OffsetUnit.BYTE)


def test_scanner_for_is_memoized() -> None:
    assert scanner_for("same text") is scanner_for("same text")


def test_codecs_with_byte_order_mark_are_rejected() -> None:
    with pytest.raises(ValueError, match="byte order mark"):
        TextScanner("abc", encoding="utf-16")
    assert TextScanner("a🎉", encoding="utf-16-le").byte_length == 6
