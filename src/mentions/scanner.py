"""Character/byte offset conversion for variable-width encodings.

Farcaster mention positions are UTF-8 byte offsets and Telegram entity offsets
are UTF-16 code units, while Python indexes strings by code point. A scanner
precomputes the encoded width of every code point once so conversions in
either direction are cheap.

Widths are measured per code point, so codecs that write a byte order mark
(plain "utf-16", "utf-32") are rejected; use the -le/-be variants.
"""

from __future__ import annotations

import bisect
import enum
import functools
from itertools import accumulate

DEFAULT_ENCODING = "utf-8"


class EncodingError(ValueError):
    """Raised when text cannot be encoded/decoded (e.g. lone surrogates)."""


class OffsetUnit(str, enum.Enum):
    CHAR = "char"
    BYTE = "byte"


@functools.total_ordering
class TextOffset:
    """An offset tagged with its unit; offsets in different units never compare."""

    __slots__ = ("value", "unit")

    def __init__(self, value: int, unit: OffsetUnit) -> None:
        if value < 0:
            raise ValueError(f"Offset must be non-negative, got {value}")
        self.value = int(value)
        self.unit = OffsetUnit(unit)

    def _check_unit(self, other: object) -> TextOffset:
        if not isinstance(other, TextOffset):
            return NotImplemented  # type: ignore[return-value]
        if other.unit != self.unit:
            raise TypeError(f"Cannot compare {self.unit.value} offset with {other.unit.value} offset")
        return other

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TextOffset):
            return NotImplemented
        return self.unit == other.unit and self.value == other.value

    def __lt__(self, other: object) -> bool:
        checked = self._check_unit(other)
        if checked is NotImplemented:
            return NotImplemented
        return self.value < checked.value

    def __hash__(self) -> int:
        return hash((self.value, self.unit))

    def __index__(self) -> int:
        return self.value

    def __repr__(self) -> str:
        return f"TextOffset({self.value}, {self.unit.value})"


def char_offset(value: int) -> TextOffset:
    return TextOffset(value, OffsetUnit.CHAR)


def byte_offset(value: int) -> TextOffset:
    return TextOffset(value, OffsetUnit.BYTE)


class TextScanner:
    """Offset conversions for one immutable text buffer."""

    def __init__(self, text: str | bytes, *, encoding: str = DEFAULT_ENCODING) -> None:
        if "".encode(encoding):
            raise ValueError(f"{encoding} writes a byte order mark; use an explicit -le or -be variant")

        if isinstance(text, bytes):
            try:
                text = text.decode(encoding)
            except UnicodeDecodeError as e:
                raise EncodingError(f"Text is not valid {encoding}: {e}") from e

        self.text = text
        self.encoding = encoding

        try:
            widths = [len(ch.encode(encoding)) for ch in text]
        except UnicodeEncodeError as e:
            raise EncodingError(f"Text cannot be encoded as {encoding}: {e}") from e

        # _boundaries[i] is the byte offset of code point i; last entry is the total.
        self._boundaries: list[int] = [0, *accumulate(widths)]

    @property
    def char_length(self) -> int:
        return len(self.text)

    @property
    def byte_length(self) -> int:
        return self._boundaries[-1]

    def to_byte(self, offset: TextOffset | int) -> TextOffset:
        """Convert a character offset into a byte offset."""
        index = _unwrap(offset, OffsetUnit.CHAR)
        if not 0 <= index <= self.char_length:
            raise ValueError(f"Character offset {index} out of range 0..{self.char_length}")
        return byte_offset(self._boundaries[index])

    def to_char(self, offset: TextOffset | int) -> TextOffset:
        """Convert a byte offset into a character offset.

        The byte offset must fall on a code point boundary.
        """
        index = _unwrap(offset, OffsetUnit.BYTE)
        if not 0 <= index <= self.byte_length:
            raise ValueError(f"Byte offset {index} out of range 0..{self.byte_length}")

        pos = bisect.bisect_left(self._boundaries, index)
        if self._boundaries[pos] != index:
            raise ValueError(f"Byte offset {index} falls inside a multi-byte sequence")
        return char_offset(pos)

    def byte_range(self, start: TextOffset | int, end: TextOffset | int) -> tuple[TextOffset, TextOffset]:
        start_b, end_b = self.to_byte(start), self.to_byte(end)
        if end_b < start_b:
            raise ValueError("Range end precedes start")
        return start_b, end_b

    def char_range(self, start: TextOffset | int, end: TextOffset | int) -> tuple[TextOffset, TextOffset]:
        start_c, end_c = self.to_char(start), self.to_char(end)
        if end_c < start_c:
            raise ValueError("Range end precedes start")
        return start_c, end_c


def _unwrap(offset: TextOffset | int, unit: OffsetUnit) -> int:
    if isinstance(offset, TextOffset):
        if offset.unit != unit:
            raise TypeError(f"Expected a {unit.value} offset, got a {offset.unit.value} offset")
        return offset.value
    return int(offset)


@functools.lru_cache(maxsize=256)
def scanner_for(text: str, encoding: str = DEFAULT_ENCODING) -> TextScanner:
    """Memoized scanner; text is immutable so a cached scanner stays valid."""
    return TextScanner(text, encoding=encoding)


def encoded_length(text: str, encoding: str = DEFAULT_ENCODING) -> int:
    return scanner_for(text, encoding).byte_length
