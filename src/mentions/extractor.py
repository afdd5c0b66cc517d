"""Find "@handle" mentions in composed text."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from .scanner import DEFAULT_ENCODING, TextOffset, scanner_for

# Farcaster fnames are at most 16 characters.
MAX_HANDLE_LENGTH = 16

_HANDLE_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_.-")
_TRAILING_PUNCTUATION = ".-"


@dataclass(frozen=True)
class MentionSpan:
    """Byte range covering "@handle" (the "@" included)."""

    start_byte: TextOffset
    end_byte: TextOffset
    raw_handle: str

    def __post_init__(self) -> None:
        if not self.start_byte < self.end_byte:
            raise ValueError("Mention span must be non-empty")


class MentionScan:
    """Lazy, restartable view over the mentions in a text.

    Iterating twice scans twice; no scan position is kept on the object.
    """

    def __init__(
        self,
        text: str,
        *,
        max_handle_length: int = MAX_HANDLE_LENGTH,
        encoding: str = DEFAULT_ENCODING,
    ) -> None:
        self._text = text
        self._max_handle_length = max_handle_length
        self._encoding = encoding

    def __iter__(self) -> Iterator[MentionSpan]:
        scanner = scanner_for(self._text, self._encoding)
        for start, end in _scan_char_spans(self._text, self._max_handle_length):
            start_b, end_b = scanner.byte_range(start, end)
            yield MentionSpan(start_byte=start_b, end_byte=end_b, raw_handle=self._text[start + 1 : end])


def extract_mentions(text: str, *, max_handle_length: int = MAX_HANDLE_LENGTH) -> MentionScan:
    # Validate eagerly so malformed text fails at the call site.
    scanner_for(text, DEFAULT_ENCODING)
    return MentionScan(text, max_handle_length=max_handle_length)


def _is_mention_boundary(text: str, at: int) -> bool:
    if at == 0:
        return True
    prev = text[at - 1]
    return not (prev.isalnum() or prev == "_")


def _scan_char_spans(text: str, max_handle_length: int) -> Iterator[tuple[int, int]]:
    """Yield (start, end) character spans; strictly left to right, no backtracking."""
    i = 0
    n = len(text)
    while i < n:
        if text[i] != "@" or not _is_mention_boundary(text, i):
            i += 1
            continue

        j = i + 1
        limit = min(n, j + max_handle_length)
        while j < limit and text[j] in _HANDLE_CHARS:
            j += 1

        end = j
        while end > i + 1 and text[end - 1] in _TRAILING_PUNCTUATION:
            end -= 1

        if end > i + 1:
            yield i, end
        i = max(end, i + 1)
