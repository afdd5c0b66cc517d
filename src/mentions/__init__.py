"""Mention extraction, resolution and byte-offset encoding."""

from __future__ import annotations

from .encoder import MAX_MENTIONS, ComposedMessage, ResolvedMention, encode_message
from .extractor import MAX_HANDLE_LENGTH, MentionSpan, extract_mentions
from .resolver import HandleLookup, HandleLookupError, HandleResolver, ResolutionUnavailable
from .scanner import EncodingError, OffsetUnit, TextOffset, TextScanner, encoded_length, scanner_for

__all__ = [
    "ComposedMessage",
    "EncodingError",
    "HandleLookup",
    "HandleLookupError",
    "HandleResolver",
    "MAX_HANDLE_LENGTH",
    "MAX_MENTIONS",
    "MentionSpan",
    "OffsetUnit",
    "ResolutionUnavailable",
    "ResolvedMention",
    "TextOffset",
    "TextScanner",
    "encode_message",
    "encoded_length",
    "extract_mentions",
    "scanner_for",
]
