"""Turn composed text into a Farcaster cast body with mention byte offsets."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .extractor import MAX_HANDLE_LENGTH, MentionSpan, extract_mentions
from .resolver import HandleResolver, ResolutionUnavailable, normalize_handle
from .scanner import TextOffset

logger = logging.getLogger(__name__)

# Protocol limit on mentions per cast.
MAX_MENTIONS = 5


@dataclass(frozen=True)
class ResolvedMention:
    span: MentionSpan
    identifier: int | None

    @property
    def start_byte(self) -> TextOffset:
        return self.span.start_byte

    @property
    def end_byte(self) -> TextOffset:
        return self.span.end_byte

    @property
    def raw_handle(self) -> str:
        return self.span.raw_handle


@dataclass(frozen=True)
class ComposedMessage:
    """Encoded draft.

    `text` is the text as written. `mentions` holds only resolved mentions, in
    ascending `start_byte` order, with offsets into `text`.
    """

    text: str
    mentions: tuple[ResolvedMention, ...] = ()
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def to_cast_body(self) -> dict[str, Any]:
        """Wire shape: resolved "@handle" text is removed from the body and each
        mention is recorded by FID plus its byte position in the stripped body."""
        data = self.text.encode("utf-8")
        parts: list[bytes] = []
        mentions: list[int] = []
        positions: list[int] = []

        cursor = 0
        stripped_len = 0
        for mention in self.mentions:
            start, end = mention.start_byte.value, mention.end_byte.value
            chunk = data[cursor:start]
            parts.append(chunk)
            stripped_len += len(chunk)
            mentions.append(int(mention.identifier))  # type: ignore[arg-type]
            positions.append(stripped_len)
            cursor = end
        parts.append(data[cursor:])

        return {
            "text": b"".join(parts).decode("utf-8"),
            "mentions": mentions,
            "mentions_positions": positions,
        }


async def encode_message(
    text: str,
    resolver: HandleResolver,
    *,
    max_mentions: int = MAX_MENTIONS,
    max_handle_length: int = MAX_HANDLE_LENGTH,
) -> ComposedMessage:
    """Extract mentions, resolve them in one batch and build a ComposedMessage.

    Unresolved handles (and any beyond `max_mentions`, or repeats of an account
    already mentioned) stay in the text as plain text.

    Raises:
        EncodingError: If `text` is not well-formed.
    """
    spans = list(extract_mentions(text, max_handle_length=max_handle_length))
    if not spans:
        return ComposedMessage(text=text)

    warnings: list[str] = []
    try:
        identifiers = await resolver.resolve(span.raw_handle for span in spans)
    except ResolutionUnavailable as e:
        warnings.append(f"Mentions were sent as plain text: handle lookup unavailable ({e})")
        logger.warning("Sending %s mentions as plain text: %s", len(spans), e)
        return ComposedMessage(text=text, warnings=tuple(warnings))

    resolved: list[ResolvedMention] = []
    seen: set[int] = set()
    for span in spans:
        identifier = identifiers.get(normalize_handle(span.raw_handle))
        if identifier is None:
            warnings.append(f"Unknown user @{span.raw_handle} was left as plain text")
            continue
        if identifier in seen:
            continue
        if len(resolved) >= max_mentions:
            warnings.append(f"Mention limit ({max_mentions}) reached; @{span.raw_handle} was left as plain text")
            continue
        seen.add(identifier)
        resolved.append(ResolvedMention(span=span, identifier=identifier))

    for warning in warnings:
        logger.warning("%s", warning)

    resolved.sort(key=lambda m: m.start_byte.value)
    return ComposedMessage(text=text, mentions=tuple(resolved), warnings=tuple(warnings))
