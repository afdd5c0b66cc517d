"""Resolve mention handles to Farcaster ids (FIDs) with one batched lookup."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Protocol

logger = logging.getLogger(__name__)

MAX_IDENTIFIER = 2**64 - 1


class HandleLookupError(Exception):
    """Lookup collaborator failure. `transient` marks timeouts, transport errors and 5xx."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class ResolutionUnavailable(Exception):
    """The batch lookup failed (after one retry for transient errors)."""


class HandleLookup(Protocol):
    async def lookup_handles(self, handles: list[str]) -> Mapping[str, int | None]: ...


def normalize_handle(handle: str) -> str:
    return handle.strip().lstrip("@").lower()


def _coerce_identifier(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        identifier = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return None
    if not 0 < identifier <= MAX_IDENTIFIER:
        return None
    return identifier


class HandleResolver:
    """Batch handle resolver.

    Results are not cached between calls; concurrent calls share nothing but the
    lookup collaborator.
    """

    def __init__(self, lookup: HandleLookup, *, max_attempts: int = 2) -> None:
        self._lookup = lookup
        self._max_attempts = max(1, max_attempts)

    async def resolve(self, handles: Iterable[str]) -> dict[str, int | None]:
        """Map each (lowercased) handle to its identifier, or None if unknown.

        Raises:
            ResolutionUnavailable: If the batch lookup could not be completed.
        """
        unique = list(dict.fromkeys(h for h in (normalize_handle(h) for h in handles) if h))
        if not unique:
            return {}

        raw = await self._lookup_with_retry(unique)
        found = {normalize_handle(str(k)): _coerce_identifier(v) for k, v in raw.items()}
        return {handle: found.get(handle) for handle in unique}

    async def _lookup_with_retry(self, handles: list[str]) -> Mapping[str, int | None]:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await self._lookup.lookup_handles(handles)
            except HandleLookupError as e:
                if e.transient and attempt < self._max_attempts:
                    logger.warning(
                        "Handle lookup failed (attempt %s/%s), retrying: %s",
                        attempt,
                        self._max_attempts,
                        e,
                    )
                    continue
                logger.warning("Handle lookup unavailable for %s handles: %s", len(handles), e)
                raise ResolutionUnavailable(str(e)) from e

        raise ResolutionUnavailable("Handle lookup was not attempted")
