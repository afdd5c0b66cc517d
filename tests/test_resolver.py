from __future__ import annotations

import pytest

from mentions.resolver import HandleLookupError, HandleResolver, ResolutionUnavailable


class _FakeLookup:
    def __init__(self, results: dict[str, int | None], *, failures: list[HandleLookupError] | None = None) -> None:
        self.results = results
        self.failures = list(failures or [])
        self.calls: list[list[str]] = []

    async def lookup_handles(self, handles: list[str]) -> dict[str, int | None]:
        self.calls.append(list(handles))
        if self.failures:
            raise self.failures.pop(0)
        return {h: self.results.get(h) for h in handles}


@pytest.mark.asyncio
async def test_resolve_batches_and_deduplicates_case_insensitively() -> None:
    lookup = _FakeLookup({"alice": 123, "bob": 456})
    resolver = HandleResolver(lookup)

    result = await resolver.resolve(["Alice", "bob", "ALICE", "carol"])

    assert lookup.calls == [["alice", "bob", "carol"]]
    assert result == {"alice": 123, "bob": 456, "carol": None}


@pytest.mark.asyncio
async def test_resolve_empty_input_makes_no_call() -> None:
    lookup = _FakeLookup({})
    assert await HandleResolver(lookup).resolve([]) == {}
    assert lookup.calls == []


@pytest.mark.asyncio
async def test_transient_failure_is_retried_once() -> None:
    lookup = _FakeLookup({"alice": 1}, failures=[HandleLookupError("timeout", transient=True)])
    result = await HandleResolver(lookup).resolve(["alice"])
    assert result == {"alice": 1}
    assert len(lookup.calls) == 2


@pytest.mark.asyncio
async def test_two_transient_failures_surface_resolution_unavailable() -> None:
    lookup = _FakeLookup(
        {"alice": 1},
        failures=[HandleLookupError("503", transient=True), HandleLookupError("503", transient=True)],
    )
    with pytest.raises(ResolutionUnavailable):
        await HandleResolver(lookup).resolve(["alice"])
    assert len(lookup.calls) == 2


@pytest.mark.asyncio
async def test_non_transient_failure_is_not_retried() -> None:
    lookup = _FakeLookup({}, failures=[HandleLookupError("401", transient=False)])
    with pytest.raises(ResolutionUnavailable):
        await HandleResolver(lookup).resolve(["alice"])
    assert len(lookup.calls) == 1


@pytest.mark.asyncio
async def test_invalid_identifiers_are_treated_as_unresolved() -> None:
    class _BadLookup:
        async def lookup_handles(self, handles: list[str]) -> dict[str, object]:
            return {"alice": -5, "bob": "not-a-number", "carol": 2**64, "dave": "42"}

    result = await HandleResolver(_BadLookup()).resolve(["alice", "bob", "carol", "dave"])  # type: ignore[arg-type]
    assert result == {"alice": None, "bob": None, "carol": None, "dave": 42}
