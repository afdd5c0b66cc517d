from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from signer.handshake import (
    AuthorizationRequest,
    AuthorizationState,
    Handshake,
    HandshakeCreateFailed,
    HandshakeDenied,
    HandshakeExpired,
    HandshakeNetworkExhausted,
    IdentityServiceError,
    PollResult,
    Transition,
)

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class _FakeIdentity:
    """Scripted identity service. Poll script items are PollResults or exceptions."""

    def __init__(
        self,
        *,
        polls: list[PollResult | Exception] | None = None,
        create_error: Exception | None = None,
        lifetime: timedelta = timedelta(minutes=10),
        clock: _Clock | None = None,
        advance_per_poll: timedelta = timedelta(0),
    ) -> None:
        self.polls = list(polls or [])
        self.create_error = create_error
        self.lifetime = lifetime
        self.clock = clock or _Clock()
        self.advance_per_poll = advance_per_poll
        self.create_calls = 0
        self.poll_calls = 0
        self.create_gate: asyncio.Event | None = None

    async def create_authorization_request(self) -> AuthorizationRequest:
        self.create_calls += 1
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.create_error is not None:
            raise self.create_error
        now = self.clock()
        return AuthorizationRequest(
            token=f"token-{self.create_calls}",
            approval_uri=f"https://client.warpcast.com/deeplinks/signed-key-request?token=token-{self.create_calls}",
            created_at=now,
            expires_at=now + self.lifetime,
        )

    async def poll_authorization_status(self, token: str) -> PollResult:
        self.poll_calls += 1
        self.clock.now += self.advance_per_poll
        if not self.polls:
            return PollResult(status="pending")
        item = self.polls.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


async def _fast_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


def _handshake(identity: _FakeIdentity, **kwargs) -> Handshake:  # type: ignore[no-untyped-def]
    kwargs.setdefault("poll_interval", 2.0)
    kwargs.setdefault("max_poll_failures", 3)
    return Handshake(identity, clock=identity.clock, sleep=_fast_sleep, **kwargs)


async def _spin(times: int = 20) -> None:
    for _ in range(times):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_approved_exposes_credential_exactly_once() -> None:
    identity = _FakeIdentity(polls=[PollResult("pending"), PollResult("approved", credential="cred-1")])
    handshake = _handshake(identity)

    assert handshake.current_state() is AuthorizationState.IDLE
    assert await handshake.start() is AuthorizationState.AWAITING_APPROVAL
    assert handshake.approval_uri() is not None and "token-1" in handshake.approval_uri()

    await asyncio.wait_for(handshake.join(), timeout=1)

    assert handshake.current_state() is AuthorizationState.APPROVED
    assert handshake.approval_uri() is None
    assert handshake.snapshot().request is None
    assert handshake.take_credential() == "cred-1"
    assert handshake.take_credential() is None
    assert identity.poll_calls == 2


@pytest.mark.asyncio
async def test_restart_from_approved_starts_fresh_attempt() -> None:
    identity = _FakeIdentity(polls=[PollResult("approved", credential="cred-1")])
    transitions: list[Transition] = []

    async def _listener(transition: Transition) -> None:
        transitions.append(transition)

    handshake = _handshake(identity, on_transition=_listener)
    await handshake.start()
    await asyncio.wait_for(handshake.join(), timeout=1)
    assert handshake.current_state() is AuthorizationState.APPROVED

    transitions.clear()
    assert await handshake.start() is AuthorizationState.AWAITING_APPROVAL
    assert [t.state for t in transitions] == [
        AuthorizationState.REQUESTING,
        AuthorizationState.AWAITING_APPROVAL,
    ]
    assert transitions[0].previous is AuthorizationState.APPROVED
    assert handshake.take_credential() is None
    assert identity.create_calls == 2

    handshake.cancel()


@pytest.mark.asyncio
async def test_expiry_stops_polling() -> None:
    clock = _Clock()
    identity = _FakeIdentity(
        clock=clock,
        lifetime=timedelta(seconds=10),
        advance_per_poll=timedelta(seconds=6),
    )
    handshake = _handshake(identity)

    await handshake.start()
    await asyncio.wait_for(handshake.join(), timeout=1)

    assert handshake.current_state() is AuthorizationState.EXPIRED
    assert isinstance(handshake.last_error, HandshakeExpired)
    polls_at_expiry = identity.poll_calls
    assert polls_at_expiry == 2

    await _spin()
    assert identity.poll_calls == polls_at_expiry


@pytest.mark.asyncio
async def test_cancel_returns_to_idle_and_stops_polling() -> None:
    identity = _FakeIdentity()
    handshake = _handshake(identity)

    await handshake.start()
    for _ in range(50):
        if identity.poll_calls:
            break
        await asyncio.sleep(0)
    assert identity.poll_calls >= 1

    assert handshake.cancel() is AuthorizationState.IDLE
    assert handshake.current_state() is AuthorizationState.IDLE
    assert handshake.approval_uri() is None
    polls_at_cancel = identity.poll_calls

    await _spin()
    assert identity.poll_calls == polls_at_cancel


@pytest.mark.asyncio
async def test_denied() -> None:
    identity = _FakeIdentity(polls=[PollResult("denied")])
    handshake = _handshake(identity)

    await handshake.start()
    await asyncio.wait_for(handshake.join(), timeout=1)

    assert handshake.current_state() is AuthorizationState.DENIED
    assert isinstance(handshake.last_error, HandshakeDenied)
    assert handshake.take_credential() is None


@pytest.mark.asyncio
async def test_create_failure_is_retryable() -> None:
    identity = _FakeIdentity(create_error=IdentityServiceError("boom"))
    handshake = _handshake(identity)

    assert await handshake.start() is AuthorizationState.FAILED
    assert isinstance(handshake.last_error, HandshakeCreateFailed)

    identity.create_error = None
    assert await handshake.start() is AuthorizationState.AWAITING_APPROVAL
    assert handshake.last_error is None
    handshake.cancel()


@pytest.mark.asyncio
async def test_consecutive_poll_failures_over_threshold_fail_the_handshake() -> None:
    identity = _FakeIdentity(polls=[IdentityServiceError("offline")] * 10)
    handshake = _handshake(identity, max_poll_failures=3)

    await handshake.start()
    await asyncio.wait_for(handshake.join(), timeout=1)

    assert handshake.current_state() is AuthorizationState.FAILED
    assert isinstance(handshake.last_error, HandshakeNetworkExhausted)
    assert identity.poll_calls == 4


@pytest.mark.asyncio
async def test_successful_poll_resets_failure_count() -> None:
    err = IdentityServiceError("flaky")
    identity = _FakeIdentity(
        polls=[err, err, err, PollResult("pending"), err, err, err, PollResult("approved", credential="c")]
    )
    handshake = _handshake(identity, max_poll_failures=3)

    await handshake.start()
    await asyncio.wait_for(handshake.join(), timeout=1)

    assert handshake.current_state() is AuthorizationState.APPROVED
    assert handshake.take_credential() == "c"


@pytest.mark.asyncio
async def test_start_while_awaiting_is_a_noop() -> None:
    identity = _FakeIdentity()
    handshake = _handshake(identity)

    await handshake.start()
    uri = handshake.approval_uri()
    assert await handshake.start() is AuthorizationState.AWAITING_APPROVAL
    assert identity.create_calls == 1
    assert handshake.approval_uri() == uri
    handshake.cancel()


@pytest.mark.asyncio
async def test_cancel_while_requesting_drops_late_request() -> None:
    identity = _FakeIdentity()
    identity.create_gate = asyncio.Event()
    handshake = _handshake(identity)

    start_task = asyncio.create_task(handshake.start())
    await _spin(5)
    assert handshake.current_state() is AuthorizationState.REQUESTING
    assert await handshake.start() is AuthorizationState.REQUESTING

    assert handshake.cancel() is AuthorizationState.IDLE
    identity.create_gate.set()
    assert await asyncio.wait_for(start_task, timeout=1) is AuthorizationState.IDLE

    await _spin()
    assert handshake.current_state() is AuthorizationState.IDLE
    assert identity.poll_calls == 0


@pytest.mark.asyncio
async def test_restore_and_reset() -> None:
    handshake = _handshake(_FakeIdentity())
    assert handshake.restore_approved() is AuthorizationState.APPROVED
    assert handshake.take_credential() is None
    assert handshake.reset() is AuthorizationState.IDLE


@pytest.mark.asyncio
async def test_listener_errors_do_not_break_state_machine() -> None:
    async def _broken(_transition: Transition) -> None:
        raise RuntimeError("listener failed")

    identity = _FakeIdentity(polls=[PollResult("approved", credential="c")])
    handshake = _handshake(identity, on_transition=_broken)

    await handshake.start()
    await asyncio.wait_for(handshake.join(), timeout=1)
    assert handshake.current_state() is AuthorizationState.APPROVED


@pytest.mark.asyncio
async def test_shutdown_stops_poller() -> None:
    identity = _FakeIdentity()
    handshake = _handshake(identity)
    await handshake.start()
    await handshake.shutdown()
    assert handshake.current_state() is AuthorizationState.IDLE


class _GatedFirstPoll(_FakeIdentity):
    """The first poll blocks until released, then reports approval."""

    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()
        self.first_poll_started = asyncio.Event()

    async def poll_authorization_status(self, token: str) -> PollResult:
        self.poll_calls += 1
        if self.poll_calls == 1:
            self.first_poll_started.set()
            await self.release.wait()
            return PollResult("approved", credential="stale-cred")
        return PollResult("pending")


@pytest.mark.asyncio
async def test_cancel_during_in_flight_poll_ignores_its_result() -> None:
    identity = _GatedFirstPoll()
    transitions: list[Transition] = []

    async def _listener(transition: Transition) -> None:
        transitions.append(transition)

    handshake = _handshake(identity, on_transition=_listener)
    await handshake.start()
    await asyncio.wait_for(identity.first_poll_started.wait(), timeout=1)

    assert handshake.cancel() is AuthorizationState.IDLE
    identity.release.set()
    await _spin()

    assert handshake.current_state() is AuthorizationState.IDLE
    assert handshake.take_credential() is None
    assert AuthorizationState.APPROVED not in [t.state for t in transitions]
    assert identity.poll_calls == 1


@pytest.mark.asyncio
async def test_in_flight_poll_from_cancelled_attempt_does_not_touch_new_attempt() -> None:
    identity = _GatedFirstPoll()
    transitions: list[Transition] = []

    async def _listener(transition: Transition) -> None:
        transitions.append(transition)

    handshake = _handshake(identity, on_transition=_listener)
    await handshake.start()
    await asyncio.wait_for(identity.first_poll_started.wait(), timeout=1)

    handshake.cancel()
    transitions.clear()
    assert await handshake.start() is AuthorizationState.AWAITING_APPROVAL
    second_uri = handshake.approval_uri()

    identity.release.set()
    await _spin()

    assert handshake.current_state() is AuthorizationState.AWAITING_APPROVAL
    assert handshake.approval_uri() == second_uri
    assert "token-2" in second_uri
    assert handshake.take_credential() is None
    assert [t.state for t in transitions] == [
        AuthorizationState.REQUESTING,
        AuthorizationState.AWAITING_APPROVAL,
    ]
    handshake.cancel()
