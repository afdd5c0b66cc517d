"""Out-of-band signer authorization handshake.

The identity service creates a signed-key request for a fresh signer key and
returns a deep link. The user approves it in their Farcaster wallet app while
we poll the request status in a background task. The handshake always ends in
a state the caller can read back (`APPROVED`, `DENIED`, `EXPIRED`, `FAILED`)
or is explicitly cancelled back to `IDLE`.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Literal, Protocol

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 2.0
DEFAULT_MAX_POLL_FAILURES = 3


class AuthorizationState(str, enum.Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (AuthorizationState.REQUESTING, AuthorizationState.AWAITING_APPROVAL)

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {
        AuthorizationState.APPROVED,
        AuthorizationState.DENIED,
        AuthorizationState.EXPIRED,
        AuthorizationState.FAILED,
    }
)


@dataclass(frozen=True)
class AuthorizationRequest:
    token: str
    approval_uri: str
    created_at: datetime
    expires_at: datetime

    @property
    def lifetime_seconds(self) -> float:
        return (self.expires_at - self.created_at).total_seconds()


PollStatus = Literal["pending", "approved", "denied"]


@dataclass(frozen=True)
class PollResult:
    status: PollStatus
    credential: Any = None


class IdentityServiceError(Exception):
    """Identity service call failed (network error, bad response)."""


class IdentityService(Protocol):
    async def create_authorization_request(self) -> AuthorizationRequest: ...

    async def poll_authorization_status(self, token: str) -> PollResult: ...


class HandshakeError(Exception):
    """Base class for terminal handshake outcomes."""


class HandshakeCreateFailed(HandshakeError):
    pass


class HandshakeDenied(HandshakeError):
    pass


class HandshakeExpired(HandshakeError):
    pass


class HandshakeNetworkExhausted(HandshakeError):
    pass


@dataclass(frozen=True)
class Transition:
    previous: AuthorizationState
    state: AuthorizationState
    error: HandshakeError | None = None


@dataclass(frozen=True)
class HandshakeSnapshot:
    """A consistent (state, request, error) triple."""

    state: AuthorizationState
    request: AuthorizationRequest | None
    error: HandshakeError | None


TransitionListener = Callable[[Transition], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("%s is not a number; using %s", name, default)
        return default


class Handshake:
    """State machine for one account's signer authorization.

    All reads and writes of state/request/credential happen under one lock that
    is never held across an await, so synchronous readers always observe a
    consistent snapshot.
    """

    def __init__(
        self,
        identity: IdentityService,
        *,
        poll_interval: float | None = None,
        max_poll_failures: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_transition: TransitionListener | None = None,
    ) -> None:
        self._identity = identity
        self._poll_interval = (
            poll_interval
            if poll_interval is not None
            else _env_float("SIGNER_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS)
        )
        self._max_poll_failures = (
            max_poll_failures
            if max_poll_failures is not None
            else int(_env_float("SIGNER_POLL_MAX_FAILURES", DEFAULT_MAX_POLL_FAILURES))
        )
        self._clock = clock
        self._sleep = sleep
        self._on_transition = on_transition

        self._lock = threading.Lock()
        self._state = AuthorizationState.IDLE
        self._request: AuthorizationRequest | None = None
        self._credential: Any = None
        self._last_error: HandshakeError | None = None
        self._attempt = 0
        self._task: asyncio.Task[None] | None = None
        self._poll_in_flight = False

    # --- Reads -----------------------------------------------------------

    def current_state(self) -> AuthorizationState:
        with self._lock:
            return self._state

    def approval_uri(self) -> str | None:
        """Deep link for the pending request; None outside AWAITING_APPROVAL."""
        with self._lock:
            if self._state is AuthorizationState.AWAITING_APPROVAL and self._request is not None:
                return self._request.approval_uri
            return None

    def snapshot(self) -> HandshakeSnapshot:
        with self._lock:
            return HandshakeSnapshot(state=self._state, request=self._request, error=self._last_error)

    @property
    def last_error(self) -> HandshakeError | None:
        with self._lock:
            return self._last_error

    def take_credential(self) -> Any:
        """Hand the approved credential to the caller. Returns it once, then None."""
        with self._lock:
            credential, self._credential = self._credential, None
            return credential

    # --- Commands --------------------------------------------------------

    async def start(self) -> AuthorizationState:
        """Begin a new attempt. No-op while an attempt is already in progress."""
        with self._lock:
            if self._state.is_active:
                return self._state
            previous = self._state
            self._attempt += 1
            attempt = self._attempt
            self._state = AuthorizationState.REQUESTING
            self._request = None
            self._credential = None
            self._last_error = None

        await self._notify(Transition(previous, AuthorizationState.REQUESTING))

        try:
            request = await self._identity.create_authorization_request()
        except asyncio.CancelledError:
            with self._lock:
                if attempt == self._attempt and self._state is AuthorizationState.REQUESTING:
                    self._state = AuthorizationState.IDLE
            raise
        except Exception as e:
            logger.error("Signer request creation failed: %s", e, exc_info=True)
            transition = self._transition(
                attempt,
                expected=AuthorizationState.REQUESTING,
                to=AuthorizationState.FAILED,
                error=HandshakeCreateFailed(str(e) or type(e).__name__),
            )
            if transition is not None:
                await self._notify(transition)
            return self.current_state()

        with self._lock:
            if attempt != self._attempt or self._state is not AuthorizationState.REQUESTING:
                # Cancelled while the create call was in flight.
                return self._state
            self._state = AuthorizationState.AWAITING_APPROVAL
            self._request = request
            self._poll_in_flight = False
            self._task = asyncio.create_task(self._poll_loop(attempt, request))

        logger.info(
            "Signer request created; awaiting approval until %s",
            request.expires_at.isoformat(),
        )
        await self._notify(Transition(AuthorizationState.REQUESTING, AuthorizationState.AWAITING_APPROVAL))
        return AuthorizationState.AWAITING_APPROVAL

    def cancel(self) -> AuthorizationState:
        """Abandon the in-progress attempt and return to IDLE.

        A poll already in flight is allowed to finish (its result is ignored);
        a sleeping poller is woken and exits. Listeners are not notified.
        """
        with self._lock:
            if not self._state.is_active:
                return self._state
            self._attempt += 1
            self._state = AuthorizationState.IDLE
            self._request = None
            task, self._task = self._task, None
            in_flight = self._poll_in_flight

        if task is not None and not task.done() and not in_flight:
            task.cancel()
        logger.info("Signer request cancelled")
        return AuthorizationState.IDLE

    def reset(self) -> AuthorizationState:
        """Forget a finished attempt (e.g. after disconnecting an account)."""
        with self._lock:
            if self._state.is_active:
                return self._state
            self._state = AuthorizationState.IDLE
            self._credential = None
            self._last_error = None
            return self._state

    def restore_approved(self) -> AuthorizationState:
        """Mark a previously approved signer as approved again (after a restart).

        The credential itself already belongs to the caller, so none is held.
        """
        with self._lock:
            if self._state.is_active:
                return self._state
            self._state = AuthorizationState.APPROVED
            self._credential = None
            self._last_error = None
            return self._state

    async def join(self) -> None:
        """Wait for the current poller (if any) to finish."""
        with self._lock:
            task = self._task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def shutdown(self) -> None:
        with self._lock:
            task = self._task
        self.cancel()
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # --- Internals -------------------------------------------------------

    def _transition(
        self,
        attempt: int,
        *,
        expected: AuthorizationState,
        to: AuthorizationState,
        error: HandshakeError | None = None,
        credential: Any = None,
    ) -> Transition | None:
        with self._lock:
            if attempt != self._attempt or self._state is not expected:
                return None
            self._state = to
            self._request = None
            self._last_error = error
            if to is AuthorizationState.APPROVED:
                self._credential = credential
            if to.is_terminal:
                self._task = None
            return Transition(expected, to, error)

    def _is_current(self, attempt: int) -> bool:
        with self._lock:
            return attempt == self._attempt and self._state is AuthorizationState.AWAITING_APPROVAL

    def _set_in_flight(self, attempt: int, value: bool) -> None:
        with self._lock:
            if attempt == self._attempt:
                self._poll_in_flight = value

    async def _poll_loop(self, attempt: int, request: AuthorizationRequest) -> None:
        awaiting = AuthorizationState.AWAITING_APPROVAL
        failures = 0
        transition: Transition | None = None

        try:
            while transition is None:
                await self._sleep(self._poll_interval)
                if not self._is_current(attempt):
                    return

                if self._clock() > request.expires_at:
                    logger.info("Signer request expired without a decision")
                    transition = self._transition(
                        attempt,
                        expected=awaiting,
                        to=AuthorizationState.EXPIRED,
                        error=HandshakeExpired("Signer request expired before it was approved"),
                    )
                    break

                self._set_in_flight(attempt, True)
                try:
                    result = await self._identity.poll_authorization_status(request.token)
                except IdentityServiceError as e:
                    failures += 1
                    logger.warning(
                        "Signer status poll failed (%s/%s): %s",
                        failures,
                        self._max_poll_failures,
                        e,
                    )
                    if failures > self._max_poll_failures:
                        transition = self._transition(
                            attempt,
                            expected=awaiting,
                            to=AuthorizationState.FAILED,
                            error=HandshakeNetworkExhausted(
                                f"Signer status unavailable after {failures} consecutive failures"
                            ),
                        )
                        break
                    continue
                finally:
                    self._set_in_flight(attempt, False)

                failures = 0
                if result.status == "approved":
                    logger.info("Signer request approved")
                    transition = self._transition(
                        attempt,
                        expected=awaiting,
                        to=AuthorizationState.APPROVED,
                        credential=result.credential,
                    )
                    break
                if result.status == "denied":
                    logger.info("Signer request denied")
                    transition = self._transition(
                        attempt,
                        expected=awaiting,
                        to=AuthorizationState.DENIED,
                        error=HandshakeDenied("Signer request was denied"),
                    )
                    break
                if not self._is_current(attempt):
                    return
        except asyncio.CancelledError:
            logger.debug("Signer poller cancelled")
            raise
        except Exception as e:
            logger.error("Signer poller crashed: %s", e, exc_info=True)
            transition = self._transition(
                attempt,
                expected=awaiting,
                to=AuthorizationState.FAILED,
                error=HandshakeNetworkExhausted(str(e) or type(e).__name__),
            )

        if transition is not None:
            await self._notify(transition)

    async def _notify(self, transition: Transition) -> None:
        if self._on_transition is None:
            return
        try:
            await self._on_transition(transition)
        except Exception as e:
            logger.error("Handshake transition listener failed: %s", e, exc_info=True)
