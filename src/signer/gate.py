"""Submission gate over the signer handshake, one handshake per Telegram user."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from .handshake import AuthorizationState, Handshake

logger = logging.getLogger(__name__)


class SessionGate:
    """Read-only projection of a handshake; holds no state of its own.

    A user without a handshake is IDLE.
    """

    def __init__(self, handshake: Handshake | None) -> None:
        self._handshake = handshake

    def current_state(self) -> AuthorizationState:
        if self._handshake is None:
            return AuthorizationState.IDLE
        return self._handshake.current_state()

    def can_submit(self) -> bool:
        return self.current_state() is AuthorizationState.APPROVED


class HandshakeRegistry:
    """Owns the handshake for each user; the user id is passed explicitly.

    Only `get()` creates entries. Read paths use `peek()`, and `release()`
    drops handshakes that are back in IDLE.
    """

    def __init__(self, factory: Callable[[int], Handshake]) -> None:
        self._factory = factory
        self._handshakes: dict[int, Handshake] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._handshakes)

    def get(self, user_id: int) -> Handshake:
        with self._lock:
            handshake = self._handshakes.get(user_id)
            if handshake is None:
                handshake = self._factory(user_id)
                self._handshakes[user_id] = handshake
            return handshake

    def peek(self, user_id: int) -> Handshake | None:
        with self._lock:
            return self._handshakes.get(user_id)

    def gate(self, user_id: int) -> SessionGate:
        return SessionGate(self.peek(user_id))

    def release(self, user_id: int) -> bool:
        """Forget the user's handshake if it is IDLE. Returns True if one was dropped."""
        with self._lock:
            handshake = self._handshakes.get(user_id)
            if handshake is None or handshake.current_state() is not AuthorizationState.IDLE:
                return False
            del self._handshakes[user_id]
            return True

    async def shutdown(self) -> None:
        with self._lock:
            handshakes = list(self._handshakes.values())
        for handshake in handshakes:
            await handshake.shutdown()
        logger.info("Stopped %s signer handshakes", len(handshakes))
