"""Signer authorization handshake and submission gate."""

from __future__ import annotations

from .gate import HandshakeRegistry, SessionGate
from .handshake import (
    AuthorizationRequest,
    AuthorizationState,
    Handshake,
    HandshakeCreateFailed,
    HandshakeDenied,
    HandshakeError,
    HandshakeExpired,
    HandshakeNetworkExhausted,
    IdentityService,
    IdentityServiceError,
    PollResult,
    Transition,
)
from .keys import SignerCredential, SignerKeyPair, generate_key_pair

__all__ = [
    "AuthorizationRequest",
    "AuthorizationState",
    "Handshake",
    "HandshakeCreateFailed",
    "HandshakeDenied",
    "HandshakeError",
    "HandshakeExpired",
    "HandshakeNetworkExhausted",
    "HandshakeRegistry",
    "IdentityService",
    "IdentityServiceError",
    "PollResult",
    "SessionGate",
    "SignerCredential",
    "SignerKeyPair",
    "Transition",
    "generate_key_pair",
]
