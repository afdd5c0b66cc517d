"""Warpcast signed-key-request API (the identity service behind the handshake).

Flow:
1. Generate an ed25519 signer key pair.
2. Ask the sponsor service (which holds the app's custody key) to sign the
   key request metadata for that public key and deadline.
3. POST the signed request to Warpcast; it returns a token and a deep link.
4. Poll the request by token until the user approves it in their app.

Responses are validated here and converted to typed values; nothing untyped
leaves this module.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx

from signer.handshake import AuthorizationRequest, IdentityServiceError, PollResult
from signer.keys import SignerCredential, SignerKeyPair, generate_key_pair

logger = logging.getLogger(__name__)

DEFAULT_WARPCAST_API_URL = "https://api.warpcast.com"
DEFAULT_REQUEST_TTL_SECONDS = 600

_APPROVED_STATES = frozenset({"approved", "completed"})
_DENIED_STATES = frozenset({"denied", "rejected", "revoked"})


def get_warpcast_api_url() -> str:
    return (os.getenv("WARPCAST_API_URL") or DEFAULT_WARPCAST_API_URL).rstrip("/")


def get_sponsor_url() -> str:
    url = os.getenv("SIGNER_SPONSOR_URL")
    if not url:
        raise RuntimeError("SIGNER_SPONSOR_URL not set")
    return url


def get_request_ttl_seconds() -> int:
    raw = os.getenv("SIGNER_REQUEST_TTL_SECONDS")
    try:
        ttl = int(raw) if raw else DEFAULT_REQUEST_TTL_SECONDS
    except ValueError:
        logger.warning("SIGNER_REQUEST_TTL_SECONDS is not an integer; using default")
        ttl = DEFAULT_REQUEST_TTL_SECONDS
    return max(60, ttl)


@dataclass(frozen=True)
class KeyRequestSponsorship:
    request_fid: int
    signature: str


class HttpKeyRequestSponsor:
    """Fetch the app's signature over (key, deadline) from the sponsor service."""

    def __init__(self, client: httpx.AsyncClient, *, url: str | None = None, api_key: str | None = None) -> None:
        self._client = client
        self._url = url or get_sponsor_url()
        self._api_key = api_key

    async def sign_key_request(self, public_key_hex: str, deadline: int) -> KeyRequestSponsorship:
        headers = {"authorization": f"Bearer {self._api_key}"} if self._api_key else None
        try:
            response = await self._client.post(
                self._url,
                json={"key": public_key_hex, "deadline": deadline},
                headers=headers,
            )
            response.raise_for_status()
            data = response.json()
            return KeyRequestSponsorship(
                request_fid=_positive_int(data["requestFid"], "requestFid"),
                signature=_non_empty_str(data["signature"], "signature"),
            )
        except httpx.HTTPError as e:
            raise IdentityServiceError(f"Sponsor request failed: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise IdentityServiceError(f"Malformed sponsor response: {e}") from e


class WarpcastIdentityService:
    """IdentityService backed by the Warpcast signed-key-request endpoints.

    Private keys for pending requests stay in memory here, keyed by request
    token, and are handed out inside the credential once the request is
    approved.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        sponsor: HttpKeyRequestSponsor,
        api_url: str | None = None,
        request_ttl_seconds: int | None = None,
        key_factory: Callable[[], SignerKeyPair] = generate_key_pair,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._client = client
        self._sponsor = sponsor
        self._api_url = (api_url or get_warpcast_api_url()).rstrip("/")
        self._ttl = request_ttl_seconds if request_ttl_seconds is not None else get_request_ttl_seconds()
        self._key_factory = key_factory
        self._clock = clock
        self._pending: dict[str, tuple[SignerKeyPair, datetime]] = {}
        self._lock = threading.Lock()

    async def create_authorization_request(self) -> AuthorizationRequest:
        key_pair = self._key_factory()
        created_at = self._clock()
        deadline = int(created_at.timestamp()) + self._ttl

        sponsorship = await self._sponsor.sign_key_request(key_pair.public_key_hex, deadline)
        payload = {
            "key": key_pair.public_key_hex,
            "requestFid": sponsorship.request_fid,
            "signature": sponsorship.signature,
            "deadline": deadline,
        }

        data = await self._request("POST", "/v2/signed-key-requests", json=payload)
        try:
            skr = data["result"]["signedKeyRequest"]
            token = _non_empty_str(skr["token"], "token")
            approval_uri = _non_empty_str(skr["deeplinkUrl"], "deeplinkUrl")
            expires_at = datetime.fromtimestamp(int(skr.get("deadline") or deadline), tz=timezone.utc)
        except (KeyError, TypeError, ValueError) as e:
            raise IdentityServiceError(f"Malformed signed key request response: {e}") from e

        if expires_at <= created_at:
            expires_at = created_at + timedelta(seconds=self._ttl)

        with self._lock:
            self._prune_locked(created_at)
            self._pending[token] = (key_pair, expires_at)

        logger.info("Created signed key request for key %s", key_pair.public_key_hex[:10])
        return AuthorizationRequest(
            token=token,
            approval_uri=approval_uri,
            created_at=created_at,
            expires_at=expires_at,
        )

    async def poll_authorization_status(self, token: str) -> PollResult:
        data = await self._request("GET", "/v2/signed-key-request", params={"token": token})
        try:
            skr = data["result"]["signedKeyRequest"]
            state = str(skr["state"]).lower()
            user_fid = skr.get("userFid")
        except (KeyError, TypeError) as e:
            raise IdentityServiceError(f"Malformed signed key request status: {e}") from e

        if state in _DENIED_STATES:
            self._forget(token)
            return PollResult(status="denied")

        if state in _APPROVED_STATES and user_fid:
            with self._lock:
                entry = self._pending.pop(token, None)
            if entry is None:
                raise IdentityServiceError("Approved signer request has no local key pair")
            try:
                fid = _positive_int(user_fid, "userFid")
            except ValueError as e:
                raise IdentityServiceError(str(e)) from e
            return PollResult(status="approved", credential=SignerCredential(fid=fid, key_pair=entry[0]))

        # "approved" without a fid means the onchain key add is still pending.
        return PollResult(status="pending")

    def _forget(self, token: str) -> None:
        with self._lock:
            self._pending.pop(token, None)

    def _prune_locked(self, now: datetime) -> None:
        expired = [t for t, (_, expires_at) in self._pending.items() if expires_at < now]
        for token in expired:
            del self._pending[token]

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, f"{self._api_url}{path}", **kwargs)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise IdentityServiceError(f"Warpcast {method} {path} failed: {e}") from e
        except ValueError as e:
            raise IdentityServiceError(f"Warpcast {method} {path} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise IdentityServiceError(f"Warpcast {method} {path} returned unexpected payload")
        return data


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer")
    number = int(value)
    if number <= 0:
        raise ValueError(f"{name} must be positive")
    return number


def _non_empty_str(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{name} must be a non-empty string")
    return value
