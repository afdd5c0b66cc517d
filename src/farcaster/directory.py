"""Username -> FID lookup service (one request per batch)."""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from mentions.resolver import HandleLookupError

from .http import is_transient

logger = logging.getLogger(__name__)


def get_handle_lookup_url() -> str:
    url = os.getenv("HANDLE_LOOKUP_URL")
    if not url:
        raise RuntimeError("HANDLE_LOOKUP_URL not set")
    return url


class HttpHandleDirectory:
    """GET `<url>?usernames=a,b,c`, expecting `{"users": [{"username", "fid"}, ...]}`."""

    def __init__(self, client: httpx.AsyncClient, *, url: str | None = None, api_key: str | None = None) -> None:
        self._client = client
        self._url = url or get_handle_lookup_url()
        self._api_key = api_key

    async def lookup_handles(self, handles: list[str]) -> dict[str, int | None]:
        if not handles:
            return {}

        headers = {"x-api-key": self._api_key} if self._api_key else None
        try:
            response = await self._client.get(
                self._url,
                params={"usernames": ",".join(handles)},
                headers=headers,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise HandleLookupError(f"Handle lookup failed: {e}", transient=is_transient(e)) from e
        except ValueError as e:
            raise HandleLookupError("Handle lookup returned invalid JSON", transient=False) from e

        found = _parse_users(data)
        logger.debug("Resolved %s of %s handles", len(found), len(handles))
        return {handle: found.get(handle.lower()) for handle in handles}


def _parse_users(data: Any) -> dict[str, int]:
    users = data.get("users") if isinstance(data, dict) else None
    if not isinstance(users, list):
        raise HandleLookupError("Handle lookup response has no users list", transient=False)

    found: dict[str, int] = {}
    for user in users:
        if not isinstance(user, dict):
            continue
        username = user.get("username")
        fid = user.get("fid")
        if not isinstance(username, str) or isinstance(fid, bool) or not isinstance(fid, int) or fid <= 0:
            continue
        found[username.lower()] = fid
    return found
