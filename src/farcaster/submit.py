"""Hand encoded casts to the signing service that holds account keys."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class CastSubmitError(Exception):
    pass


@dataclass(frozen=True)
class SubmittedCast:
    hash: str
    fid: int


def get_cast_submit_url() -> str:
    url = os.getenv("CAST_SUBMIT_URL")
    if not url:
        raise RuntimeError("CAST_SUBMIT_URL not set")
    return url


class CastSubmitter:
    def __init__(self, client: httpx.AsyncClient, *, url: str | None = None, api_key: str | None = None) -> None:
        self._client = client
        self._url = url or get_cast_submit_url()
        self._api_key = api_key

    async def submit_cast(
        self,
        *,
        account_id: str,
        body: dict[str, Any],
        idempotency_key: str | None = None,
    ) -> SubmittedCast:
        headers: dict[str, str] = {}
        if self._api_key:
            headers["authorization"] = f"Bearer {self._api_key}"
        if idempotency_key:
            headers["x-idempotency-key"] = idempotency_key

        payload = {"account_id": account_id, **body}
        try:
            response = await self._client.post(self._url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise CastSubmitError(f"Cast rejected ({e.response.status_code}): {_error_message(e.response)}") from e
        except httpx.HTTPError as e:
            raise CastSubmitError(f"Cast submission failed: {e}") from e
        except ValueError as e:
            raise CastSubmitError("Cast submission returned invalid JSON") from e

        if not isinstance(data, dict) or not data.get("success"):
            raise CastSubmitError(f"Cast submission was not accepted: {data!r}")
        try:
            return SubmittedCast(hash=str(data["hash"]), fid=int(data["fid"]))
        except (KeyError, TypeError, ValueError) as e:
            raise CastSubmitError(f"Malformed cast submission response: {e}") from e


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return str(data)[:200]
