"""Shared httpx client settings for Farcaster-side services."""

from __future__ import annotations

import logging
import os

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


def get_timeout_seconds() -> float:
    raw = os.getenv("HTTP_TIMEOUT_SECONDS")
    if not raw:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        return max(1.0, float(raw))
    except ValueError:
        logger.warning("HTTP_TIMEOUT_SECONDS is not a number; using %s", DEFAULT_TIMEOUT_SECONDS)
        return DEFAULT_TIMEOUT_SECONDS


def create_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(get_timeout_seconds()),
        headers={"accept": "application/json"},
    )


def is_transient(exc: httpx.HTTPError) -> bool:
    """Timeouts, connection errors and 5xx responses are worth retrying."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, (httpx.TimeoutException, httpx.TransportError))
