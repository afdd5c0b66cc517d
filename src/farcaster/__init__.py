"""HTTP collaborators: Warpcast signer requests, handle lookup, cast submission."""

from __future__ import annotations

from .directory import HttpHandleDirectory
from .http import create_http_client
from .submit import CastSubmitError, CastSubmitter, SubmittedCast
from .warpcast import HttpKeyRequestSponsor, WarpcastIdentityService

__all__ = [
    "CastSubmitError",
    "CastSubmitter",
    "HttpHandleDirectory",
    "HttpKeyRequestSponsor",
    "SubmittedCast",
    "WarpcastIdentityService",
    "create_http_client",
]
