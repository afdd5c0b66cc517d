"""Bot initialization and handler registration."""

from __future__ import annotations

import logging
import os

import httpx
from telegram.ext import Application, CommandHandler

from farcaster.directory import HttpHandleDirectory
from farcaster.submit import CastSubmitter
from farcaster.warpcast import HttpKeyRequestSponsor, WarpcastIdentityService
from handlers.common import SERVICES_KEY, BotServices
from handlers.compose import cast_command, casts_command
from handlers.signer import (
    cancel_connect_command,
    connect_command,
    disconnect_command,
    status_command,
    transition_notifier,
)
from handlers.user_commands import help_command, start_command
from mentions.resolver import HandleResolver
from signer.gate import HandshakeRegistry
from signer.handshake import Handshake

logger = logging.getLogger(__name__)


async def error_handler(update: object, context) -> None:  # type: ignore[no-untyped-def]
    """Global error handler."""
    logger.error("Unhandled exception while processing update=%r", update, exc_info=context.error)


def build_services(application: Application, http_client: httpx.AsyncClient) -> BotServices:
    """Wire the Farcaster collaborators, the handshake registry and the resolver."""
    sponsor = HttpKeyRequestSponsor(http_client, api_key=os.getenv("SIGNER_SPONSOR_API_KEY"))
    identity = WarpcastIdentityService(http_client, sponsor=sponsor)

    def _make_handshake(user_id: int) -> Handshake:
        return Handshake(identity, on_transition=transition_notifier(application.bot, registry, user_id))

    registry = HandshakeRegistry(_make_handshake)

    directory = HttpHandleDirectory(http_client, api_key=os.getenv("HANDLE_LOOKUP_API_KEY"))
    submitter = CastSubmitter(http_client, api_key=os.getenv("CAST_SUBMIT_API_KEY"))
    return BotServices(registry=registry, resolver=HandleResolver(directory), submitter=submitter)


def create_application(http_client: httpx.AsyncClient) -> Application:
    """Create and configure the Telegram Application."""
    token = os.getenv("TELEGRAM_BOT_TOKEN")
    if not token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN not set")

    application = Application.builder().token(token).build()
    application.bot_data[SERVICES_KEY] = build_services(application, http_client)

    # Core user commands
    application.add_handler(CommandHandler("start", start_command))
    application.add_handler(CommandHandler("help", help_command))

    # Signer authorization
    application.add_handler(CommandHandler("connect", connect_command))
    application.add_handler(CommandHandler("status", status_command))
    application.add_handler(CommandHandler("cancelconnect", cancel_connect_command))
    application.add_handler(CommandHandler("disconnect", disconnect_command))

    # Casting
    application.add_handler(CommandHandler("cast", cast_command))
    application.add_handler(CommandHandler("casts", casts_command))

    application.add_error_handler(error_handler)
    return application
