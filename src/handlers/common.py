"""Shared handler utilities."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from telegram import Update
from telegram.ext import ContextTypes

from database import queries as db
from farcaster.submit import CastSubmitter
from mentions.resolver import HandleResolver
from signer.handshake import AuthorizationState, Handshake
from signer.gate import HandshakeRegistry

logger = logging.getLogger(__name__)

SERVICES_KEY = "services"


@dataclass(frozen=True)
class BotServices:
    registry: HandshakeRegistry
    resolver: HandleResolver
    submitter: CastSubmitter


def get_services(context: ContextTypes.DEFAULT_TYPE) -> BotServices:
    services = context.bot_data.get(SERVICES_KEY)
    if services is None:
        raise RuntimeError("Bot services are not configured")
    return services


async def ensure_user_record(update: Update, context: ContextTypes.DEFAULT_TYPE) -> dict:
    """Upsert the current user and mark last_active_at."""
    user = update.effective_user
    if user is None:
        return {}

    return await db.upsert_user(
        user_id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
    )


async def get_handshake(services: BotServices, user_id: int) -> Handshake | None:
    """Get the user's handshake without creating one for users who have never connected.

    A stored active account marks the handshake approved (e.g. after a restart).
    """
    handshake = services.registry.peek(user_id)
    if handshake is not None and handshake.current_state() is not AuthorizationState.IDLE:
        return handshake

    account = await db.get_active_account(user_id)
    if account is None:
        return handshake

    handshake = services.registry.get(user_id)
    if handshake.current_state() is AuthorizationState.IDLE:
        handshake.restore_approved()
        logger.info("Restored approved signer for user_id=%s (fid=%s)", user_id, account["fid"])
    return handshake


def command_payload(text: str | None) -> str:
    """Text after the leading /command, with inner whitespace preserved."""
    if not text:
        return ""
    parts = text.strip().split(maxsplit=1)
    if len(parts) < 2:
        return ""
    return text.strip()[len(parts[0]) :].strip()
