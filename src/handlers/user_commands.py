"""Basic user-facing commands."""

from __future__ import annotations

import logging

from telegram import Update
from telegram.ext import ContextTypes

from database import queries as db
from .common import ensure_user_record
from utils.tg_text import Segment, render

logger = logging.getLogger(__name__)


def _help_text() -> str:
    return (
        "Available commands:\n"
        "\n"
        "- /start — Welcome message\n"
        "- /help — Show this help\n"
        "\n"
        "Account:\n"
        "- /connect — Connect your Farcaster account (approve a signer in your Farcaster app)\n"
        "- /status — Show signer status and connected account\n"
        "- /cancelconnect — Cancel a pending signer request\n"
        "- /disconnect — Forget the connected account\n"
        "\n"
        "Casting:\n"
        "- /cast <text> — Post a cast; @name mentions are linked to Farcaster accounts\n"
        "- /casts — Show your recent casts\n"
    )


def _onboarding_segments() -> list[Segment]:
    return [
        Segment("Quick start:\n"),
        Segment("1) Run "),
        Segment("/connect"),
        Segment(" and open the approval link on your phone\n"),
        Segment("2) Approve the signer in your Farcaster app\n"),
        Segment("3) Post with "),
        Segment("/cast"),
        Segment(" (example: "),
        Segment("/cast gm @alice", code=True),
        Segment(")\n"),
    ]


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Welcome message with command overview."""
    await ensure_user_record(update, context)

    if update.message is None:
        return

    try:
        account = await db.get_active_account(update.effective_user.id) if update.effective_user else None

        segments: list[Segment] = [Segment("Farcaster cast bot is running.\n\n")]
        if account is not None:
            segments += [
                Segment("Connected as FID "),
                Segment(str(account["fid"]), code=True),
                Segment(".\n\n"),
            ]
        else:
            segments += _onboarding_segments()
        segments += [Segment("\nType "), Segment("/help"), Segment(" to see all commands.\n")]

        text, entities = render(segments)
        await update.message.reply_text(text, entities=entities)
        user_id = update.effective_user.id if update.effective_user else None
        logger.info("Handled /start for user_id=%s", user_id)
    except Exception as e:
        user_id = update.effective_user.id if update.effective_user else None
        logger.error("Error in start_command for user_id=%s: %s", user_id, e, exc_info=True)
        await update.message.reply_text("An error occurred. Please try again.")


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Show help text."""
    await ensure_user_record(update, context)

    if update.message is None:
        return

    await update.message.reply_text(_help_text())
