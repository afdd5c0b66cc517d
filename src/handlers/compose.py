"""Compose and submit casts."""

from __future__ import annotations

import logging

from telegram import Update
from telegram.ext import ContextTypes

from database import queries as db
from farcaster.submit import CastSubmitError
from mentions.encoder import encode_message
from mentions.scanner import EncodingError, encoded_length

from .common import command_payload, ensure_user_record, get_handshake, get_services
from .signer import state_label
from utils.tg_text import Segment, render

logger = logging.getLogger(__name__)

# Farcaster cast text limit, in UTF-8 bytes.
MAX_CAST_BYTES = 320


async def cast_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Encode mentions, check the signer gate, then submit the cast."""
    await ensure_user_record(update, context)

    if update.message is None or update.effective_user is None:
        return

    user_id = update.effective_user.id
    draft = command_payload(update.message.text)
    if not draft:
        await update.message.reply_text(
            "Usage: /cast <text>\n"
            "Example: /cast gm @dwr.eth\n\n"
            "Mentions are resolved to Farcaster accounts; unknown names stay as plain text."
        )
        return

    services = get_services(context)

    try:
        message = await encode_message(draft, services.resolver)
    except EncodingError as e:
        logger.warning("User %s: cast text could not be encoded: %s", user_id, e)
        await update.message.reply_text("That text contains characters I cannot encode. Please edit it and retry.")
        return

    handshake = await get_handshake(services, user_id)
    gate = services.registry.gate(user_id)
    if not gate.can_submit():
        await update.message.reply_text(
            f"You need a connected Farcaster account to cast (signer status: {state_label(gate.current_state())}).\n"
            "Run /connect first."
        )
        return

    body = message.to_cast_body()
    size = encoded_length(body["text"])
    if size > MAX_CAST_BYTES:
        await update.message.reply_text(
            f"Cast is too long: {size} bytes (limit {MAX_CAST_BYTES}). Emoji and accented letters count as several bytes."
        )
        return

    account = await db.get_active_account(user_id)
    if account is None:
        # Approved in memory but the account row is gone (e.g. disconnected elsewhere).
        if handshake is not None:
            handshake.reset()
            services.registry.release(user_id)
        await update.message.reply_text("No Farcaster account is connected. Run /connect first.")
        return

    idempotency_key = f"tg-{update.message.chat_id}-{update.message.message_id}"
    try:
        submitted = await services.submitter.submit_cast(
            account_id=str(account["id"]),
            body=body,
            idempotency_key=idempotency_key,
        )
    except CastSubmitError as e:
        logger.error("User %s: cast submission failed: %s", user_id, e)
        await update.message.reply_text("Farcaster did not accept the cast. Please try again later.")
        return

    await db.record_cast(
        account_id=str(account["id"]),
        cast_hash=submitted.hash,
        text=body["text"],
        mentions=body["mentions"],
        mentions_positions=body["mentions_positions"],
    )

    segments = [Segment("Cast posted. Hash: "), Segment(submitted.hash, code=True)]
    if message.mentions:
        handles = ", ".join(f"@{m.raw_handle}" for m in message.mentions)
        segments.append(Segment(f"\nMentioned: {handles}"))
    for warning in message.warnings:
        segments.append(Segment(f"\nNote: {warning}"))

    text, entities = render(segments)
    await update.message.reply_text(text, entities=entities)
    logger.info("User %s: cast %s posted with %s mentions", user_id, submitted.hash, len(message.mentions))


async def casts_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """List the most recent casts posted through the bot."""
    await ensure_user_record(update, context)

    if update.message is None or update.effective_user is None:
        return

    account = await db.get_active_account(update.effective_user.id)
    if account is None:
        await update.message.reply_text("No Farcaster account is connected. Run /connect first.")
        return

    casts = await db.get_recent_casts(str(account["id"]), limit=5)
    if not casts:
        await update.message.reply_text("No casts posted yet. Try /cast <text>.")
        return

    segments = [Segment("Recent casts:\n")]
    for cast in casts:
        preview = cast["text"] if len(cast["text"]) <= 60 else cast["text"][:57] + "..."
        segments += [Segment("\n"), Segment(str(cast["cast_hash"])[:10], code=True), Segment(f" {preview}")]

    text, entities = render(segments)
    await update.message.reply_text(text, entities=entities)
