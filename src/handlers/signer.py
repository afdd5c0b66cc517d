"""Connect a Farcaster account by approving a signer key out-of-band."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from telegram import Update
from telegram.ext import ContextTypes, ExtBot

from database import queries as db
from database.time import from_sqlite_timestamp
from signer.gate import HandshakeRegistry
from signer.handshake import AuthorizationState, HandshakeSnapshot, Transition, TransitionListener
from signer.keys import SignerCredential

from .common import ensure_user_record, get_handshake, get_services
from utils.tg_text import Segment, render

logger = logging.getLogger(__name__)

_STATE_LABELS: dict[AuthorizationState, str] = {
    AuthorizationState.IDLE: "not connected",
    AuthorizationState.REQUESTING: "creating signer request",
    AuthorizationState.AWAITING_APPROVAL: "waiting for approval",
    AuthorizationState.APPROVED: "connected",
    AuthorizationState.DENIED: "request denied",
    AuthorizationState.EXPIRED: "request expired",
    AuthorizationState.FAILED: "request failed",
}


def state_label(state: AuthorizationState) -> str:
    return _STATE_LABELS.get(state, state.value)


def _approval_segments(approval_uri: str, expires_at: datetime | None) -> list[Segment]:
    segments = [
        Segment("Approve this bot as a signer for your Farcaster account:\n\n"),
        Segment("Open approval link", url=approval_uri),
        Segment("\n\nOpen it on the phone where your Farcaster app is installed."),
    ]
    if expires_at is not None:
        minutes = max(1, int((expires_at - datetime.now(timezone.utc)).total_seconds() // 60))
        segments.append(Segment(f" The request expires in about {minutes} minutes."))
    segments += [
        Segment("\nI will message you once it is approved. Cancel with "),
        Segment("/cancelconnect"),
        Segment("."),
    ]
    return segments


def transition_notifier(bot: ExtBot, registry: HandshakeRegistry, user_id: int) -> TransitionListener:
    """Build the listener that stores approved credentials and tells the user about outcomes."""

    async def _on_transition(transition: Transition) -> None:
        match transition.state:
            case AuthorizationState.APPROVED:
                handshake = registry.peek(user_id)
                if handshake is None:
                    logger.warning("Approved signer for user_id=%s has no handshake; dropping it", user_id)
                    return
                credential = handshake.take_credential()
                if not isinstance(credential, SignerCredential):
                    logger.warning("Approved signer for user_id=%s carried no credential", user_id)
                    return
                account = await db.create_account(
                    user_id=user_id,
                    fid=credential.fid,
                    signer_public_key=credential.key_pair.public_key_hex,
                    signer_private_key=credential.key_pair.private_key_hex,
                )
                still_approved = (
                    registry.peek(user_id) is handshake
                    and handshake.current_state() is AuthorizationState.APPROVED
                )
                if not still_approved:
                    # /disconnect (or a new /connect) ran while the account was being stored.
                    await db.revoke_account(str(account["id"]))
                    logger.info("Discarded approved signer for user_id=%s after disconnect", user_id)
                    return
                logger.info("Connected fid=%s for user_id=%s", credential.fid, user_id)
                text, entities = render(
                    [
                        Segment("Signer approved. Connected Farcaster account FID "),
                        Segment(str(account["fid"]), code=True),
                        Segment(".\nPost with "),
                        Segment("/cast"),
                        Segment(" <text>."),
                    ]
                )
            case AuthorizationState.DENIED:
                text, entities = "The signer request was denied. Run /connect to try again.", None
            case AuthorizationState.EXPIRED:
                text, entities = "The signer request expired before it was approved. Run /connect to try again.", None
            case AuthorizationState.FAILED:
                text, entities = (
                    "I lost contact with Farcaster while waiting for approval. Run /connect to try again.",
                    None,
                )
            case _:
                return

        await bot.send_message(chat_id=user_id, text=text, entities=entities)

    return _on_transition


async def connect_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Start (or re-show) a signer request."""
    await ensure_user_record(update, context)

    if update.message is None or update.effective_user is None:
        return

    user_id = update.effective_user.id
    services = get_services(context)
    handshake = await get_handshake(services, user_id)
    if handshake is None:
        handshake = services.registry.get(user_id)

    snapshot = handshake.snapshot()
    if snapshot.state is AuthorizationState.AWAITING_APPROVAL and snapshot.request is not None:
        text, entities = render(_approval_segments(snapshot.request.approval_uri, snapshot.request.expires_at))
        await update.message.reply_text(text, entities=entities)
        return
    if snapshot.state is AuthorizationState.REQUESTING:
        await update.message.reply_text("A signer request is being created. Try /connect again in a moment.")
        return
    if snapshot.state is AuthorizationState.APPROVED:
        await update.message.reply_text(
            "You are already connected. Run /disconnect first to connect a different account."
        )
        return

    try:
        state = await handshake.start()
    except Exception as e:
        logger.error("Error in connect_command for user_id=%s: %s", user_id, e, exc_info=True)
        await update.message.reply_text("An error occurred. Please try again.")
        return

    snapshot = handshake.snapshot()
    if state is AuthorizationState.AWAITING_APPROVAL and snapshot.request is not None:
        text, entities = render(_approval_segments(snapshot.request.approval_uri, snapshot.request.expires_at))
        await update.message.reply_text(text, entities=entities)
        logger.info("Issued signer request for user_id=%s", user_id)
        return

    logger.warning("Signer request for user_id=%s ended in state %s: %s", user_id, state.value, snapshot.error)
    await update.message.reply_text("Could not create a signer request right now. Please try /connect again later.")


async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Show signer state and the connected account."""
    await ensure_user_record(update, context)

    if update.message is None or update.effective_user is None:
        return

    user_id = update.effective_user.id
    services = get_services(context)
    handshake = await get_handshake(services, user_id)
    snapshot = handshake.snapshot() if handshake is not None else HandshakeSnapshot(AuthorizationState.IDLE, None, None)

    segments = [Segment("Signer status: "), Segment(state_label(snapshot.state), code=True), Segment("\n")]

    account = await db.get_active_account(user_id)
    if account is not None:
        segments += [Segment("Farcaster FID: "), Segment(str(account["fid"]), code=True), Segment("\n")]
        connected_at = from_sqlite_timestamp(account.get("created_at"))
        if connected_at is not None:
            segments.append(Segment(f"Connected since {connected_at:%Y-%m-%d %H:%M} UTC\n"))

    if snapshot.state is AuthorizationState.AWAITING_APPROVAL and snapshot.request is not None:
        segments += [Segment("Pending request: "), Segment("approval link", url=snapshot.request.approval_uri), Segment("\n")]
    elif snapshot.error is not None and snapshot.state.is_terminal:
        segments.append(Segment(f"Last attempt: {snapshot.error}\n"))

    text, entities = render(segments)
    await update.message.reply_text(text, entities=entities)


async def cancel_connect_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Cancel a pending signer request."""
    await ensure_user_record(update, context)

    if update.message is None or update.effective_user is None:
        return

    user_id = update.effective_user.id
    services = get_services(context)
    handshake = services.registry.peek(user_id)
    if handshake is None or not handshake.current_state().is_active:
        await update.message.reply_text("There is no pending signer request.")
        return

    handshake.cancel()
    services.registry.release(user_id)
    await update.message.reply_text("Signer request cancelled.")
    logger.info("Cancelled signer request for user_id=%s", user_id)


async def disconnect_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Forget the connected account (the signer key stays registered onchain)."""
    await ensure_user_record(update, context)

    if update.message is None or update.effective_user is None:
        return

    user_id = update.effective_user.id
    services = get_services(context)
    handshake = services.registry.peek(user_id)
    if handshake is not None:
        handshake.cancel()
        handshake.reset()
        services.registry.release(user_id)

    revoked = await db.revoke_active_accounts(user_id)
    if not revoked:
        await update.message.reply_text("No Farcaster account is connected.")
        return

    await update.message.reply_text(
        "Disconnected. You can remove the signer key from your Farcaster app settings as well.\n"
        "Run /connect to connect again."
    )
    logger.info("Disconnected account for user_id=%s", user_id)
