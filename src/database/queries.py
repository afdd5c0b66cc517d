"""Database query functions.

These are intentionally small, composable helpers used by handlers.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

from .connection import get_db, transaction
from .time import to_sqlite_timestamp


def _row_to_dict(row) -> dict[str, Any] | None:  # type: ignore[no-untyped-def]
    if row is None:
        return None
    return dict(row)


# --- Users -----------------------------------------------------------------


async def upsert_user(
    *,
    user_id: int,
    username: str | None,
    first_name: str | None,
    last_name: str | None,
) -> dict[str, Any]:
    """Insert user if missing; otherwise update metadata and last_active_at."""
    async with transaction() as db:
        await db.execute(
            """
            INSERT INTO users (id, username, first_name, last_name)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                username = excluded.username,
                first_name = excluded.first_name,
                last_name = excluded.last_name,
                last_active_at = CURRENT_TIMESTAMP
            """,
            (user_id, username, first_name, last_name),
        )

        cursor = await db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = await cursor.fetchone()
        user = _row_to_dict(row)
        assert user is not None
        return user


# --- Accounts ---------------------------------------------------------------


async def create_account(
    *,
    user_id: int,
    fid: int,
    signer_public_key: str,
    signer_private_key: str,
) -> dict[str, Any]:
    """Store a newly approved signer as the user's active account.

    Any previously active account for the user is revoked in the same transaction.
    """
    account_id = str(uuid.uuid4())
    revoked_at = to_sqlite_timestamp(datetime.now(timezone.utc))
    async with transaction() as db:
        await db.execute(
            """
            UPDATE accounts
            SET status = 'revoked', revoked_at = ?
            WHERE user_id = ? AND status = 'active'
            """,
            (revoked_at, user_id),
        )
        cursor = await db.execute(
            """
            INSERT INTO accounts (id, user_id, fid, signer_public_key, signer_private_key)
            VALUES (?, ?, ?, ?, ?)
            RETURNING *
            """,
            (account_id, user_id, fid, signer_public_key, signer_private_key),
        )
        row = await cursor.fetchone()
        account = _row_to_dict(row)
        assert account is not None
        return account


async def get_active_account(user_id: int) -> dict[str, Any] | None:
    """Get the user's current (active) account, if any."""
    async with get_db() as db:
        cursor = await db.execute(
            """
            SELECT *
            FROM accounts
            WHERE user_id = ? AND status = 'active'
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (user_id,),
        )
        row = await cursor.fetchone()
        return _row_to_dict(row)


async def revoke_active_accounts(user_id: int) -> int:
    """Mark the user's active accounts revoked. Returns the number revoked."""
    revoked_at = to_sqlite_timestamp(datetime.now(timezone.utc))
    async with transaction() as db:
        cursor = await db.execute(
            """
            UPDATE accounts
            SET status = 'revoked', revoked_at = ?
            WHERE user_id = ? AND status = 'active'
            """,
            (revoked_at, user_id),
        )
        return int(cursor.rowcount or 0)


async def revoke_account(account_id: str) -> bool:
    """Mark one account revoked. Returns False if it was not active."""
    revoked_at = to_sqlite_timestamp(datetime.now(timezone.utc))
    async with transaction() as db:
        cursor = await db.execute(
            """
            UPDATE accounts
            SET status = 'revoked', revoked_at = ?
            WHERE id = ? AND status = 'active'
            """,
            (revoked_at, account_id),
        )
        return bool(cursor.rowcount)


# --- Casts ------------------------------------------------------------------


async def record_cast(
    *,
    account_id: str,
    cast_hash: str,
    text: str,
    mentions: list[int],
    mentions_positions: list[int],
) -> dict[str, Any]:
    async with transaction() as db:
        cursor = await db.execute(
            """
            INSERT INTO casts (account_id, cast_hash, text, mentions, mentions_positions)
            VALUES (?, ?, ?, ?, ?)
            RETURNING *
            """,
            (account_id, cast_hash, text, json.dumps(mentions), json.dumps(mentions_positions)),
        )
        row = await cursor.fetchone()
        cast = _row_to_dict(row)
        assert cast is not None
        return cast


async def get_recent_casts(account_id: str, *, limit: int = 10) -> list[dict[str, Any]]:
    """Most recent casts for an account (JSON columns parsed)."""
    async with get_db() as db:
        cursor = await db.execute(
            """
            SELECT *
            FROM casts
            WHERE account_id = ?
            ORDER BY id DESC
            LIMIT ?
            """,
            (account_id, limit),
        )
        rows = await cursor.fetchall()

    casts = [dict(r) for r in rows]
    for cast in casts:
        cast["mentions"] = json.loads(cast.get("mentions") or "[]")
        cast["mentions_positions"] = json.loads(cast.get("mentions_positions") or "[]")
    return casts
