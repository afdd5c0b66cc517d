"""SQLite schema and initialization."""

from __future__ import annotations

import logging

from .connection import get_db

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY,  -- Telegram user ID
    username TEXT,
    first_name TEXT,
    last_name TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    last_active_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_users_last_active ON users(last_active_at);

-- Farcaster accounts connected through an approved signer request
CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,  -- UUID, used as account_id by the signing service
    user_id INTEGER NOT NULL,
    fid INTEGER NOT NULL,
    signer_public_key TEXT NOT NULL,  -- 0x-prefixed hex
    signer_private_key TEXT NOT NULL,  -- 0x-prefixed hex
    status TEXT NOT NULL DEFAULT 'active',  -- 'active', 'revoked'
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    revoked_at TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_accounts_user_id ON accounts(user_id);
CREATE INDEX IF NOT EXISTS idx_accounts_user_active ON accounts(user_id) WHERE status = 'active';

-- Submitted casts (audit trail)
CREATE TABLE IF NOT EXISTS casts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    account_id TEXT NOT NULL,
    cast_hash TEXT NOT NULL,
    text TEXT NOT NULL,
    mentions TEXT,  -- JSON list of FIDs
    mentions_positions TEXT,  -- JSON list of UTF-8 byte offsets
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_casts_account_id ON casts(account_id);
"""


async def init_database() -> None:
    """Initialize database schema (idempotent)."""
    async with get_db() as db:
        logger.info("Applying database schema...")
        await db.executescript(SCHEMA_SQL)
        await db.commit()
        await _apply_migrations(db)
        logger.info("Database schema applied.")


async def _apply_migrations(db) -> None:  # type: ignore[no-untyped-def]
    """Apply lightweight, additive schema migrations."""
    await _ensure_column(db, table="accounts", column="revoked_at", sql_type="TIMESTAMP")
    await _ensure_column(db, table="casts", column="mentions_positions", sql_type="TEXT")
    await db.commit()


async def _ensure_column(db, *, table: str, column: str, sql_type: str) -> None:  # type: ignore[no-untyped-def]
    cursor = await db.execute(f"PRAGMA table_info({table})")
    rows = await cursor.fetchall()
    existing = {str(r[1]) for r in rows}  # type: ignore[index]
    if column in existing:
        return

    logger.info("Migrating DB: adding %s.%s", table, column)
    await db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {sql_type}")
