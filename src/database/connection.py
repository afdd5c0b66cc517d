"""SQLite connection helpers (aiosqlite)."""

from __future__ import annotations

import os
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

DEFAULT_DATABASE_PATH = "data/farcaster_bot.db"


def get_database_path() -> Path:
    """Resolve DATABASE_PATH (relative to the working directory) and create its parent."""
    path = Path(os.getenv("DATABASE_PATH", DEFAULT_DATABASE_PATH))
    if not path.is_absolute():
        path = Path.cwd() / path

    path.parent.mkdir(parents=True, exist_ok=True)
    return path


@asynccontextmanager
async def get_db() -> AsyncIterator[aiosqlite.Connection]:
    """Yield a connection with foreign keys on and dict-like rows."""
    db_path = get_database_path()
    try:
        async with aiosqlite.connect(db_path) as db:
            await db.execute("PRAGMA foreign_keys = ON;")
            db.row_factory = aiosqlite.Row
            yield db
    except sqlite3.OperationalError as e:
        if "unable to open database file" in str(e).lower():
            raise RuntimeError(
                f"Unable to open the SQLite database at {db_path}. "
                "Check that DATABASE_PATH points to a writable location "
                "(for Docker bind mounts, the host directory must be writable by the container user)."
            ) from e
        raise


@asynccontextmanager
async def transaction() -> AsyncIterator[aiosqlite.Connection]:
    """Commit on success, roll back on error."""
    async with get_db() as db:
        try:
            yield db
            await db.commit()
        except Exception:
            await db.rollback()
            raise
