#!/usr/bin/env python3
"""Create the bot's SQLite schema and check that the account and cast tables exist.

Run it on a workstation or in the container to smoke-test DATABASE_PATH.
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path


def _add_src_to_path() -> None:
    repo_root = Path(__file__).resolve().parent.parent
    sys.path.insert(0, str(repo_root / "src"))


async def _verify() -> None:
    from database import init_database
    from database.connection import DEFAULT_DATABASE_PATH, get_database_path, get_db

    await init_database()

    async with get_db() as db:
        cursor = await db.execute("SELECT name FROM sqlite_master WHERE type='table'")
        present = {r[0] for r in await cursor.fetchall()}  # type: ignore[index]

        cursor = await db.execute("SELECT COUNT(*) FROM accounts WHERE status = 'active'")
        row = await cursor.fetchone()
        active_accounts = int(row[0]) if row else 0  # type: ignore[index]

    missing = {"users", "accounts", "casts"} - present
    if missing:
        raise RuntimeError(f"Missing expected tables: {sorted(missing)}")

    print("OK: schema applied; users, accounts and casts tables present.")
    print(f"Active accounts: {active_accounts}")
    print(f"DATABASE_PATH={os.getenv('DATABASE_PATH', DEFAULT_DATABASE_PATH)} -> {get_database_path()}")


def main() -> None:
    _add_src_to_path()
    asyncio.run(_verify())


if __name__ == "__main__":
    main()
