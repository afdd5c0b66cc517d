"""Database module for the Farcaster cast bot."""

from __future__ import annotations

from .connection import get_db, transaction
from .schema import init_database

__all__ = [
    "get_db",
    "init_database",
    "transaction",
]

