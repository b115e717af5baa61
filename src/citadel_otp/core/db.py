# Core - Central SQLite Connection Helper
#
# Every Citadel OTP SQLite file (durable vault tier, preferences) opens
# its connections through `connect()` so they all share:
#
#   - WAL journal mode (a reader never blocks the single writer)
#   - busy_timeout so a concurrent writer waits instead of failing
#   - synchronous=FULL: a vault overwrite is on disk before we return
#
# Connections are short-lived: one per operation, opened on whatever
# worker thread asyncio.to_thread() picked.

import sqlite3
from pathlib import Path
from typing import Union


def connect(
    db_path: Union[str, Path],
    *,
    row_factory: bool = False,
    busy_timeout_ms: int = 5000,
) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and durable-write PRAGMAs.

    Args:
        db_path: Path to the database file.
        row_factory: If True, set conn.row_factory = sqlite3.Row.
        busy_timeout_ms: How long to wait on a locked database.

    Returns:
        sqlite3.Connection ready for a single unit of work.
    """
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    conn.execute("PRAGMA synchronous=FULL")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn
