# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
cloudbr Session Ledger - Durable record of backup sessions and restores.

A restore must use the session id that its backup generated. The ledger
keeps every session id together with its cluster, storage targets and
step status, so the id can be recovered long after the backup returned.

Storage URIs are stored redacted; credentials never reach the ledger.
"""

from datetime import datetime, UTC
from pathlib import Path
from typing import List, TypedDict

import aiosqlite
import structlog

from cloudbr.exceptions import LedgerError
from cloudbr.storage import redact_uri

logger = structlog.get_logger()

# Session status values, in workflow order
STATUS_STARTED = "started"
STATUS_FULL_BACKUP_DONE = "full_backup_done"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"  # Restores only; sessions keep their last step plus an error


class SessionRecord(TypedDict):
    """Record of a backup session."""

    id: str  # ULID
    cluster: str
    pd_addr: str
    full_target: str  # Redacted URI
    inc_target: str  # Redacted URI
    status: str
    created_at: str  # ISO 8601
    updated_at: str  # ISO 8601
    error: str | None


class RestoreRecord(TypedDict):
    """Record of a restore from a session."""

    id: int
    session_id: str
    cluster: str
    status: str
    started_at: str
    completed_at: str | None
    error: str | None


def _now() -> str:
    return datetime.now(UTC).isoformat()


async def init_ledger_db(db_path: Path) -> None:
    """
    Initialize the ledger database schema.

    Creates tables if they don't exist. This is idempotent.

    Args:
        db_path: Path to the SQLite database file
    """
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    cluster TEXT NOT NULL,
                    pd_addr TEXT NOT NULL,
                    full_target TEXT NOT NULL,
                    inc_target TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    error TEXT
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS restores (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    cluster TEXT NOT NULL,
                    status TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    completed_at TEXT,
                    error TEXT
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_sessions_cluster
                ON sessions(cluster, created_at)
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_restores_session_id
                ON restores(session_id)
            """)

            await db.commit()

        logger.info("ledger_db_initialized", db_path=str(db_path))

    except Exception as e:
        raise LedgerError(
            f"Failed to initialize ledger database: {e}",
            details={"db_path": str(db_path)},
        ) from e


async def record_session(
    db: aiosqlite.Connection,
    session_id: str,
    cluster: str,
    pd_addr: str,
    full_target: str,
    inc_target: str,
) -> None:
    """
    Record a new backup session before its first tool step runs.

    Args:
        db: SQLite database connection
        session_id: Session id (ULID)
        cluster: Cluster name
        pd_addr: Control-plane address used by the session
        full_target: Full backup storage URI
        inc_target: Incremental storage URI
    """
    now = _now()

    try:
        await db.execute(
            """
            INSERT INTO sessions
            (id, cluster, pd_addr, full_target, inc_target, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session_id,
                cluster,
                pd_addr,
                redact_uri(full_target),
                redact_uri(inc_target),
                STATUS_STARTED,
                now,
                now,
            ),
        )
        await db.commit()
    except aiosqlite.IntegrityError as e:
        raise LedgerError(
            f"Session {session_id} is already recorded",
            details={"session_id": session_id},
        ) from e

    logger.info("session_recorded", session_id=session_id, cluster=cluster)


async def mark_step(db: aiosqlite.Connection, session_id: str, status: str) -> None:
    """Advance a session to a new status."""
    await db.execute(
        "UPDATE sessions SET status = ?, updated_at = ? WHERE id = ?",
        (status, _now(), session_id),
    )
    await db.commit()


async def complete_session(
    db: aiosqlite.Connection,
    session_id: str,
    error: str | None = None,
) -> None:
    """
    Mark a session as completed, or record the error that stopped it.

    A failed session keeps the status of its last completed step, so the
    remaining steps can be re-run for the same session id.

    Args:
        db: SQLite database connection
        session_id: Session id
        error: Error message if the workflow failed
    """
    if error:
        await db.execute(
            "UPDATE sessions SET updated_at = ?, error = ? WHERE id = ?",
            (_now(), error, session_id),
        )
    else:
        await db.execute(
            "UPDATE sessions SET status = ?, updated_at = ?, error = NULL WHERE id = ?",
            (STATUS_COMPLETED, _now(), session_id),
        )
    await db.commit()


def _row_to_session(row: tuple) -> SessionRecord:
    return SessionRecord(
        id=row[0],
        cluster=row[1],
        pd_addr=row[2],
        full_target=row[3],
        inc_target=row[4],
        status=row[5],
        created_at=row[6],
        updated_at=row[7],
        error=row[8],
    )


_SESSION_COLUMNS = (
    "id, cluster, pd_addr, full_target, inc_target, status, created_at, updated_at, error"
)


async def get_session(db: aiosqlite.Connection, session_id: str) -> SessionRecord | None:
    """
    Get a session by id.

    Returns:
        Session record or None if not found
    """
    async with db.execute(
        f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE id = ?",
        (session_id,),
    ) as cursor:
        row = await cursor.fetchone()

    if row is None:
        return None
    return _row_to_session(row)


async def list_sessions(
    db: aiosqlite.Connection,
    cluster: str | None = None,
    limit: int = 50,
) -> List[SessionRecord]:
    """
    List sessions, newest first.

    Args:
        db: SQLite database connection
        cluster: Only sessions of this cluster (optional)
        limit: Maximum number of records

    Returns:
        List of session records
    """
    if cluster is None:
        query = f"SELECT {_SESSION_COLUMNS} FROM sessions ORDER BY created_at DESC, id DESC LIMIT ?"
        params: tuple = (limit,)
    else:
        query = (
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE cluster = ? "
            "ORDER BY created_at DESC, id DESC LIMIT ?"
        )
        params = (cluster, limit)

    async with db.execute(query, params) as cursor:
        rows = await cursor.fetchall()
    return [_row_to_session(row) for row in rows]


async def record_restore(db: aiosqlite.Connection, session_id: str, cluster: str) -> int:
    """
    Record the start of a restore.

    Returns:
        Restore record ID
    """
    cursor = await db.execute(
        """
        INSERT INTO restores (session_id, cluster, status, started_at)
        VALUES (?, ?, ?, ?)
        """,
        (session_id, cluster, STATUS_STARTED, _now()),
    )
    await db.commit()
    return cursor.lastrowid


async def complete_restore(
    db: aiosqlite.Connection,
    restore_id: int,
    error: str | None = None,
) -> None:
    """Mark a restore as completed, or failed when an error is given."""
    status = STATUS_FAILED if error else STATUS_COMPLETED
    await db.execute(
        "UPDATE restores SET status = ?, completed_at = ?, error = ? WHERE id = ?",
        (status, _now(), error, restore_id),
    )
    await db.commit()


async def list_restores(db: aiosqlite.Connection, session_id: str) -> List[RestoreRecord]:
    """List the restores performed from a session, oldest first."""
    async with db.execute(
        """
        SELECT id, session_id, cluster, status, started_at, completed_at, error
        FROM restores WHERE session_id = ? ORDER BY id
        """,
        (session_id,),
    ) as cursor:
        rows = await cursor.fetchall()

    return [
        RestoreRecord(
            id=row[0],
            session_id=row[1],
            cluster=row[2],
            status=row[3],
            started_at=row[4],
            completed_at=row[5],
            error=row[6],
        )
        for row in rows
    ]
