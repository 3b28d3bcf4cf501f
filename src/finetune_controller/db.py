"""SQLite state store with WAL mode and compare-and-swap updates."""

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from finetune_controller.errors import AlreadyExistsError, ConflictError, NotFoundError
from finetune_controller.models.db import ResourceRecord

# SQL schema for the state store
SCHEMA = """
-- Stored objects (experiments, jobs)
CREATE TABLE IF NOT EXISTS resources (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    namespace TEXT NOT NULL,
    name TEXT NOT NULL,
    uid TEXT NOT NULL UNIQUE,

    -- Optimistic concurrency token, bumped on every write
    resource_version INTEGER NOT NULL DEFAULT 1,

    body TEXT NOT NULL,  -- JSON: apiVersion, kind, metadata, spec
    status TEXT,         -- JSON status sub-resource

    -- Controller owner, for garbage collection
    owner_uid TEXT,

    -- Timestamps
    created_at TEXT DEFAULT (datetime('now')),
    deletion_timestamp TEXT,

    UNIQUE (kind, namespace, name)
);

-- Indexes for performance
CREATE INDEX IF NOT EXISTS idx_resources_kind ON resources(kind, namespace);
CREATE INDEX IF NOT EXISTS idx_resources_owner ON resources(owner_uid);
"""


def get_connection(db_path: Path, timeout: float = 5.0) -> sqlite3.Connection:
    """
    Get a database connection with proper settings for concurrent access.

    - isolation_level=None for explicit transaction control
    - WAL mode for concurrent readers/writers
    - busy_timeout to wait up to `timeout` seconds for locks
    - Row factory for dict-like access
    """
    conn = sqlite3.connect(str(db_path), timeout=timeout, isolation_level=None)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA busy_timeout={int(timeout * 1000)}")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path) -> None:
    """Initialize the database with the schema."""
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA)
    finally:
        conn.close()


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@contextmanager
def _transaction(conn: sqlite3.Connection) -> Iterator[None]:
    """Run a block inside BEGIN IMMEDIATE, rolling back on error."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def _record(row: sqlite3.Row) -> ResourceRecord:
    return ResourceRecord.model_validate(dict(row))


def _select(
    conn: sqlite3.Connection, kind: str, namespace: str, name: str
) -> Optional[sqlite3.Row]:
    return conn.execute(
        "SELECT * FROM resources WHERE kind = ? AND namespace = ? AND name = ?",
        (kind, namespace, name),
    ).fetchone()


# --- Resource Operations ---

def insert_resource(
    conn: sqlite3.Connection,
    kind: str,
    namespace: str,
    name: str,
    uid: str,
    body: dict[str, Any],
    status: Optional[dict[str, Any]] = None,
    owner_uid: Optional[str] = None,
) -> ResourceRecord:
    """Insert a new resource. Raises AlreadyExistsError on an identity clash."""
    try:
        cursor = conn.execute(
            """
            INSERT INTO resources (kind, namespace, name, uid, body, status, owner_uid, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING *
            """,
            (
                kind,
                namespace,
                name,
                uid,
                json.dumps(body),
                json.dumps(status) if status else None,
                owner_uid,
                utcnow(),
            ),
        )
        row = cursor.fetchone()
    except sqlite3.IntegrityError as e:
        raise AlreadyExistsError(kind, namespace, name) from e

    return _record(row)


def get_resource(
    conn: sqlite3.Connection, kind: str, namespace: str, name: str
) -> Optional[ResourceRecord]:
    """Get a resource by identity."""
    row = _select(conn, kind, namespace, name)
    if row is None:
        return None
    return _record(row)


def list_resources(
    conn: sqlite3.Connection,
    kind: str,
    namespace: Optional[str] = None,
) -> list[ResourceRecord]:
    """List resources of a kind, optionally within one namespace."""
    query = "SELECT * FROM resources WHERE kind = ?"
    params: list[Any] = [kind]

    if namespace:
        query += " AND namespace = ?"
        params.append(namespace)

    query += " ORDER BY namespace, name"

    rows = conn.execute(query, params).fetchall()
    return [_record(row) for row in rows]


def list_owned(conn: sqlite3.Connection, owner_uid: str) -> list[ResourceRecord]:
    """List resources controlled by the given owner."""
    rows = conn.execute(
        "SELECT * FROM resources WHERE owner_uid = ? ORDER BY kind, namespace, name",
        (owner_uid,),
    ).fetchall()
    return [_record(row) for row in rows]


def _check_missing(
    conn: sqlite3.Connection,
    kind: str,
    namespace: str,
    name: str,
    resource_version: Optional[int],
) -> None:
    """Raise the right error after a compare-and-swap matched no row."""
    if _select(conn, kind, namespace, name) is None:
        raise NotFoundError(kind, namespace, name)
    raise ConflictError(kind, namespace, name, resource_version)


def update_resource(
    conn: sqlite3.Connection,
    kind: str,
    namespace: str,
    name: str,
    resource_version: Optional[int],
    body: dict[str, Any],
    owner_uid: Optional[str] = None,
) -> ResourceRecord:
    """
    Replace a resource's body if its resource_version still matches.

    If the resource is being deleted and the new body carries no
    finalizers, the row is removed and its dependents collected. The
    returned record then reflects the final written state.
    """
    with _transaction(conn):
        row = conn.execute(
            """
            UPDATE resources
            SET body = ?, owner_uid = ?, resource_version = resource_version + 1
            WHERE kind = ? AND namespace = ? AND name = ? AND resource_version = ?
            RETURNING *
            """,
            (json.dumps(body), owner_uid, kind, namespace, name, resource_version),
        ).fetchone()

        if row is None:
            _check_missing(conn, kind, namespace, name, resource_version)

        record = _record(row)
        if record.is_deleting and not record.finalizers:
            _remove(conn, record)

    return record


def update_resource_status(
    conn: sqlite3.Connection,
    kind: str,
    namespace: str,
    name: str,
    resource_version: Optional[int],
    status: dict[str, Any],
) -> ResourceRecord:
    """Replace a resource's status if its resource_version still matches."""
    with _transaction(conn):
        row = conn.execute(
            """
            UPDATE resources
            SET status = ?, resource_version = resource_version + 1
            WHERE kind = ? AND namespace = ? AND name = ? AND resource_version = ?
            RETURNING *
            """,
            (json.dumps(status), kind, namespace, name, resource_version),
        ).fetchone()

        if row is None:
            _check_missing(conn, kind, namespace, name, resource_version)

    return _record(row)


def delete_resource(
    conn: sqlite3.Connection, kind: str, namespace: str, name: str
) -> Optional[ResourceRecord]:
    """
    Request deletion of a resource.

    - With finalizers: sets deletion_timestamp and returns the updated record
    - Without finalizers: removes the row, collects dependents, returns None
    """
    with _transaction(conn):
        row = _select(conn, kind, namespace, name)
        if row is None:
            raise NotFoundError(kind, namespace, name)

        record = _record(row)
        if not record.finalizers:
            _remove(conn, record)
            return None

        if record.is_deleting:
            return record

        row = conn.execute(
            """
            UPDATE resources
            SET deletion_timestamp = ?, resource_version = resource_version + 1
            WHERE id = ?
            RETURNING *
            """,
            (utcnow(), record.id),
        ).fetchone()

    return _record(row)


def _remove(conn: sqlite3.Connection, record: ResourceRecord) -> None:
    """Delete a row and cascade to the resources it controls."""
    conn.execute("DELETE FROM resources WHERE id = ?", (record.id,))
    collect_garbage(conn, record.uid)


def collect_garbage(conn: sqlite3.Connection, owner_uid: str) -> int:
    """
    Delete resources whose controller owner is gone.

    Dependents holding finalizers are only marked for deletion.
    Returns the number of rows removed.
    """
    removed = 0
    for child in list_owned(conn, owner_uid):
        if child.finalizers:
            if not child.is_deleting:
                conn.execute(
                    """
                    UPDATE resources
                    SET deletion_timestamp = ?, resource_version = resource_version + 1
                    WHERE id = ?
                    """,
                    (utcnow(), child.id),
                )
            continue
        conn.execute("DELETE FROM resources WHERE id = ?", (child.id,))
        removed += 1 + collect_garbage(conn, child.uid)
    return removed
