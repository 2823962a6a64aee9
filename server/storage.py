"""
Module for persisting annotation-tool state in SQLite.
- Replaces the browser local storage of the annotation UI with a key-value table.
- Keys: `csv-datasets`, `cleaning-projects`, `field-configs-{projectId}`, `cleaning-project-files-{projectId}`.
- Values are stored as JSON text.
"""

import os
import json
import sqlite3
from pathlib import Path
from datetime import datetime, timezone
from typing import Any, List, Optional

from logger import get_logger

log = get_logger(name="storage")
DB_PATH = Path(os.getenv("STORAGE_DB_PATH", "annotation_data.db"))

DATASETS_KEY = "csv-datasets"
PROJECTS_KEY = "cleaning-projects"


def timestamp() -> str:
    """Current UTC time in ISO-8601 with milliseconds, e.g. `2024-05-01T10:00:00.000Z`."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def field_configs_key(project_id: str) -> str:
    return f"field-configs-{project_id}"


def project_files_key(project_id: str) -> str:
    return f"cleaning-project-files-{project_id}"


def get_connection():
    """Creates and returns a SQLite database connection.
    - The connection is set to allow multiple threads to access it.
    - The database file and the `kv_store` table are created if they do not exist.
    """

    conn = sqlite3.connect(DB_PATH, check_same_thread=False)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """)
    return conn


def delete_database() -> bool:
    """Deletes the SQLite database file if it exists."""

    if DB_PATH.exists():
        DB_PATH.unlink()
        return True
    else:
        raise FileNotFoundError(f"Database file '{DB_PATH}' does not exist.")


def get_item(key: str, default: Any = None) -> Any:
    """Reads the JSON value stored under `key`.

    Returns:
        Any: The decoded value, or `default` when the key is missing or unreadable.
    """

    try:
        with get_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = cur.fetchone()

    except sqlite3.Error as e:
        log.error(f"SQLite error while reading key '{key}': {e}")
        return default

    if row is None:
        return default

    try:
        return json.loads(row[0])
    except json.JSONDecodeError as e:
        log.error(f"Stored value for key '{key}' is not valid JSON: {e}")
        return default


def set_item(key: str, value: Any) -> bool:
    """Stores `value` as JSON under `key`, replacing any previous value.

    Returns:
        bool: True if the value was written, False otherwise.
    """

    try:
        with get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, json.dumps(value))
            )
            conn.commit()
            log.debug(f"Stored key '{key}'")
            return True

    except sqlite3.Error as e:
        log.error(f"SQLite error while writing key '{key}': {e}")
        return False


def remove_item(key: str) -> bool:
    """Deletes `key`.

    Returns:
        bool: True if a row was deleted, False otherwise.
    """

    try:
        with get_connection() as conn:
            cur = conn.cursor()
            cur.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
            log.info(f"Removed key '{key}' ({cur.rowcount} rows)")
            return cur.rowcount > 0

    except sqlite3.Error as e:
        log.error(f"SQLite error while removing key '{key}': {e}")
        return False


def list_keys(prefix: Optional[str] = None) -> List[str]:
    """Lists the stored keys, optionally only those starting with `prefix`."""

    try:
        with get_connection() as conn:
            cur = conn.cursor()
            if prefix is None:
                cur.execute("SELECT key FROM kv_store ORDER BY key")
            else:
                cur.execute("SELECT key FROM kv_store WHERE key LIKE ? ORDER BY key", (f"{prefix}%",))
            return [row[0] for row in cur.fetchall()]

    except sqlite3.Error as e:
        log.error(f"SQLite error while listing keys: {e}")
        return []


if __name__ == "__main__":
    print(f"Keys in {DB_PATH}:")
    for k in list_keys():
        print(f"\t{k}")
