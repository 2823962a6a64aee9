"""
Module for managing PostgreSQL operations on the pgvector tables.
- LangChain's PGVector owns the schema: `langchain_pg_collection` and `langchain_pg_embedding`.
- This module provides raw maintenance helpers on top of it: extension setup,
  clearing an index, counting rows and computing issue statistics.
- Every helper logs `psycopg2.Error` and returns a safe default instead of raising.
"""

import psycopg2
from typing import Optional

from support_bot import config
from logger import get_logger

log = get_logger(name="pg_db")

EMBEDDING_TABLE = config.EMBEDDING_TABLE_NAME
COLLECTION_TABLE = config.COLLECTION_TABLE_NAME


def get_dsn() -> str:
    """Return a libpq connection string derived from the SQLAlchemy one in config."""

    dsn = config.POSTGRES_CONNECTION_STRING
    if dsn.startswith("postgresql+psycopg2://"):
        dsn = "postgresql://" + dsn[len("postgresql+psycopg2://"):]
    return dsn


# ------------------------------------------------------------------------------
# Database Management Functions:
# ------------------------------------------------------------------------------

def get_connection():
    """Creates and returns a PostgreSQL database connection.
    - The connection uses `POSTGRES_CONNECTION_STRING` or the `POSTGRES_*` variables.
    """

    try:
        conn = psycopg2.connect(get_dsn())
        return conn
    except psycopg2.Error as e:
        log.error(f"Failed to connect to PostgreSQL: {e}")
        raise


def ensure_vector_extension() -> bool:
    """Creates the `vector` extension if it is not installed yet.

    Returns:
        bool: True if the extension exists after the call, False otherwise.
    """

    try:
        with get_connection() as conn:
            cur = conn.cursor()
            cur.execute("CREATE EXTENSION IF NOT EXISTS vector")
            conn.commit()
            log.info("pgvector extension is available.")
            return True
    except psycopg2.Error as e:
        log.error(f"PostgreSQL error while creating the vector extension: {e}")
        return False


# ------------------------------------------------------------------------------
# Embedding Table Functions:
# ------------------------------------------------------------------------------

def clear_embeddings(collection_name: Optional[str] = None) -> int:
    """Deletes indexed rows from the embedding table.

    Args:
        collection_name (Optional[str]): Only delete rows of this collection. If None, deletes all rows.

    Returns:
        int: The number of deleted rows, or -1 if an error occurred.
    """

    try:
        with get_connection() as conn:
            cur = conn.cursor()

            if collection_name is None:
                cur.execute(f"DELETE FROM {EMBEDDING_TABLE}")
            else:
                cur.execute(f"""
                    DELETE FROM {EMBEDDING_TABLE}
                    WHERE collection_id IN (
                        SELECT uuid FROM {COLLECTION_TABLE} WHERE name = %s
                    )
                """, (collection_name,))

            conn.commit()
            log.info(f"Deleted {cur.rowcount} rows from '{EMBEDDING_TABLE}' (collection={collection_name or 'ALL'})")
            return cur.rowcount

    except psycopg2.Error as e:
        log.error(f"PostgreSQL error while clearing embeddings (collection={collection_name}): {e}")
        return -1


def count_embeddings(collection_name: Optional[str] = None) -> int:
    """Counts the rows of the embedding table.

    Args:
        collection_name (Optional[str]): Only count rows of this collection. If None, counts all rows.

    Returns:
        int: Number of rows, or -1 if an error occurred.
    """

    try:
        with get_connection() as conn:
            cur = conn.cursor()

            if collection_name is None:
                cur.execute(f"SELECT COUNT(*) FROM {EMBEDDING_TABLE}")
            else:
                cur.execute(f"""
                    SELECT COUNT(*) FROM {EMBEDDING_TABLE} e
                    JOIN {COLLECTION_TABLE} c ON e.collection_id = c.uuid
                    WHERE c.name = %s
                """, (collection_name,))

            count = cur.fetchone()[0]
            log.info(f"Counted {count} rows in '{EMBEDDING_TABLE}' (collection={collection_name or 'ALL'})")
            return count

    except psycopg2.Error as e:
        log.error(f"PostgreSQL error while counting embeddings (collection={collection_name}): {e}")
        return -1


def get_issue_stats(collection_name: str) -> dict[str, int]:
    """Computes per-issue statistics of an indexed collection.
    - Chunks of the same issue are counted once.
    - Works for both the chain collection (`issue_number`, `answers_count`)
      and the agent collection (`issue_ref`, `answer_count`).

    Args:
        collection_name (str): Name of the collection.

    Returns:
        dict[str, int]: Keys `issues`, `with_answers`, `open`, `closed`. All zero on error.
    """

    stats = {"issues": 0, "with_answers": 0, "open": 0, "closed": 0}
    issue_key = "COALESCE(e.cmetadata->>'issue_number', e.cmetadata->>'issue_ref')"
    answers = "COALESCE((e.cmetadata->>'answers_count')::int, (e.cmetadata->>'answer_count')::int, 0)"

    try:
        with get_connection() as conn:
            cur = conn.cursor()
            cur.execute(f"""
                SELECT
                    COUNT(DISTINCT {issue_key}),
                    COUNT(DISTINCT {issue_key}) FILTER (WHERE {answers} > 0),
                    COUNT(DISTINCT {issue_key}) FILTER (WHERE e.cmetadata->>'status' = 'open'),
                    COUNT(DISTINCT {issue_key}) FILTER (WHERE e.cmetadata->>'status' = 'closed')
                FROM {EMBEDDING_TABLE} e
                JOIN {COLLECTION_TABLE} c ON e.collection_id = c.uuid
                WHERE c.name = %s
            """, (collection_name,))

            row = cur.fetchone()
            if row:
                stats = dict(zip(["issues", "with_answers", "open", "closed"], row))

            log.info(f"Issue stats for '{collection_name}': {stats}")
            return stats

    except psycopg2.Error as e:
        log.error(f"PostgreSQL error while computing stats for '{collection_name}': {e}")
        return stats


if __name__ == "__main__":
    print("PostgreSQL pgvector Module Test:")
    print(f"\tvector extension: {ensure_vector_extension()}")
    print(f"\tindexed rows: {count_embeddings()}")
