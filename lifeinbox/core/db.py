"""
SQLite reference datastore for captured records.
Stands in for the production relational store with a vector extension.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator

from . import config


class DatastoreUnavailable(RuntimeError):
    """The record store could not be reached or queried. Fatal for the request."""


@contextmanager
def get_db(db_path: str = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    try:
        conn = sqlite3.connect(db_path or config.DB_PATH, timeout=5.0)
    except sqlite3.Error as e:
        raise DatastoreUnavailable(f"Cannot open record store: {e}") from e
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: str = None):
    """Initialize the database with required tables."""
    config.ensure_db_directory(db_path)
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS records (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                raw_text TEXT NOT NULL,
                summary TEXT,
                category TEXT,
                content_type TEXT NOT NULL DEFAULT 'text',
                created_at TIMESTAMP NOT NULL,
                embedding BLOB,          -- float32 vector, NULL until indexed
                embedding_dim INTEGER,
                embedding_model TEXT     -- model version that produced the vector
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_records_user_created ON records(user_id, created_at DESC)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_records_embedding_model ON records(embedding_model)')

        conn.commit()


def health_check(db_path: str = None) -> bool:
    """Check database connectivity."""
    try:
        with get_db(db_path) as conn:
            conn.execute("SELECT 1").fetchone()
        return True
    except (sqlite3.Error, DatastoreUnavailable):
        return False
