"""
Database connection management.

Provides SQLite connections and the schema used by the reference repositories.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = ".llm-orchestrator.db"

SCHEMA = (
    # Append-only ledger: rows are never updated or deleted
    """
    CREATE TABLE IF NOT EXISTS llm_usage (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        provider TEXT NOT NULL,
        model TEXT NOT NULL,
        input_tokens INTEGER NOT NULL,
        output_tokens INTEGER NOT NULL,
        cost REAL NOT NULL,
        currency TEXT NOT NULL DEFAULT 'USD',
        user_id TEXT,
        conversation_id TEXT,
        prompt_key TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_llm_usage_user_ts ON llm_usage (user_id, timestamp)",
    """
    CREATE TABLE IF NOT EXISTS managed_prompt (
        id TEXT PRIMARY KEY,
        key TEXT NOT NULL,
        environment TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        template TEXT NOT NULL,
        variables TEXT NOT NULL,
        version INTEGER NOT NULL,
        is_active INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT,
        UNIQUE (key, environment)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS managed_prompt_version (
        prompt_id TEXT NOT NULL REFERENCES managed_prompt (id) ON DELETE CASCADE,
        version INTEGER NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        template TEXT NOT NULL,
        variables TEXT NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (prompt_id, version)
    )
    """,
)


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create a SQLite connection with foreign keys enabled and row access by name.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    conn = sqlite3.connect(str(Path(db_path)))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the usage ledger and prompt tables if they don't exist."""
    conn = get_connection(db_path)
    try:
        for statement in SCHEMA:
            conn.execute(statement)
        conn.commit()
    finally:
        conn.close()
