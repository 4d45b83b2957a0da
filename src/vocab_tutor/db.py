"""Database initialization, connection management and key/value storage."""
import json
import sqlite3
from datetime import datetime
from pathlib import Path

DEFAULT_DB_PATH = str(Path.home() / ".vocab_tutor" / "tutor.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS user_settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    key TEXT NOT NULL UNIQUE,
    value TEXT
);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()


class SqliteStorage:
    """JSON documents keyed by fixed string identifiers.

    This is the persistence collaborator of the mission service: it knows
    nothing about missions, only how to load and save JSON under a key.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path
        init_db(db_path)

    def load(self, key: str):
        conn = get_connection(self.db_path)
        row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        conn.close()
        return json.loads(row["value"]) if row else None

    def save(self, key: str, value) -> None:
        self.save_many({key: value})

    def save_many(self, items: dict) -> None:
        """Write several keys in one transaction."""
        now = datetime.now().isoformat()
        conn = get_connection(self.db_path)
        with conn:
            conn.executemany(
                """INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at""",
                [(key, json.dumps(value), now) for key, value in items.items()],
            )
        conn.close()

    def remove(self, key: str) -> None:
        conn = get_connection(self.db_path)
        conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        conn.commit()
        conn.close()
