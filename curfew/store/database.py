"""SQLite database holding the local mirror of Sure Petcare state."""

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS devices (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    product_id INTEGER,
    battery_level REAL,
    battery_voltage REAL,
    online INTEGER DEFAULT 1,
    lock_mode INTEGER DEFAULT 0,
    signal_strength REAL,
    raw_data TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS cats (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    tag_id INTEGER NOT NULL,
    device_id INTEGER,
    location TEXT DEFAULT 'unknown',
    current_profile INTEGER DEFAULT 2,
    curfew_active INTEGER DEFAULT 0,
    raw_data TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS curfew_schedules (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    cat_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    days_of_week TEXT NOT NULL DEFAULT '[]',
    lock_time TEXT NOT NULL,
    unlock_time TEXT NOT NULL,
    enabled INTEGER DEFAULT 1,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS event_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    cat_id INTEGER,
    device_id INTEGER,
    details TEXT,
    created_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_event_log_type ON event_log(event_type);
CREATE INDEX IF NOT EXISTS idx_event_log_cat ON event_log(cat_id);
CREATE INDEX IF NOT EXISTS idx_event_log_created ON event_log(created_at);

CREATE TABLE IF NOT EXISTS state_cache (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT
);
"""


class Database:
    """Single SQLite connection shared by all stores."""

    def __init__(self, db_path: str = "data/surepet.db"):
        """Open the database and create tables if they don't exist."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # Only ever used from the event loop thread
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self):
        """Create database tables if they don't exist."""
        self.conn.execute("PRAGMA journal_mode = WAL")
        with self.conn:
            self.conn.executescript(SCHEMA)
        logger.info(f"Database initialized at {self.db_path}")

    def close(self):
        """Close the connection."""
        self.conn.close()
        logger.info("Database closed")
