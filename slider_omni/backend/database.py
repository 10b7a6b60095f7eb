# sqlite persistence shared by the user, provider and presentation repositories
import sqlite3
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    email TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    permissions TEXT NOT NULL DEFAULT '{}',
    omnitokens INTEGER NOT NULL DEFAULT 10,
    omnicoins INTEGER NOT NULL DEFAULT 45,
    last_reset TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS llm_providers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    provider TEXT NOT NULL UNIQUE,
    api_key TEXT NOT NULL,
    base_url TEXT,
    model TEXT,
    azure_endpoint TEXT,
    azure_deployment_name TEXT,
    azure_api_version TEXT,
    is_active INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS presentations (
    id TEXT PRIMARY KEY,
    owner TEXT REFERENCES users(username) ON DELETE CASCADE,
    title TEXT,
    description TEXT,
    html TEXT,
    slide_count INTEGER,
    slides TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT
);

CREATE INDEX IF NOT EXISTS presentation_created_idx ON presentations(created_at);
CREATE INDEX IF NOT EXISTS presentation_owner_idx ON presentations(owner);
"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# thin wrapper around a sqlite file
class Database:
    """Opens one connection per operation; the schema is created on first use"""

    def __init__(self, path: str, busy_timeout: float = 30.0):
        self.path = path
        self.busy_timeout = busy_timeout
        self._initialized = False
        self._init_lock = threading.Lock()

    def _ensure_schema(self):
        if self._initialized:
            return
        with self._init_lock:
            if self._initialized:
                return
            if self.path != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            conn = self._open()
            try:
                conn.executescript(SCHEMA)
            finally:
                conn.close()
            self._initialized = True
            logger.info(f"✓ Database ready at {self.path}")

    def _open(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are opened explicitly
        conn = sqlite3.connect(self.path, timeout=self.busy_timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self):
        """Create the schema now instead of on first use"""
        self._ensure_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Autocommit connection for single statements"""
        self._ensure_schema()
        conn = self._open()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction; BEGIN IMMEDIATE takes the write lock up front"""
        self._ensure_schema()
        conn = self._open()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")
        finally:
            conn.close()
