"""Metadata database management (DuckDB).

The metadata database records who owns which SQLite database and where each
immutable version of it lives in object storage:

- users              -> username + display preferences (max rows)
- api_keys           -> hashed bearer keys resolving to a username
- sqlite_databases   -> (username, dbname) natural key + storage bucket
- database_versions  -> one row per uploaded version (never updated)

The content pipeline only reads from it. The write helpers here are the
hand-off point used by the upload workflow and by tests.
"""

import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

import duckdb
import structlog

from dbhub.config import settings
from dbhub import metrics

logger = structlog.get_logger()


# ============================================
# Schema definitions
# ============================================

METADATA_SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS seq_sqlite_databases START 1;

-- Registered users (login/registration lives elsewhere)
CREATE TABLE IF NOT EXISTS users (
    username VARCHAR PRIMARY KEY,
    email VARCHAR,
    pref_max_rows INTEGER,
    created_at TIMESTAMPTZ DEFAULT now()
);

-- Bearer API keys (only hashes are stored)
CREATE TABLE IF NOT EXISTS api_keys (
    id VARCHAR PRIMARY KEY,
    username VARCHAR NOT NULL,
    key_hash VARCHAR(64) NOT NULL,
    key_prefix VARCHAR(50) NOT NULL,
    description VARCHAR(255),
    created_at TIMESTAMPTZ DEFAULT now(),
    last_used_at TIMESTAMPTZ,
    revoked_at TIMESTAMPTZ,
    FOREIGN KEY (username) REFERENCES users(username)
);

CREATE INDEX IF NOT EXISTS idx_api_keys_prefix ON api_keys(key_prefix);

-- One row per (owner, database name)
CREATE TABLE IF NOT EXISTS sqlite_databases (
    idnum INTEGER PRIMARY KEY DEFAULT nextval('seq_sqlite_databases'),
    username VARCHAR NOT NULL,
    dbname VARCHAR NOT NULL,
    minio_bucket VARCHAR NOT NULL,
    date_created TIMESTAMPTZ DEFAULT now(),
    UNIQUE (username, dbname)
);

-- Immutable versions of each database
CREATE TABLE IF NOT EXISTS database_versions (
    db INTEGER NOT NULL,
    version INTEGER NOT NULL,
    size BIGINT NOT NULL,
    sha256 VARCHAR(64),
    public BOOLEAN NOT NULL DEFAULT false,
    minioid VARCHAR NOT NULL,
    date_created TIMESTAMPTZ DEFAULT now(),
    PRIMARY KEY (db, version),
    FOREIGN KEY (db) REFERENCES sqlite_databases(idnum)
);
"""


class MetadataDB:
    """
    Singleton class for managing the central metadata database.

    Note: db_path is read from settings on each access to support testing.
    """

    _instance: "MetadataDB | None" = None
    _lock = threading.Lock()

    def __new__(cls) -> "MetadataDB":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return

        self._conn_lock = threading.Lock()
        self._initialized = True

    @property
    def _db_path(self) -> Path:
        """Get db path from settings (allows runtime override in tests)."""
        return settings.metadata_db_path

    def initialize(self) -> None:
        """Initialize the metadata database and create schema."""
        db_path = self._db_path
        with self._conn_lock:
            db_path.parent.mkdir(parents=True, exist_ok=True)

            conn = duckdb.connect(str(db_path))
            try:
                conn.execute(METADATA_SCHEMA)
                conn.commit()
                logger.info("metadata_db_schema_created", path=str(db_path))
            finally:
                conn.close()

    @contextmanager
    def connection(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Get a connection to the metadata database.

        Usage:
            with metadata_db.connection() as conn:
                conn.execute("SELECT * FROM users")
        """
        metrics.METADATA_CONNECTIONS_ACTIVE.inc()
        conn = duckdb.connect(str(self._db_path))
        try:
            yield conn
        finally:
            conn.close()
            metrics.METADATA_CONNECTIONS_ACTIVE.dec()

    def execute(self, query: str, params: list | None = None) -> list[tuple]:
        """Execute a read query and return results."""
        start_time = time.time()
        try:
            with self.connection() as conn:
                if params:
                    result = conn.execute(query, params).fetchall()
                else:
                    result = conn.execute(query).fetchall()
                return result
        finally:
            duration = time.time() - start_time
            metrics.METADATA_QUERIES_TOTAL.labels(operation="read").inc()
            metrics.METADATA_QUERY_DURATION.labels(operation="read").observe(duration)

    def execute_one(self, query: str, params: list | None = None) -> tuple | None:
        """Execute a query and return single result."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_write(self, query: str, params: list | None = None) -> None:
        """Execute a write query (INSERT, UPDATE, DELETE)."""
        start_time = time.time()
        try:
            with self.connection() as conn:
                if params:
                    conn.execute(query, params)
                else:
                    conn.execute(query)
                conn.commit()
        finally:
            duration = time.time() - start_time
            metrics.METADATA_QUERIES_TOTAL.labels(operation="write").inc()
            metrics.METADATA_QUERY_DURATION.labels(operation="write").observe(duration)

    # ========================================
    # User operations
    # ========================================

    def create_user(
        self,
        username: str,
        email: str | None = None,
        pref_max_rows: int | None = None,
    ) -> dict[str, Any]:
        """Create a user record."""
        self.execute_write(
            """
            INSERT INTO users (username, email, pref_max_rows, created_at)
            VALUES (?, ?, ?, ?)
            """,
            [username, email, pref_max_rows, datetime.now(timezone.utc)],
        )
        logger.info("user_created", username=username)
        return self.get_user(username)

    def get_user(self, username: str) -> dict[str, Any] | None:
        """Get user by username."""
        row = self.execute_one(
            "SELECT username, email, pref_max_rows, CAST(created_at AS VARCHAR) FROM users WHERE username = ?",
            [username],
        )
        if not row:
            return None
        return {
            "username": row[0],
            "email": row[1],
            "pref_max_rows": row[2],
            "created_at": row[3],
        }

    def get_user_max_rows(self, username: str) -> int | None:
        """Return the user's max-rows preference, or None if unset/unknown."""
        row = self.execute_one(
            "SELECT pref_max_rows FROM users WHERE username = ?", [username]
        )
        if not row or row[0] is None:
            return None
        return int(row[0])

    # ========================================
    # API key operations
    # ========================================

    def create_api_key(
        self,
        username: str,
        key_hash: str,
        key_prefix: str,
        description: str | None = None,
    ) -> str:
        """Store a hashed API key for a user. Returns the key record ID."""
        key_id = str(uuid.uuid4())
        self.execute_write(
            """
            INSERT INTO api_keys (id, username, key_hash, key_prefix, description, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [key_id, username, key_hash, key_prefix, description, datetime.now(timezone.utc)],
        )
        logger.info("api_key_created", username=username, key_prefix=key_prefix)
        return key_id

    def get_api_key_by_prefix(self, key_prefix: str) -> dict[str, Any] | None:
        """Look up a non-revoked API key by its prefix."""
        row = self.execute_one(
            """
            SELECT id, username, key_hash, key_prefix, description
            FROM api_keys
            WHERE key_prefix = ? AND revoked_at IS NULL
            ORDER BY created_at DESC
            LIMIT 1
            """,
            [key_prefix],
        )
        if not row:
            return None
        return {
            "id": row[0],
            "username": row[1],
            "key_hash": row[2],
            "key_prefix": row[3],
            "description": row[4],
        }

    def update_api_key_last_used(self, key_id: str) -> None:
        """Update last_used_at timestamp for an API key."""
        self.execute_write(
            "UPDATE api_keys SET last_used_at = ? WHERE id = ?",
            [datetime.now(timezone.utc), key_id],
        )

    # ========================================
    # Database / version operations
    # ========================================

    def create_database(self, username: str, dbname: str, bucket: str) -> int:
        """Register a database for an owner. Returns its idnum."""
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO sqlite_databases (username, dbname, minio_bucket, date_created)
                VALUES (?, ?, ?, ?)
                """,
                [username, dbname, bucket, datetime.now(timezone.utc)],
            )
            conn.commit()
            row = conn.execute(
                "SELECT idnum FROM sqlite_databases WHERE username = ? AND dbname = ?",
                [username, dbname],
            ).fetchone()

        logger.info("database_registered", owner=username, db_name=dbname, bucket=bucket)
        return row[0]

    def get_database(self, username: str, dbname: str) -> dict[str, Any] | None:
        """Get a database record by its natural key."""
        row = self.execute_one(
            """
            SELECT idnum, username, dbname, minio_bucket, CAST(date_created AS VARCHAR)
            FROM sqlite_databases
            WHERE username = ? AND dbname = ?
            """,
            [username, dbname],
        )
        if not row:
            return None
        return {
            "idnum": row[0],
            "username": row[1],
            "dbname": row[2],
            "bucket": row[3],
            "date_created": row[4],
        }

    def add_database_version(
        self,
        username: str,
        dbname: str,
        object_id: str,
        size_bytes: int,
        sha256: str | None = None,
        public: bool = False,
    ) -> int:
        """
        Record a new immutable version of a database.

        The version number is one more than the current highest version for
        the database (1 for the first upload). Existing rows are never
        modified.

        Returns:
            The new version number

        Raises:
            KeyError: If the database has not been registered
        """
        with self._conn_lock, self.connection() as conn:
            row = conn.execute(
                "SELECT idnum FROM sqlite_databases WHERE username = ? AND dbname = ?",
                [username, dbname],
            ).fetchone()
            if not row:
                raise KeyError(f"Database not registered: {username}/{dbname}")
            db_id = row[0]

            highest = conn.execute(
                "SELECT COALESCE(MAX(version), 0) FROM database_versions WHERE db = ?",
                [db_id],
            ).fetchone()[0]
            version = highest + 1

            conn.execute(
                """
                INSERT INTO database_versions (db, version, size, sha256, public, minioid, date_created)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [db_id, version, size_bytes, sha256, public, object_id, datetime.now(timezone.utc)],
            )
            conn.commit()

        logger.info(
            "database_version_added",
            owner=username,
            db_name=dbname,
            version=version,
            public=public,
            size_bytes=size_bytes,
        )
        return version

    def get_database_versions(self, username: str, dbname: str) -> list[dict[str, Any]]:
        """List all versions of a database, newest first."""
        rows = self.execute(
            """
            SELECT ver.version, ver.size, ver.sha256, ver.public, ver.minioid, CAST(ver.date_created AS VARCHAR)
            FROM database_versions AS ver
            JOIN sqlite_databases AS db ON ver.db = db.idnum
            WHERE db.username = ? AND db.dbname = ?
            ORDER BY ver.version DESC
            """,
            [username, dbname],
        )
        return [
            {
                "version": row[0],
                "size_bytes": row[1],
                "sha256": row[2],
                "public": row[3],
                "object_id": row[4],
                "created_at": row[5],
            }
            for row in rows
        ]


# Global singleton instance
metadata_db = MetadataDB()
