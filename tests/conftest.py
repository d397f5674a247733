"""Pytest configuration and fixtures."""

import sqlite3
import tempfile
from pathlib import Path
from typing import Callable

import fakeredis
import pytest
from fastapi.testclient import TestClient

from dbhub.auth import generate_api_key, get_key_prefix, hash_key
from dbhub.cache import TieredCache
from dbhub.config import settings
from dbhub.dependencies import get_pipeline
from dbhub.main import app
from dbhub.object_store import LocalObjectStore
from dbhub.pipeline import ContentPipeline

TEST_BUCKET = "dbhub-test"


class CountingObjectStore(LocalObjectStore):
    """LocalObjectStore that counts get_object calls."""

    def __init__(self, root: Path | None = None):
        super().__init__(root)
        self.fetches = 0

    def get_object(self, bucket: str, object_id: str):
        self.fetches += 1
        return super().get_object(bucket, object_id)


def build_sqlite_bytes(statements: list[tuple[str, tuple | list]] | list[str]) -> bytes:
    """Create a SQLite database from SQL statements and return its bytes."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "build.sqlite"
        conn = sqlite3.connect(path)
        try:
            for statement in statements:
                if isinstance(statement, tuple):
                    conn.execute(*statement)
                else:
                    conn.execute(statement)
            conn.commit()
        finally:
            conn.close()
        return path.read_bytes()


# Two tables: t (three rows) listed first, then second (one row)
SAMPLE_STATEMENTS = [
    "CREATE TABLE t (id INTEGER, name TEXT)",
    "INSERT INTO t VALUES (1, 'a'), (2, 'b'), (3, 'c')",
    "CREATE TABLE second (x INTEGER)",
    "INSERT INTO second VALUES (10)",
]


@pytest.fixture
def temp_data_dir(monkeypatch):
    """Create temporary data directories for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        tmp_path = Path(tmpdir)

        data_dir = tmp_path / "data"
        objects_dir = data_dir / "objects"
        temp_dir = tmp_path / "materialized"
        metadata_db_path = data_dir / "metadata.duckdb"

        for dir_path in [data_dir, objects_dir, temp_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)

        monkeypatch.setattr(settings, "data_dir", data_dir)
        monkeypatch.setattr(settings, "objects_dir", objects_dir)
        monkeypatch.setattr(settings, "temp_dir", temp_dir)
        monkeypatch.setattr(settings, "metadata_db_path", metadata_db_path)
        monkeypatch.setattr(settings, "object_store_backend", "local")

        yield {
            "data_dir": data_dir,
            "objects_dir": objects_dir,
            "temp_dir": temp_dir,
            "metadata_db_path": metadata_db_path,
        }


@pytest.fixture
def missing_data_dir(monkeypatch):
    """Configure settings with non-existent paths for testing errors."""
    nonexistent = Path("/nonexistent/path/that/does/not/exist")

    monkeypatch.setattr(settings, "data_dir", nonexistent)
    monkeypatch.setattr(settings, "objects_dir", nonexistent / "objects")
    monkeypatch.setattr(settings, "metadata_db_path", nonexistent / "metadata.duckdb")
    monkeypatch.setattr(settings, "object_store_backend", "local")

    yield nonexistent


@pytest.fixture
def metadata_db(temp_data_dir):
    """Create MetadataDB instance with temporary storage."""
    from dbhub.database import MetadataDB

    # Reset singleton for testing
    MetadataDB._instance = None

    db = MetadataDB()
    db.initialize()

    yield db

    MetadataDB._instance = None


@pytest.fixture
def redis_client():
    """Isolated in-memory Redis."""
    return fakeredis.FakeRedis(server=fakeredis.FakeServer())


@pytest.fixture
def cache(redis_client):
    return TieredCache(redis_client)


@pytest.fixture
def object_store(temp_data_dir):
    return CountingObjectStore(temp_data_dir["objects_dir"])


@pytest.fixture
def pipeline(metadata_db, object_store, cache, temp_data_dir):
    return ContentPipeline(
        metadata=metadata_db,
        store=object_store,
        cache=cache,
        temp_dir=temp_data_dir["temp_dir"],
    )


@pytest.fixture
def seed_database(metadata_db, object_store) -> Callable[..., int]:
    """
    Store a SQLite database version for an owner.

    Usage:
        version = seed_database("alice", "sales.sqlite", SAMPLE_STATEMENTS, public=True)

    Creates the user and the database record on first use.
    """
    counter = {"n": 0}

    def _seed(
        owner: str,
        db_name: str,
        statements: list | None = None,
        public: bool = False,
        content: bytes | None = None,
    ) -> int:
        if metadata_db.get_user(owner) is None:
            metadata_db.create_user(owner)
        if metadata_db.get_database(owner, db_name) is None:
            metadata_db.create_database(owner, db_name, TEST_BUCKET)

        data = content if content is not None else build_sqlite_bytes(statements or SAMPLE_STATEMENTS)
        counter["n"] += 1
        object_id = f"{owner}-{counter['n']:04d}"
        size = object_store.put_object(TEST_BUCKET, object_id, data)
        return metadata_db.add_database_version(owner, db_name, object_id, size, public=public)

    return _seed


@pytest.fixture
def api_key_for(metadata_db) -> Callable[[str], str]:
    """Create a user (if needed) and an API key for them; returns the raw key."""

    def _create(username: str, pref_max_rows: int | None = None) -> str:
        if metadata_db.get_user(username) is None:
            metadata_db.create_user(username, pref_max_rows=pref_max_rows)
        key = generate_api_key(username)
        metadata_db.create_api_key(username, hash_key(key), get_key_prefix(key))
        return key

    return _create


@pytest.fixture
def client(pipeline):
    """Test client with the pipeline wired to temporary storage and fakeredis."""
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
