"""Copy a stored database out of object storage into a private local file.

SQLite can only open files on a local filesystem, so every extraction works
on a temporary copy. materialize() is a context manager: the copy exists for
the body of the `with` block only, and on every exit path (normal return,
validation error, unexpected exception) the object stream and the SQLite
connection are closed and the temporary file is removed.

    with materialize(store, bucket, object_id) as handle:
        tables = schema.list_tables(handle)
        ...
"""

import os
import sqlite3
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Generator

import structlog

from dbhub import metrics
from dbhub.errors import EmptyObject, MalformedData, StorageUnavailable
from dbhub.object_store import ObjectStore, ObjectStoreError

logger = structlog.get_logger()

TEMPFILE_PREFIX = "dbhub-"
COPY_CHUNK_SIZE = 64 * 1024


def _decode_text(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


class MaterializedDatabase:
    """A read-only SQLite connection over a temporary local copy."""

    def __init__(self, path: Path, size_bytes: int):
        self.path = path
        self.size_bytes = size_bytes
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Materialized database is not open")
        return self._conn

    def open(self) -> None:
        uri = f"{self.path.as_uri()}?mode=ro"
        try:
            self._conn = sqlite3.connect(uri, uri=True)
        except sqlite3.Error as e:
            raise MalformedData(f"Couldn't open database: {e}") from e
        # Stored TEXT is not guaranteed to be valid UTF-8
        self._conn.text_factory = _decode_text

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def _copy_stream(source: BinaryIO, target: BinaryIO) -> int:
    total = 0
    while True:
        chunk = source.read(COPY_CHUNK_SIZE)
        if not chunk:
            return total
        target.write(chunk)
        total += len(chunk)


def open_object(store: ObjectStore, bucket: str, object_id: str) -> BinaryIO:
    """Open a raw object stream, mapping transport errors to StorageUnavailable."""
    try:
        return store.get_object(bucket, object_id)
    except ObjectStoreError as e:
        metrics.OBJECT_FETCHES_TOTAL.labels(status="error").inc()
        logger.error("object_fetch_failed", bucket=bucket, object_id=object_id, error=str(e))
        raise StorageUnavailable(str(e), bucket=bucket, object_id=object_id) from e


def _close_quietly(stream: BinaryIO, bucket: str, object_id: str) -> None:
    try:
        stream.close()
    except (ObjectStoreError, OSError) as e:
        logger.warning("object_close_failed", bucket=bucket, object_id=object_id, error=str(e))


@contextmanager
def materialize(
    store: ObjectStore,
    bucket: str,
    object_id: str,
    temp_dir: Path | None = None,
) -> Generator[MaterializedDatabase, None, None]:
    """
    Fetch an object and expose it as an open, read-only SQLite database.

    Args:
        store: Object storage backend
        bucket: Storage bucket
        object_id: Object key within the bucket
        temp_dir: Directory for the temporary copy (None = system default)

    Yields:
        MaterializedDatabase with an open read-only connection

    Raises:
        StorageUnavailable: The object could not be fetched or copied
        EmptyObject: The object contained zero bytes
        MalformedData: The copy could not be opened by SQLite
    """
    start_time = time.perf_counter()
    stream = open_object(store, bucket, object_id)

    try:
        fd, temp_name = tempfile.mkstemp(prefix=TEMPFILE_PREFIX, dir=temp_dir)
    except OSError as e:
        _close_quietly(stream, bucket, object_id)
        logger.error("tempfile_create_failed", error=str(e))
        raise StorageUnavailable(f"Error creating tempfile: {e}") from e

    temp_path = Path(temp_name)
    handle: MaterializedDatabase | None = None
    try:
        try:
            with os.fdopen(fd, "wb") as temp_file:
                bytes_written = _copy_stream(stream, temp_file)
        except (ObjectStoreError, OSError) as e:
            metrics.OBJECT_FETCHES_TOTAL.labels(status="error").inc()
            logger.error(
                "object_copy_failed",
                bucket=bucket,
                object_id=object_id,
                error=str(e),
            )
            raise StorageUnavailable(f"Error writing database to temporary file: {e}") from e
        finally:
            _close_quietly(stream, bucket, object_id)

        if bytes_written == 0:
            metrics.OBJECT_FETCHES_TOTAL.labels(status="empty").inc()
            logger.error("object_empty", bucket=bucket, object_id=object_id)
            raise EmptyObject("0 bytes written to the temporary file", bucket=bucket, object_id=object_id)

        metrics.OBJECT_FETCHES_TOTAL.labels(status="success").inc()
        metrics.OBJECT_FETCH_BYTES_TOTAL.inc(bytes_written)
        logger.debug(
            "object_materialized",
            bucket=bucket,
            object_id=object_id,
            size_bytes=bytes_written,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )

        handle = MaterializedDatabase(temp_path, bytes_written)
        handle.open()
        yield handle
    finally:
        if handle is not None:
            handle.close()
        try:
            temp_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("tempfile_remove_failed", path=str(temp_path), error=str(e))
