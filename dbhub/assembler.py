"""Serialize record sets (JSON, CSV) and stream raw database files."""

import csv
import io
from typing import BinaryIO, Iterator
from urllib.parse import quote_plus

import structlog

from dbhub import metrics
from dbhub.models.responses import RecordSet
from dbhub.object_store import ObjectStoreError

logger = structlog.get_logger()

# Returned instead of a null/absent body when a read produced no rows
EMPTY_RESULT = b"{}"

JSON_MEDIA_TYPE = "application/json"
CSV_MEDIA_TYPE = "text/csv"
SQLITE_MEDIA_TYPE = "application/x-sqlite3"

STREAM_CHUNK_SIZE = 64 * 1024


def to_json(record_set: RecordSet, pretty: bool = False) -> bytes:
    """
    Serialize a record set, fields in declaration order.

    Zero returned rows produce EMPTY_RESULT.
    """
    if record_set.row_count == 0:
        return EMPTY_RESULT
    return record_set.model_dump_json(indent=1 if pretty else None).encode("utf-8")


def to_csv(record_set: RecordSet) -> bytes:
    """Serialize the rows as RFC 4180 CSV without a header row."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerows(record_set.values())
    return buffer.getvalue().encode("utf-8")


def attachment_header(filename: str) -> str:
    """Content-Disposition value for a download, with the name escaped."""
    return f"attachment; filename={quote_plus(filename)}"


def csv_headers(table: str) -> dict[str, str]:
    return {"Content-Disposition": attachment_header(f"{table}.csv")}


def raw_headers(db_name: str) -> dict[str, str]:
    return {"Content-Disposition": attachment_header(db_name)}


def iter_object(stream: BinaryIO, owner: str, db_name: str) -> Iterator[bytes]:
    """
    Yield an object stream chunk by chunk, closing it afterwards.

    Failures mid-stream (including the client going away) are logged. The
    response has already started at that point, so nothing is raised.
    """
    bytes_sent = 0
    status = "success"
    try:
        while True:
            chunk = stream.read(STREAM_CHUNK_SIZE)
            if not chunk:
                break
            bytes_sent += len(chunk)
            yield chunk
    except GeneratorExit:
        status = "aborted"
        logger.warning("raw_download_aborted", owner=owner, db_name=db_name, bytes_sent=bytes_sent)
        raise
    except (ObjectStoreError, OSError) as e:
        status = "error"
        logger.error("raw_download_failed", owner=owner, db_name=db_name, bytes_sent=bytes_sent, error=str(e))
    finally:
        try:
            stream.close()
        except (ObjectStoreError, OSError) as e:
            logger.warning("object_close_failed", owner=owner, db_name=db_name, error=str(e))
        metrics.RAW_DOWNLOADS_TOTAL.labels(status=status).inc()

    logger.info("raw_download_complete", owner=owner, db_name=db_name, bytes_sent=bytes_sent)
