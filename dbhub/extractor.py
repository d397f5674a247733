"""Read typed rows out of a materialized SQLite database.

Each cell is converted from its SQLite storage class to a string that
survives JSON and CSV unchanged:

    INTEGER -> decimal text            42        -> "42"
    REAL    -> fixed point, 4 places   3.14159   -> "3.1416"
    TEXT    -> as-is
    BLOB    -> standard base64         b"\\x00\\xff" -> "AP8="
    NULL    -> "NULL", tagged ValueType.NULL

The type tag is what distinguishes a NULL from a TEXT cell holding "NULL".

Any SQLite error while reading aborts the whole extraction with
MalformedData; a partial record set is never returned.
"""

import base64
import sqlite3
import time

import structlog

from dbhub import metrics
from dbhub.errors import InvalidInput, MalformedData
from dbhub.materializer import MaterializedDatabase
from dbhub.models.responses import DataValue, RecordSet, ValueType
from dbhub.query import WhereClause, build_select, quote_identifier

logger = structlog.get_logger()

NULL_MARKER = "NULL"


def convert_value(value: object) -> tuple[ValueType, str]:
    """Map a value returned by sqlite3 to its (type tag, wire text)."""
    if value is None:
        return ValueType.NULL, NULL_MARKER
    if isinstance(value, int):
        return ValueType.INTEGER, str(value)
    if isinstance(value, float):
        return ValueType.FLOAT, f"{value:.4f}"
    if isinstance(value, str):
        return ValueType.TEXT, value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return ValueType.BINARY, base64.b64encode(bytes(value)).decode("ascii")
    raise MalformedData(f"Unexpected value type from SQLite: {type(value).__name__}")


def _run(
    handle: MaterializedDatabase,
    table: str,
    sql: str,
    params: list,
    max_rows: int | None,
    mode: str,
) -> RecordSet:
    start_time = time.perf_counter()
    try:
        cursor = handle.connection.execute(sql, params)
        col_names = [desc[0] for desc in cursor.description or ()]
        if max_rows is None:
            rows = cursor.fetchall()
        else:
            rows = cursor.fetchmany(max_rows) if max_rows > 0 else []
        cursor.close()
    except sqlite3.Error as e:
        logger.error("row_extraction_failed", table=table, mode=mode, error=str(e))
        raise MalformedData(f"Error reading data from '{table}'. Possibly malformed?") from e

    records = []
    for row in rows:
        record = []
        for name, raw in zip(col_names, row):
            value_type, value = convert_value(raw)
            record.append(DataValue(name=name, type=value_type, value=value))
        records.append(record)

    metrics.EXTRACTION_DURATION.labels(mode=mode).observe(time.perf_counter() - start_time)
    metrics.ROWS_RETURNED.labels(mode=mode).observe(len(records))

    return RecordSet(
        table=table,
        col_names=col_names,
        col_count=len(col_names),
        row_count=len(records),
        records=records,
    )


def read_all(handle: MaterializedDatabase, table: str, max_rows: int | None) -> RecordSet:
    """
    Read up to max_rows complete rows from a table.

    The table name must already have been checked against
    schema.list_tables().
    """
    sql, params = build_select(table)
    return _run(handle, table, sql, params, max_rows, mode="full")


def read_filtered(
    handle: MaterializedDatabase,
    table: str,
    x_column: str | None,
    y_column: str | None,
    max_rows: int,
    filters: tuple[WhereClause, ...] | list[WhereClause] = (),
) -> RecordSet:
    """
    Read a two-column projection, optionally filtered by one clause.

    Passing None for both columns keeps every column and only applies the
    filter. Column names and the operator are validated before the query
    is sent to SQLite, and the columns must exist in the table. The
    filter value is bound as a parameter.
    """
    columns = (x_column, y_column) if x_column and y_column else None
    sql, params = build_select(table, columns=columns, filters=filters, limit=max_rows)

    # SQLite reads an unknown double-quoted identifier as a string literal
    known = {name.lower() for name in table_columns(handle, table)}
    for name in [*(columns or ()), *(clause.column for clause in filters)]:
        if name.lower() not in known:
            raise InvalidInput("Requested column does not exist", column=name, table=table)

    return _run(handle, table, sql, params, max_rows, mode="filtered")


def count_rows(handle: MaterializedDatabase, table: str) -> int:
    """Unfiltered row count of a table."""
    try:
        row = handle.connection.execute(f"SELECT COUNT(*) FROM {quote_identifier(table)}").fetchone()
    except sqlite3.Error as e:
        logger.error("row_count_failed", table=table, error=str(e))
        raise MalformedData(f"Error counting rows in '{table}'") from e
    return int(row[0]) if row else 0


def table_columns(handle: MaterializedDatabase, table: str) -> list[str]:
    """Column names of a table, in declaration order."""
    try:
        rows = handle.connection.execute(f"PRAGMA table_info({quote_identifier(table)})").fetchall()
    except sqlite3.Error as e:
        logger.error("column_listing_failed", table=table, error=str(e))
        raise MalformedData(f"Error retrieving columns of '{table}'") from e
    return [row[1] for row in rows]
