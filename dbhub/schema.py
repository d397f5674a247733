"""Table listing and table-name validation for materialized databases."""

import sqlite3

import structlog

from dbhub.errors import MalformedData, NoTables, UnknownTable
from dbhub.materializer import MaterializedDatabase

logger = structlog.get_logger()

# rowid order of sqlite_master is the order tables were created in. It is
# whatever SQLite reports, not alphabetical. Only the exact, case-sensitive
# "sqlite_" prefix is reserved for internal tables.
_LIST_TABLES_SQL = """
SELECT name
FROM sqlite_master
WHERE type = 'table'
    AND substr(name, 1, 7) != 'sqlite_'
ORDER BY rowid
"""


def list_tables(handle: MaterializedDatabase) -> list[str]:
    """
    List the user tables of a database.

    Raises:
        MalformedData: The file is not a readable SQLite database
        NoTables: The database has no tables
    """
    try:
        tables = [row[0] for row in handle.connection.execute(_LIST_TABLES_SQL).fetchall()]
    except sqlite3.Error as e:
        logger.error("table_listing_failed", error=str(e))
        raise MalformedData(f"Error retrieving table names: {e}") from e

    if not tables:
        logger.error("database_has_no_tables", size_bytes=handle.size_bytes)
        raise NoTables("The database doesn't seem to have any tables")

    return tables


def resolve_table(handle: MaterializedDatabase, requested: str, tables: list[str] | None = None) -> str:
    """
    Pick the table a request will read.

    Args:
        handle: Open materialized database
        requested: Requested table name ("" for the default table)
        tables: Already-fetched table listing, to avoid listing twice

    Returns:
        The requested table if it exists, or the first listed table when
        nothing was requested

    Raises:
        UnknownTable: A table was requested and it does not exist
    """
    if tables is None:
        tables = list_tables(handle)

    if not requested:
        return tables[0]

    if requested not in tables:
        logger.warning("requested_table_unknown", table=requested, tables=tables)
        raise UnknownTable(requested)

    return requested
