"""Validated SELECT construction for user-controlled projections and filters.

SQLite cannot bind identifiers as parameters, so anything that ends up as an
identifier in generated SQL is checked first:

- table names must come from the live table listing (see schema.py) and are
  then quoted;
- column names must pass validate_identifier() (ASCII letters, digits and
  underscore, not starting with a digit, bounded length, not a keyword);
- the filter operator must be one of ALLOWED_OPERATORS.

Filter literals and the row limit are always bound parameters.

All checks here run before any database is fetched or opened.
"""

import re
from dataclasses import dataclass

from dbhub.config import settings
from dbhub.errors import InvalidInput

ALLOWED_OPERATORS = ("=", "!=", "<", "<=", ">", ">=", "LIKE")

MAX_FILTERS = 1

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# SQLite keywords (https://www.sqlite.org/lang_keywords.html)
SQL_KEYWORDS = frozenset("""
ABORT ACTION ADD AFTER ALL ALTER ALWAYS ANALYZE AND AS ASC ATTACH AUTOINCREMENT
BEFORE BEGIN BETWEEN BY CASCADE CASE CAST CHECK COLLATE COLUMN COMMIT CONFLICT
CONSTRAINT CREATE CROSS CURRENT CURRENT_DATE CURRENT_TIME CURRENT_TIMESTAMP
DATABASE DEFAULT DEFERRABLE DEFERRED DELETE DESC DETACH DISTINCT DO DROP EACH
ELSE END ESCAPE EXCEPT EXCLUDE EXCLUSIVE EXISTS EXPLAIN FAIL FILTER FIRST
FOLLOWING FOR FOREIGN FROM FULL GENERATED GLOB GROUP GROUPS HAVING IF IGNORE
IMMEDIATE IN INDEX INDEXED INITIALLY INNER INSERT INSTEAD INTERSECT INTO IS
ISNULL JOIN KEY LAST LEFT LIKE LIMIT MATCH MATERIALIZED NATURAL NO NOT NOTHING
NOTNULL NULL NULLS OF OFFSET ON OR ORDER OTHERS OUTER OVER PARTITION PLAN
PRAGMA PRECEDING PRIMARY QUERY RAISE RANGE RECURSIVE REFERENCES REGEXP REINDEX
RELEASE RENAME REPLACE RESTRICT RETURNING RIGHT ROLLBACK ROW ROWS SAVEPOINT
SELECT SET TABLE TEMP TEMPORARY THEN TIES TO TRANSACTION TRIGGER UNBOUNDED
UNION UNIQUE UPDATE USING VACUUM VALUES VIEW VIRTUAL WHEN WHERE WINDOW WITH
WITHOUT
""".split())


@dataclass(frozen=True)
class WhereClause:
    column: str
    operator: str
    value: str


@dataclass(frozen=True)
class VisQuery:
    """Validated projection/filter parameters of a visualisation request."""

    x_column: str | None = None
    y_column: str | None = None
    filters: tuple[WhereClause, ...] = ()

    @property
    def projected(self) -> bool:
        return self.x_column is not None

    def cache_params(self) -> tuple:
        """Values that distinguish this query in an output cache key."""
        params: list = [self.x_column, self.y_column]
        for clause in self.filters:
            params.extend([clause.column, clause.operator, clause.value])
        return tuple(params)


def validate_identifier(name: str, kind: str = "column") -> str:
    """
    Check that a user-supplied column name is safe to place in SQL.

    Raises:
        InvalidInput: If the name is empty, too long, malformed or a keyword
    """
    if not name:
        raise InvalidInput(f"Missing {kind} name")
    if len(name) > settings.identifier_max_length:
        raise InvalidInput(f"Invalid {kind} name", name=name)
    if not _IDENTIFIER_RE.match(name):
        raise InvalidInput(f"Invalid {kind} name", name=name)
    if name.upper() in SQL_KEYWORDS:
        raise InvalidInput(f"Invalid {kind} name", name=name)
    return name


def validate_operator(operator: str) -> str:
    """Return the canonical operator, or raise InvalidInput if not allowed."""
    canonical = operator.strip().upper()
    if canonical not in ALLOWED_OPERATORS:
        raise InvalidInput("Invalid filter operator", operator=operator)
    return canonical


def quote_identifier(name: str) -> str:
    """Double-quote an identifier, escaping embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def parse_filter(column: str, operator: str, value: str) -> WhereClause | None:
    """
    Build a filter clause from raw request parameters.

    All three empty means "no filter". A partially specified filter is an
    error rather than being silently dropped.
    """
    if not column and not operator and not value:
        return None
    if not column or not operator:
        raise InvalidInput("Filter requires a column and an operator")
    if value == "":
        raise InvalidInput("Filter value missing")
    return WhereClause(
        column=validate_identifier(column),
        operator=validate_operator(operator),
        value=value,
    )


def parse_vis_query(
    x_column: str = "",
    y_column: str = "",
    where_column: str = "",
    where_operator: str = "",
    where_value: str = "",
) -> VisQuery:
    """Validate the projection and filter parameters of a visualisation request."""
    if bool(x_column) != bool(y_column):
        raise InvalidInput("Both X and Y column names are required")

    clause = parse_filter(where_column, where_operator, where_value)
    return VisQuery(
        x_column=validate_identifier(x_column) if x_column else None,
        y_column=validate_identifier(y_column) if y_column else None,
        filters=(clause,) if clause else (),
    )


def build_select(
    table: str,
    columns: tuple[str, ...] | None = None,
    filters: tuple[WhereClause, ...] | list[WhereClause] = (),
    limit: int | None = None,
) -> tuple[str, list]:
    """
    Build a single-table SELECT.

    Args:
        table: Table name already checked against the live table listing
        columns: Column names to project (None = all columns)
        filters: At most one WhereClause
        limit: Optional row limit (bound as a parameter)

    Returns:
        (sql, params)

    Raises:
        InvalidInput: Bad column name, operator, or too many filters
    """
    if len(filters) > MAX_FILTERS:
        raise InvalidInput("Only one filter clause is supported")

    if columns:
        select_list = ", ".join(quote_identifier(validate_identifier(c)) for c in columns)
    else:
        select_list = "*"

    sql = f"SELECT {select_list} FROM {quote_identifier(table)}"
    params: list = []

    for clause in filters:
        column = validate_identifier(clause.column)
        operator = validate_operator(clause.operator)
        sql += f" WHERE {quote_identifier(column)} {operator} ?"
        params.append(clause.value)

    if limit is not None:
        sql += " LIMIT ?"
        params.append(max(int(limit), 0))

    return sql, params
