"""Response models for API endpoints."""

from enum import Enum

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status: 'healthy' or 'unhealthy'")
    version: str = Field(description="API version")
    storage_available: bool = Field(description="Whether storage paths are accessible")
    details: dict[str, bool] | None = Field(
        default=None, description="Detailed status of each storage path"
    )


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(description="Error type")
    message: str = Field(description="Error message")


# ============================================
# Record set models
# ============================================


class ValueType(str, Enum):
    """Storage class of a cell as read from SQLite."""

    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    BINARY = "binary"  # base64 encoded
    NULL = "null"


class DataValue(BaseModel):
    """One cell of a record set."""

    name: str = Field(description="Column name")
    type: ValueType = Field(description="Storage class of the value")
    value: str = Field(description="Transport representation of the value")


class RecordSet(BaseModel):
    """Rows read from one table of a SQLite database."""

    table: str = Field(description="Table the rows were read from")
    tables: list[str] = Field(default_factory=list, description="All tables in the database")
    col_names: list[str] = Field(default_factory=list, description="Column names in result order")
    col_count: int = Field(default=0, description="Number of columns")
    row_count: int = Field(default=0, description="Number of rows returned")
    total_rows: int = Field(default=0, description="Unfiltered row count of the table")
    records: list[list[DataValue]] = Field(default_factory=list, description="Returned rows")

    def values(self) -> list[list[str]]:
        """Rows as plain strings (NULL cells become the NULL marker)."""
        return [[cell.value for cell in row] for row in self.records]
