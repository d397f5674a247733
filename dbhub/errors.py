"""Error taxonomy for the content pipeline.

Every pipeline failure is raised as a subclass of DBHubError. The HTTP layer
maps each class to a status code and a short client-facing message; the
detailed cause stays in the server log.

    NotFound            404  database/version absent OR not visible to actor
    InvalidInput        400  bad identifier, operator, unknown table, ...
    StorageUnavailable  500  object store transport/read failure
    EmptyObject         500  object store returned zero bytes
    MalformedData       500  embedded database unreadable / no tables
    cache failures      --   never surfaced, logged and bypassed (see cache.py)
"""

from fastapi import status

GENERIC_SERVER_MESSAGE = "Internal server error"


class DBHubError(Exception):
    """Base class for pipeline errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "internal_server_error"
    public_message: str = GENERIC_SERVER_MESSAGE

    def __init__(self, message: str | None = None, **context):
        self.message = message or self.public_message
        self.context = context
        super().__init__(self.message)

    def client_message(self) -> str:
        """Message that is safe to show to the client."""
        if self.status_code >= 500:
            return GENERIC_SERVER_MESSAGE
        return self.public_message


class NotFound(DBHubError):
    # Deliberately identical for "private" and "absent"
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"
    public_message = "The requested database doesn't exist"


class InvalidInput(DBHubError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "invalid_input"
    public_message = "Invalid request"

    def __init__(self, message: str | None = None, **context):
        super().__init__(message, **context)
        # Validation messages are written for the client
        if message:
            self.public_message = message


class UnknownTable(InvalidInput):
    error_code = "unknown_table"

    def __init__(self, table: str, **context):
        super().__init__("Requested table does not exist", table=table, **context)


class StorageUnavailable(DBHubError):
    error_code = "storage_unavailable"


class EmptyObject(DBHubError):
    error_code = "empty_object"


class MalformedData(DBHubError):
    error_code = "malformed_data"


class NoTables(MalformedData):
    error_code = "no_tables"
