"""Content endpoints: table views, visualisation data, CSV export, download.

All four routes read a stored SQLite database as the acting user. Failures
are raised as DBHubError subclasses and turned into
{"error": ..., "message": ...} responses by the handler in main.py.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse

from dbhub import assembler
from dbhub.dependencies import get_acting_user, get_max_rows, get_pipeline
from dbhub.models.responses import ErrorResponse, RecordSet
from dbhub.pipeline import ContentPipeline
from dbhub.query import parse_vis_query

logger = structlog.get_logger()
router = APIRouter(prefix="/x", tags=["content"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

ActingUser = Annotated[str, Depends(get_acting_user)]
Pipeline = Annotated[ContentPipeline, Depends(get_pipeline)]
Version = Annotated[int | None, Query(ge=1, description="Explicit version (default: newest visible)")]


@router.get(
    "/table/{owner}/{db_name}",
    responses={200: {"model": RecordSet}, **_ERROR_RESPONSES},
    summary="Table view",
    description="""
    Rows of one table as a JSON record set.

    - The owner sees their newest version; everyone else the newest public one
    - An empty `table` selects the first table of the database
    - The row limit is the acting user's preference (default 10)
    - A table with no rows (or a zero row limit) returns `{}`
    """,
)
def table_view(
    owner: str,
    db_name: str,
    acting_user: ActingUser,
    pipeline: Pipeline,
    max_rows: Annotated[int, Depends(get_max_rows)],
    table: str = "",
    version: Version = None,
) -> Response:
    body = pipeline.table_json(acting_user, owner, db_name, table, max_rows, version=version)
    return Response(content=body, media_type=assembler.JSON_MEDIA_TYPE)


@router.get(
    "/visdata/{owner}/{db_name}",
    responses={200: {"model": RecordSet}, **_ERROR_RESPONSES},
    summary="Visualisation data",
    description="""
    A two-column projection of a table, optionally filtered by one clause.

    `xcol` and `ycol` must be given together. A filter needs `wherecol`,
    `wheretype` (one of `=`, `!=`, `<`, `<=`, `>`, `>=`, `LIKE`) and
    `whereval`. At most 2500 rows are returned.
    """,
)
def vis_data(
    owner: str,
    db_name: str,
    acting_user: ActingUser,
    pipeline: Pipeline,
    table: str = "",
    xcol: str = "",
    ycol: str = "",
    wherecol: str = "",
    wheretype: str = "",
    whereval: str = "",
    version: Version = None,
) -> Response:
    # Validated before anything is fetched
    vis_query = parse_vis_query(xcol, ycol, wherecol, wheretype, whereval)
    body = pipeline.vis_json(acting_user, owner, db_name, table, vis_query, version=version)
    return Response(content=body, media_type=assembler.JSON_MEDIA_TYPE)


@router.get(
    "/downloadcsv/{owner}/{db_name}",
    responses=_ERROR_RESPONSES,
    summary="Export table as CSV",
    response_class=Response,
)
def download_csv(
    owner: str,
    db_name: str,
    acting_user: ActingUser,
    pipeline: Pipeline,
    table: str = "",
    version: Version = None,
) -> Response:
    """All rows of the named table as a CSV attachment (no header row)."""
    body = pipeline.csv_export(acting_user, owner, db_name, table, version=version)
    return Response(
        content=body,
        media_type=assembler.CSV_MEDIA_TYPE,
        headers=assembler.csv_headers(table),
    )


@router.get(
    "/download/{owner}/{db_name}",
    responses=_ERROR_RESPONSES,
    summary="Download database file",
    response_class=StreamingResponse,
)
def download_database(
    owner: str,
    db_name: str,
    acting_user: ActingUser,
    pipeline: Pipeline,
    version: Version = None,
) -> StreamingResponse:
    """The stored SQLite file, streamed without materializing it."""
    stream = pipeline.raw_download(acting_user, owner, db_name, version=version)
    return StreamingResponse(
        assembler.iter_object(stream, owner, db_name),
        media_type=assembler.SQLITE_MEDIA_TYPE,
        headers=assembler.raw_headers(db_name),
    )
