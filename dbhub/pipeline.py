"""Content pipeline: from (actor, owner, database, table) to response bytes.

Every read goes through the same stages:

    access.resolve          which versions the actor may see
    cache (metadata tier)   storage location of that version
    access.lookup           on a metadata-tier miss
    cache (output tier)     the fully rendered response
    materialize             temporary local copy of the database
    schema / extractor      table check and row extraction
    assembler               JSON or CSV bytes, then written back to cache

The storage location is always resolved before the output tier is read, so
a database that stops being visible is not served from a cached public
response beyond the metadata TTL.

Raw downloads share the access and location stages but are never cached.
"""

from pathlib import Path
from typing import BinaryIO

import structlog
from structlog.contextvars import bound_contextvars

from dbhub import access, assembler, extractor, schema
from dbhub.access import QueryTemplate, StorageLocation
from dbhub.cache import TIER_METADATA, TIER_OUTPUT, TieredCache
from dbhub.cache_keys import derive_keys
from dbhub.config import settings
from dbhub.database import MetadataDB
from dbhub.errors import DBHubError, InvalidInput
from dbhub.materializer import MaterializedDatabase, materialize, open_object
from dbhub.models.responses import RecordSet
from dbhub.object_store import ObjectStore
from dbhub.query import VisQuery

logger = structlog.get_logger()


class ContentPipeline:
    """
    Serves database content to one request at a time.

    Instances hold no per-request state and are shared between requests.

    Attributes:
        metadata: Metadata database
        store: Object storage backend
        cache: Tiered response cache
        temp_dir: Directory for materialized copies (None = system temp)
    """

    def __init__(
        self,
        metadata: MetadataDB,
        store: ObjectStore,
        cache: TieredCache,
        temp_dir: Path | None = None,
    ):
        self.metadata = metadata
        self.store = store
        self.cache = cache
        self.temp_dir = temp_dir

    # ========================================
    # Shared stages
    # ========================================

    def _locate(
        self,
        template: QueryTemplate,
        metadata_key: str,
        owner: str,
        db_name: str,
        version: int | None,
    ) -> StorageLocation:
        cached, found = self.cache.get_json(metadata_key, tier=TIER_METADATA)
        if found:
            try:
                return StorageLocation.from_dict(cached)
            except (KeyError, TypeError) as e:
                logger.warning("cached_location_invalid", key=metadata_key, error=str(e))

        location = access.lookup(self.metadata, template, owner, db_name, version)
        self.cache.put_json(metadata_key, location.to_dict(), settings.metadata_cache_ttl, tier=TIER_METADATA)
        return location

    def _materialize(self, location: StorageLocation):
        return materialize(self.store, location.bucket, location.object_id, temp_dir=self.temp_dir)

    def _read_table(self, handle: MaterializedDatabase, table: str, max_rows: int | None) -> RecordSet:
        tables = schema.list_tables(handle)
        effective = schema.resolve_table(handle, table, tables)
        record_set = extractor.read_all(handle, effective, max_rows)
        record_set.tables = tables
        record_set.total_rows = extractor.count_rows(handle, effective)
        return record_set

    def _log_failure(self, error: DBHubError, stage: str) -> None:
        # Request identity (actor, owner, db, table) comes from bound context
        log = logger.warning if error.status_code < 500 else logger.error
        log(
            "content_request_failed",
            stage=stage,
            error_code=error.error_code,
            error=error.message,
            **error.context,
        )

    # ========================================
    # Operations
    # ========================================

    def table_json(
        self,
        acting_user: str,
        owner: str,
        db_name: str,
        table: str,
        max_rows: int,
        version: int | None = None,
    ) -> bytes:
        """
        Render up to max_rows rows of a table as pretty-printed JSON.

        An empty table name selects the first table of the database.

        Raises:
            NotFound, InvalidInput, StorageUnavailable, EmptyObject, MalformedData
        """
        with bound_contextvars(actor=acting_user or "-", owner=owner, db_name=db_name, table=table):
            template = access.resolve(acting_user, owner, db_name)
            keys = derive_keys(
                acting_user, owner, db_name, table, template,
                kind="tbl", version=version, extra_params=(max_rows,),
            )
            try:
                location = self._locate(template, keys.metadata_key, owner, db_name, version)

                cached, found = self.cache.get(keys.output_key, tier=TIER_OUTPUT)
                if found:
                    return cached

                with self._materialize(location) as handle:
                    record_set = self._read_table(handle, table, max_rows)
            except DBHubError as e:
                self._log_failure(e, "table")
                raise

            body = assembler.to_json(record_set, pretty=True)
            self.cache.put(keys.output_key, body, settings.output_cache_ttl, tier=TIER_OUTPUT)
            logger.info("table_rendered", rows=record_set.row_count, total_rows=record_set.total_rows)
            return body

    def vis_json(
        self,
        acting_user: str,
        owner: str,
        db_name: str,
        table: str,
        vis_query: VisQuery,
        version: int | None = None,
    ) -> bytes:
        """
        Render a (possibly projected and filtered) slice of a table as JSON.

        At most settings.vis_max_values rows are returned. total_rows is the
        unfiltered row count of the table.
        """
        max_rows = settings.vis_max_values
        with bound_contextvars(actor=acting_user or "-", owner=owner, db_name=db_name, table=table):
            template = access.resolve(acting_user, owner, db_name)
            keys = derive_keys(
                acting_user, owner, db_name, table, template,
                kind="visdat", version=version,
                extra_params=(*vis_query.cache_params(), max_rows),
            )
            try:
                location = self._locate(template, keys.metadata_key, owner, db_name, version)

                cached, found = self.cache.get(keys.output_key, tier=TIER_OUTPUT)
                if found:
                    return cached

                with self._materialize(location) as handle:
                    tables = schema.list_tables(handle)
                    effective = schema.resolve_table(handle, table, tables)
                    if vis_query.projected or vis_query.filters:
                        record_set = extractor.read_filtered(
                            handle,
                            effective,
                            vis_query.x_column,
                            vis_query.y_column,
                            max_rows,
                            vis_query.filters,
                        )
                    else:
                        record_set = extractor.read_all(handle, effective, max_rows)
                    record_set.tables = tables
                    record_set.total_rows = extractor.count_rows(handle, effective)
            except DBHubError as e:
                self._log_failure(e, "vis")
                raise

            body = assembler.to_json(record_set)
            self.cache.put(keys.output_key, body, settings.output_cache_ttl, tier=TIER_OUTPUT)
            logger.info("vis_rendered", rows=record_set.row_count, total_rows=record_set.total_rows)
            return body

    def csv_export(
        self,
        acting_user: str,
        owner: str,
        db_name: str,
        table: str,
        version: int | None = None,
    ) -> bytes:
        """
        Export every row of a table as CSV (no header row).

        Unlike the JSON views the table must be named explicitly.
        """
        with bound_contextvars(actor=acting_user or "-", owner=owner, db_name=db_name, table=table):
            if not table:
                raise InvalidInput("No table name given")

            template = access.resolve(acting_user, owner, db_name)
            keys = derive_keys(acting_user, owner, db_name, table, template, kind="csv", version=version)
            try:
                location = self._locate(template, keys.metadata_key, owner, db_name, version)

                cached, found = self.cache.get(keys.output_key, tier=TIER_OUTPUT)
                if found:
                    return cached

                with self._materialize(location) as handle:
                    record_set = self._read_table(handle, table, None)
            except DBHubError as e:
                self._log_failure(e, "csv")
                raise

            body = assembler.to_csv(record_set)
            self.cache.put(keys.output_key, body, settings.output_cache_ttl, tier=TIER_OUTPUT)
            logger.info("csv_exported", rows=record_set.row_count)
            return body

    def raw_download(
        self,
        acting_user: str,
        owner: str,
        db_name: str,
        version: int | None = None,
    ) -> BinaryIO:
        """
        Open the stored database file for streaming.

        The caller owns the returned stream and must close it (see
        assembler.iter_object).
        """
        with bound_contextvars(actor=acting_user or "-", owner=owner, db_name=db_name):
            template = access.resolve(acting_user, owner, db_name)
            keys = derive_keys(acting_user, owner, db_name, "", template, kind="raw", version=version)
            try:
                location = self._locate(template, keys.metadata_key, owner, db_name, version)
                stream = open_object(self.store, location.bucket, location.object_id)
            except DBHubError as e:
                self._log_failure(e, "download")
                raise

            logger.info("raw_download_started", bucket=location.bucket, object_id=location.object_id)
            return stream
