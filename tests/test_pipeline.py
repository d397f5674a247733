"""Tests for the content pipeline end to end (below the HTTP layer)."""

import json
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from dbhub.cache import TieredCache
from dbhub.errors import EmptyObject, InvalidInput, NotFound, StorageUnavailable, UnknownTable
from dbhub.pipeline import ContentPipeline
from dbhub.query import parse_vis_query


class TestTableJson:
    def test_public_database_for_anonymous(self, pipeline, seed_database):
        seed_database("alice", "db", public=True)

        data = json.loads(pipeline.table_json("", "alice", "db", "", 10))

        assert data["table"] == "t"
        assert data["tables"] == ["t", "second"]
        assert data["row_count"] == 3
        assert data["total_rows"] == 3

    def test_row_limit(self, pipeline, seed_database):
        seed_database("alice", "db", public=True)

        data = json.loads(pipeline.table_json("", "alice", "db", "t", 2))

        assert data["row_count"] == 2
        assert data["total_rows"] == 3

    def test_zero_rows_gives_empty_marker(self, pipeline, seed_database):
        seed_database("alice", "db", public=True)

        assert pipeline.table_json("", "alice", "db", "t", 0) == b"{}"

    def test_private_database_is_not_found_for_others(self, pipeline, seed_database):
        seed_database("alice", "secret", public=False)

        with pytest.raises(NotFound):
            pipeline.table_json("bob", "alice", "secret", "", 10)
        with pytest.raises(NotFound):
            pipeline.table_json("", "alice", "secret", "", 10)

    def test_owner_sees_private_database(self, pipeline, seed_database):
        seed_database("alice", "secret", public=False)

        data = json.loads(pipeline.table_json("alice", "alice", "secret", "", 10))

        assert data["row_count"] == 3

    def test_owner_and_public_see_different_versions(self, pipeline, seed_database):
        seed_database("alice", "db", ["CREATE TABLE v1 (x)", "INSERT INTO v1 VALUES (1)"], public=True)
        seed_database("alice", "db", ["CREATE TABLE v2 (x)", "INSERT INTO v2 VALUES (2)"], public=False)

        owner_view = json.loads(pipeline.table_json("alice", "alice", "db", "", 10))
        public_view = json.loads(pipeline.table_json("bob", "alice", "db", "", 10))

        assert owner_view["table"] == "v2"
        assert public_view["table"] == "v1"

    def test_unknown_table(self, pipeline, seed_database):
        seed_database("alice", "db", public=True)

        with pytest.raises(UnknownTable):
            pipeline.table_json("", "alice", "db", "nope", 10)

    def test_empty_object(self, pipeline, seed_database):
        seed_database("alice", "db", public=True, content=b"")

        with pytest.raises(EmptyObject):
            pipeline.table_json("", "alice", "db", "", 10)

    def test_missing_object(self, pipeline, metadata_db, seed_database):
        seed_database("alice", "db", public=True)
        metadata_db.add_database_version("alice", "db", "gone", 10, public=True)

        with pytest.raises(StorageUnavailable):
            pipeline.table_json("", "alice", "db", "", 10)

    def test_explicit_version(self, pipeline, seed_database):
        seed_database("alice", "db", ["CREATE TABLE v1 (x)", "INSERT INTO v1 VALUES (1)"], public=True)
        seed_database("alice", "db", ["CREATE TABLE v2 (x)", "INSERT INTO v2 VALUES (2)"], public=True)

        data = json.loads(pipeline.table_json("", "alice", "db", "", 10, version=1))

        assert data["table"] == "v1"


class TestCaching:
    def test_second_request_served_from_cache(self, pipeline, object_store, seed_database):
        seed_database("alice", "db", public=True)

        first = pipeline.table_json("", "alice", "db", "t", 10)
        second = pipeline.table_json("", "alice", "db", "t", 10)

        assert first == second
        assert object_store.fetches == 1

    def test_public_output_shared_between_non_owners(self, pipeline, object_store, seed_database):
        seed_database("alice", "db", public=True)

        anonymous = pipeline.table_json("", "alice", "db", "t", 10)
        bob = pipeline.table_json("bob", "alice", "db", "t", 10)

        assert anonymous == bob
        assert object_store.fetches == 1

    def test_owner_view_cached_separately(self, pipeline, object_store, seed_database):
        seed_database("alice", "db", public=True)

        pipeline.table_json("", "alice", "db", "t", 10)
        pipeline.table_json("alice", "alice", "db", "t", 10)

        assert object_store.fetches == 2

    def test_private_owner_view_never_served_to_others(self, pipeline, seed_database):
        seed_database("alice", "db", public=False)
        pipeline.table_json("alice", "alice", "db", "t", 10)

        with pytest.raises(NotFound):
            pipeline.table_json("bob", "alice", "db", "t", 10)

    def test_different_row_limits_cached_separately(self, pipeline, object_store, seed_database):
        seed_database("alice", "db", public=True)

        two = json.loads(pipeline.table_json("", "alice", "db", "t", 2))
        three = json.loads(pipeline.table_json("", "alice", "db", "t", 3))

        assert two["row_count"] == 2
        assert three["row_count"] == 3
        assert object_store.fetches == 2

    def test_metadata_tier_populated(self, pipeline, redis_client, seed_database):
        seed_database("alice", "db", public=True)

        pipeline.table_json("", "alice", "db", "t", 10)

        keys = {key.decode() for key in redis_client.keys("*")}
        assert any(key.startswith("pub/") for key in keys)
        assert any(key.startswith("tbl-pub-") for key in keys)

    def test_cache_outage_is_transparent(self, metadata_db, object_store, seed_database, temp_data_dir):
        client = MagicMock()
        client.get.side_effect = RedisConnectionError("down")
        client.set.side_effect = RedisConnectionError("down")
        pipeline = ContentPipeline(metadata_db, object_store, TieredCache(client), temp_data_dir["temp_dir"])
        seed_database("alice", "db", public=True)

        first = pipeline.table_json("", "alice", "db", "t", 10)
        second = pipeline.table_json("", "alice", "db", "t", 10)

        assert first == second
        assert object_store.fetches == 2

    def test_cache_disabled(self, metadata_db, object_store, seed_database, temp_data_dir):
        pipeline = ContentPipeline(metadata_db, object_store, TieredCache(None), temp_data_dir["temp_dir"])
        seed_database("alice", "db", public=True)

        assert json.loads(pipeline.table_json("", "alice", "db", "t", 10))["row_count"] == 3


class TestVisJson:
    def test_projection_with_filter(self, pipeline, seed_database):
        seed_database("alice", "db", public=True)
        query = parse_vis_query("id", "name", "id", ">", "1")

        data = json.loads(pipeline.vis_json("", "alice", "db", "t", query))

        values = [[cell["value"] for cell in row] for row in data["records"]]
        assert values == [["2", "b"], ["3", "c"]]
        assert data["total_rows"] == 3

    def test_no_projection_reads_all_columns(self, pipeline, seed_database):
        seed_database("alice", "db", public=True)

        data = json.loads(pipeline.vis_json("", "alice", "db", "", parse_vis_query()))

        assert data["col_names"] == ["id", "name"]
        assert data["row_count"] == 3

    def test_vis_limit(self, pipeline, seed_database, monkeypatch):
        from dbhub.config import settings

        monkeypatch.setattr(settings, "vis_max_values", 1)
        seed_database("alice", "db", public=True)

        data = json.loads(pipeline.vis_json("", "alice", "db", "t", parse_vis_query("id", "name")))

        assert data["row_count"] == 1

    def test_filters_distinguish_cache_entries(self, pipeline, seed_database):
        seed_database("alice", "db", public=True)

        gt1 = json.loads(pipeline.vis_json("", "alice", "db", "t", parse_vis_query("id", "name", "id", ">", "1")))
        gt2 = json.loads(pipeline.vis_json("", "alice", "db", "t", parse_vis_query("id", "name", "id", ">", "2")))

        assert gt1["row_count"] == 2
        assert gt2["row_count"] == 1

    def test_no_matches_gives_empty_marker(self, pipeline, seed_database):
        seed_database("alice", "db", public=True)

        body = pipeline.vis_json("", "alice", "db", "t", parse_vis_query("id", "name", "id", ">", "100"))

        assert body == b"{}"


class TestCsvExport:
    def test_exports_all_rows(self, pipeline, seed_database):
        seed_database("alice", "db", public=True)

        body = pipeline.csv_export("", "alice", "db", "t")

        assert body == b"1,a\r\n2,b\r\n3,c\r\n"

    def test_table_required(self, pipeline, object_store):
        with pytest.raises(InvalidInput):
            pipeline.csv_export("", "alice", "db", "")
        assert object_store.fetches == 0

    def test_private_not_found(self, pipeline, seed_database):
        seed_database("alice", "db", public=False)

        with pytest.raises(NotFound):
            pipeline.csv_export("bob", "alice", "db", "t")


class TestRawDownload:
    def test_stream_contents(self, pipeline, object_store, seed_database):
        seed_database("alice", "db", public=True, content=b"SQLite format 3\x00rest")

        with pipeline.raw_download("", "alice", "db") as stream:
            assert stream.read() == b"SQLite format 3\x00rest"

    def test_never_cached(self, pipeline, object_store, seed_database):
        seed_database("alice", "db", public=True)

        pipeline.raw_download("", "alice", "db").close()
        pipeline.raw_download("", "alice", "db").close()

        assert object_store.fetches == 2

    def test_private_not_found(self, pipeline, seed_database):
        seed_database("alice", "db", public=False)

        with pytest.raises(NotFound):
            pipeline.raw_download("bob", "alice", "db")
