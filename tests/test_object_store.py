"""Tests for the object storage backends."""

import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from dbhub.config import settings
from dbhub.object_store import (
    LocalObjectStore,
    ObjectStoreError,
    S3ObjectStore,
    build_object_store,
)


class TestLocalObjectStore:
    def test_put_and_get_bytes(self, tmp_path):
        store = LocalObjectStore(tmp_path)

        assert store.put_object("bucket", "obj", b"hello") == 5
        with store.get_object("bucket", "obj") as stream:
            assert stream.read() == b"hello"

    def test_put_stream(self, tmp_path):
        store = LocalObjectStore(tmp_path)

        assert store.put_object("bucket", "obj", io.BytesIO(b"abc")) == 3
        assert (tmp_path / "bucket" / "obj").read_bytes() == b"abc"

    def test_missing_object(self, tmp_path):
        with pytest.raises(ObjectStoreError):
            LocalObjectStore(tmp_path).get_object("bucket", "missing")

    @pytest.mark.parametrize("bucket,object_id", [
        ("..", "obj"),
        ("bucket", "../escape"),
        ("bucket", ""),
        ("a/b", "obj"),
    ])
    def test_rejects_path_traversal(self, tmp_path, bucket, object_id):
        with pytest.raises(ObjectStoreError):
            LocalObjectStore(tmp_path).get_object(bucket, object_id)

    def test_root_defaults_to_settings(self, temp_data_dir):
        assert LocalObjectStore().root == temp_data_dir["objects_dir"]


class TestS3ObjectStore:
    def test_get_object(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": io.BytesIO(b"sqlite bytes")}
        store = S3ObjectStore(client=client)

        stream = store.get_object("bucket", "obj")

        assert stream.read() == b"sqlite bytes"
        client.get_object.assert_called_once_with(Bucket="bucket", Key="obj")

    def test_get_object_error(self):
        client = MagicMock()
        client.get_object.side_effect = ClientError(
            {"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject"
        )

        with pytest.raises(ObjectStoreError):
            S3ObjectStore(client=client).get_object("bucket", "obj")

    def test_put_bytes(self):
        client = MagicMock()

        assert S3ObjectStore(client=client).put_object("bucket", "obj", b"1234") == 4
        client.put_object.assert_called_once_with(Bucket="bucket", Key="obj", Body=b"1234")


def test_build_object_store_local(temp_data_dir):
    assert isinstance(build_object_store(), LocalObjectStore)


def test_build_object_store_s3(monkeypatch):
    monkeypatch.setattr(settings, "object_store_backend", "s3")
    monkeypatch.setattr(settings, "s3_endpoint_url", "http://localhost:9000")
    monkeypatch.setattr(settings, "s3_access_key_id", "minio")
    monkeypatch.setattr(settings, "s3_secret_access_key", "minio123")

    assert isinstance(build_object_store(), S3ObjectStore)
