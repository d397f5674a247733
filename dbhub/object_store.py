"""Object storage backends for uploaded database files.

Two backends implement the same small interface:

- LocalObjectStore: objects as files under settings.objects_dir/{bucket}/
- S3ObjectStore: any S3-compatible service (AWS S3, MinIO) via boto3

get_object() returns a readable binary stream that the caller must close.
Every transport or read failure surfaces as ObjectStoreError, from both the
call itself and from reading the returned stream.
"""

import shutil
from pathlib import Path
from typing import BinaryIO, Protocol

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from dbhub.config import settings

logger = structlog.get_logger()


class ObjectStoreError(Exception):
    """Raised when an object cannot be fetched or stored."""


class ObjectStore(Protocol):
    def get_object(self, bucket: str, object_id: str) -> BinaryIO:
        ...

    def put_object(self, bucket: str, object_id: str, data: BinaryIO | bytes) -> int:
        ...


class LocalObjectStore:
    """Filesystem-backed object store."""

    def __init__(self, root: Path | None = None):
        self._root = root

    @property
    def root(self) -> Path:
        """Root directory (read from settings on each access to support testing)."""
        return self._root if self._root is not None else settings.objects_dir

    def _object_path(self, bucket: str, object_id: str) -> Path:
        for part in (bucket, object_id):
            if not part or "/" in part or "\\" in part or part in (".", ".."):
                raise ObjectStoreError(f"Invalid object reference: {bucket}/{object_id}")
        return self.root / bucket / object_id

    def get_object(self, bucket: str, object_id: str) -> BinaryIO:
        path = self._object_path(bucket, object_id)
        try:
            return open(path, "rb")
        except OSError as e:
            raise ObjectStoreError(f"Cannot open object {bucket}/{object_id}: {e}") from e

    def put_object(self, bucket: str, object_id: str, data: BinaryIO | bytes) -> int:
        path = self._object_path(bucket, object_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                if isinstance(data, (bytes, bytearray)):
                    f.write(data)
                else:
                    shutil.copyfileobj(data, f)
        except OSError as e:
            raise ObjectStoreError(f"Cannot write object {bucket}/{object_id}: {e}") from e

        size = path.stat().st_size
        logger.info("object_stored", backend="local", bucket=bucket, object_id=object_id, size_bytes=size)
        return size


class _S3Body:
    """Wraps a botocore StreamingBody so read errors become ObjectStoreError."""

    def __init__(self, body, bucket: str, object_id: str):
        self._body = body
        self._ref = f"{bucket}/{object_id}"

    def read(self, size: int = -1) -> bytes:
        try:
            return self._body.read(None if size is None or size < 0 else size)
        except (BotoCoreError, OSError) as e:
            raise ObjectStoreError(f"Error reading object {self._ref}: {e}") from e

    def close(self) -> None:
        self._body.close()

    def __enter__(self) -> "_S3Body":
        return self

    def __exit__(self, *args) -> None:
        self.close()


class S3ObjectStore:
    """S3-compatible object store (MinIO, AWS)."""

    def __init__(self, client=None):
        self.client = client or boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=settings.s3_region,
            use_ssl=settings.s3_use_ssl,
            config=Config(
                connect_timeout=settings.s3_connect_timeout,
                read_timeout=settings.s3_read_timeout,
                retries={"max_attempts": 3},
            ),
        )

    def get_object(self, bucket: str, object_id: str) -> BinaryIO:
        try:
            response = self.client.get_object(Bucket=bucket, Key=object_id)
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"Cannot fetch object {bucket}/{object_id}: {e}") from e
        return _S3Body(response["Body"], bucket, object_id)

    def put_object(self, bucket: str, object_id: str, data: BinaryIO | bytes) -> int:
        try:
            if isinstance(data, (bytes, bytearray)):
                self.client.put_object(Bucket=bucket, Key=object_id, Body=data)
                size = len(data)
            else:
                self.client.upload_fileobj(data, bucket, object_id)
                size = self.client.head_object(Bucket=bucket, Key=object_id)["ContentLength"]
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"Cannot write object {bucket}/{object_id}: {e}") from e

        logger.info("object_stored", backend="s3", bucket=bucket, object_id=object_id, size_bytes=size)
        return size


def build_object_store() -> ObjectStore:
    """Create the configured object store backend."""
    if settings.object_store_backend == "s3":
        logger.info("object_store_configured", backend="s3", endpoint=settings.s3_endpoint_url)
        return S3ObjectStore()
    logger.info("object_store_configured", backend="local")
    return LocalObjectStore()
