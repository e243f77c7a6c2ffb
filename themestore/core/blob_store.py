"""Blob storage for theme archives and preview images.

Implementations:
- LocalBlobStore: directory-backed, for development and tests
- S3BlobStore: any S3-compatible bucket through boto3
"""

from __future__ import annotations

import logging
import shutil
import time
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Any, BinaryIO
from urllib.parse import urlencode

from themestore.core.constants import ARCHIVE_KEY_PREFIX, PREVIEW_KEY_PREFIX
from themestore.core.models import Variant
from themestore.errors import BlobNotFoundError, BlobStoreError, ErrorCode

logger = logging.getLogger("themestore.blob_store")


def archive_key(file_name: str) -> str:
    return f"{ARCHIVE_KEY_PREFIX}/{file_name}"


def preview_name(index: int, variant: Variant, file_id: str, suffix: str = ".png") -> str:
    return f"{index}-{variant.value}-{file_id}{suffix}"


def preview_key(index: int, variant: Variant, file_id: str) -> str:
    return f"{PREVIEW_KEY_PREFIX}/{variant.value}/{preview_name(index, variant, file_id)}"


class BlobStore(ABC):
    """Key-addressed object storage."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        """Store data under key, replacing any previous object."""

    def put_file(self, key: str, path: Path, content_type: str = "application/octet-stream") -> None:
        self.put(key, Path(path).read_bytes(), content_type)

    @abstractmethod
    def get_stream(self, key: str) -> BinaryIO:
        """Open the object for reading; raises BlobNotFoundError."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def signed_url(self, key: str, ttl_seconds: int) -> str:
        """Time-limited download URL for key."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        ...


class LocalBlobStore(BlobStore):
    """Stores blobs as files below a base directory."""

    def __init__(self, base_path: Path | str) -> None:
        self._base_path = Path(base_path)

    @property
    def base_path(self) -> Path:
        return self._base_path

    def _key_to_path(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or PurePosixPath(key).is_absolute() or ".." in parts:
            raise BlobStoreError(f"Invalid blob key: {key!r}", details={"key": key})
        return self._base_path.joinpath(*parts)

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        path = self._key_to_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(path.name + ".part")
            tmp.write_bytes(data)
            tmp.replace(path)
        except OSError as exc:
            raise BlobStoreError(details={"key": key, "original": str(exc)}) from exc
        logger.debug("stored blob %s (%d bytes)", key, len(data))

    def put_file(self, key: str, path: Path, content_type: str = "application/octet-stream") -> None:
        target = self._key_to_path(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, target)
        except OSError as exc:
            raise BlobStoreError(details={"key": key, "original": str(exc)}) from exc

    def get_stream(self, key: str) -> BinaryIO:
        path = self._key_to_path(key)
        try:
            return path.open("rb")
        except FileNotFoundError as exc:
            raise BlobNotFoundError(details={"key": key}) from exc
        except OSError as exc:
            raise BlobStoreError(details={"key": key, "original": str(exc)}) from exc

    def exists(self, key: str) -> bool:
        return self._key_to_path(key).is_file()

    def signed_url(self, key: str, ttl_seconds: int) -> str:
        path = self._key_to_path(key)
        expires = int(time.time()) + int(ttl_seconds)
        return f"{path.resolve().as_uri()}?{urlencode({'expires': expires})}"

    def delete(self, key: str) -> bool:
        path = self._key_to_path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise BlobStoreError(details={"key": key, "original": str(exc)}) from exc
        return True


class S3BlobStore(BlobStore):
    """S3-compatible bucket store.

    Requires boto3 and credentials, either passed in or resolved by boto3.
    """

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        region: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        client: Any = None,
    ) -> None:
        self._bucket = bucket
        self._endpoint_url = endpoint_url or None
        self._region = region or None
        self._access_key_id = access_key_id or None
        self._secret_access_key = secret_access_key or None
        self._client = client

    @property
    def bucket(self) -> str:
        return self._bucket

    def _get_client(self) -> Any:
        if self._client is None:
            import boto3

            self._client = boto3.client(
                "s3",
                endpoint_url=self._endpoint_url,
                region_name=self._region,
                aws_access_key_id=self._access_key_id,
                aws_secret_access_key=self._secret_access_key,
            )
            logger.info("S3BlobStore initialized: s3://%s (%s)", self._bucket, self._endpoint_url or "aws")
        return self._client

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self._get_client().put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(details={"key": key, "original": str(exc)}) from exc
        logger.debug("stored s3://%s/%s (%d bytes)", self._bucket, key, len(data))

    def get_stream(self, key: str) -> BinaryIO:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = self._get_client().get_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                raise BlobNotFoundError(details={"key": key}) from exc
            raise BlobStoreError(details={"key": key, "original": str(exc)}) from exc
        except BotoCoreError as exc:
            raise BlobStoreError(details={"key": key, "original": str(exc)}) from exc
        return response["Body"]

    def exists(self, key: str) -> bool:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self._get_client().head_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                return False
            raise BlobStoreError(details={"key": key, "original": str(exc)}) from exc
        except BotoCoreError as exc:
            raise BlobStoreError(details={"key": key, "original": str(exc)}) from exc
        return True

    def signed_url(self, key: str, ttl_seconds: int) -> str:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            url: str = self._get_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=int(ttl_seconds),
            )
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(details={"key": key, "original": str(exc)}) from exc
        return url

    def delete(self, key: str) -> bool:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self._get_client().delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(details={"key": key, "original": str(exc)}) from exc
        return True


def _is_missing(exc: Any) -> bool:
    error = getattr(exc, "response", {}).get("Error", {})
    return str(error.get("Code", "")) in {"NoSuchKey", "404", "NotFound"}


def open_blob_store(settings) -> BlobStore:
    """Build the blob store selected by settings."""
    backend = settings.blob_backend
    if backend == "local":
        return LocalBlobStore(settings.blob_local_root)
    if backend == "s3":
        if not settings.s3_bucket:
            raise BlobStoreError(
                "s3/bucket must be set when blob/backend is s3",
                code=ErrorCode.CONFIG_INVALID,
            )
        return S3BlobStore(
            settings.s3_bucket,
            endpoint_url=settings.s3_endpoint,
            region=settings.s3_region,
            access_key_id=settings.s3_key_id,
            secret_access_key=settings.s3_key,
        )
    raise BlobStoreError(f"Unknown blob backend: {backend!r}", code=ErrorCode.CONFIG_INVALID)
