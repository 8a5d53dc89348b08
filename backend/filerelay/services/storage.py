import asyncio
import logging
import re
import shutil
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Final
from uuid import uuid4

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

from filerelay.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

CHUNK_SIZE: Final[int] = 1024 * 1024

# Blob names are always uuid4().hex; purge never touches anything else.
BLOB_NAME_RE: Final = re.compile(r"[0-9a-f]{32}")


@dataclass(frozen=True)
class StoredBlob:
    key: str
    size: int


def _stream_size(source: BinaryIO) -> int:
    position = source.tell()
    source.seek(0, 2)
    size = source.tell()
    source.seek(position)
    return size


class StorageService:
    """S3-compatible blob backend."""

    scheme: Final[str] = "s3"
    key_prefix: Final[str] = "uploads/"

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        session = boto3.session.Session()
        self.client = session.client(
            "s3",
            endpoint_url=str(self.settings.s3_endpoint) if self.settings.s3_endpoint else None,
            aws_access_key_id=self.settings.s3_access_key,
            aws_secret_access_key=self.settings.s3_secret_key,
            region_name=self.settings.s3_region,
            config=Config(signature_version="s3v4"),
        )
        self.bucket = self.settings.s3_bucket_uploads

    def generate_blob_key(self) -> str:
        return f"{self.key_prefix}{uuid4().hex}"

    def owns_key(self, key: str) -> bool:
        name = key.removeprefix(self.key_prefix)
        return key.startswith(self.key_prefix) and BLOB_NAME_RE.fullmatch(name) is not None

    async def save_upload(self, key: str, source: BinaryIO) -> StoredBlob:
        def _upload() -> int:
            source.seek(0)
            size = _stream_size(source)
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=source,
                ContentLength=size,
                ContentType="application/octet-stream",
            )
            return size

        size = await asyncio.to_thread(_upload)
        return StoredBlob(key=key, size=size)

    async def delete_object(self, key: str) -> None:
        await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)

    async def open_stream(self, key: str) -> Iterator[bytes]:
        def _get():
            try:
                return self.client.get_object(Bucket=self.bucket, Key=key)
            except ClientError as exc:
                if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                    raise FileNotFoundError(key) from exc
                raise

        response = await asyncio.to_thread(_get)
        return response["Body"].iter_chunks(CHUNK_SIZE)

    async def purge(self) -> int:
        """Delete blobs this service wrote under the upload prefix; returns the count removed."""

        def _purge() -> int:
            removed = 0
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self.key_prefix):
                keys = [
                    {"Key": item["Key"]}
                    for item in page.get("Contents", [])
                    if self.owns_key(item["Key"])
                ]
                if not keys:
                    continue
                self.client.delete_objects(Bucket=self.bucket, Delete={"Objects": keys})
                removed += len(keys)
            return removed

        return await asyncio.to_thread(_purge)


class LocalStorageService(StorageService):
    """Blobs kept as plain files in the upload directory."""

    scheme: Final[str] = "local"

    def __init__(self, settings: Settings | None = None) -> None:  # type: ignore[override]
        self.settings = settings or get_settings()
        self.base_path = Path(self.settings.upload_dir).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _key_path(self, key: str) -> Path:
        # Prevent directory traversal by resolving inside base path
        candidate = self.base_path.joinpath(*Path(key).parts).resolve()
        if candidate.parent != self.base_path:
            raise ValueError("Invalid storage key")
        return candidate

    def generate_blob_key(self) -> str:  # type: ignore[override]
        return uuid4().hex

    def owns_key(self, key: str) -> bool:  # type: ignore[override]
        return BLOB_NAME_RE.fullmatch(key) is not None

    async def save_upload(self, key: str, source: BinaryIO) -> StoredBlob:  # type: ignore[override]
        target = self._key_path(key)

        def _write() -> int:
            source.seek(0)
            with target.open("wb") as f:
                shutil.copyfileobj(source, f, CHUNK_SIZE)
                return f.tell()

        try:
            size = await asyncio.to_thread(_write)
        except BaseException:
            target.unlink(missing_ok=True)
            raise
        return StoredBlob(key=key, size=size)

    async def delete_object(self, key: str) -> None:  # type: ignore[override]
        target = self._key_path(key)
        await asyncio.to_thread(target.unlink, missing_ok=True)

    def open_for_download(self, key: str) -> Path:
        path = self._key_path(key)
        if not path.is_file():
            raise FileNotFoundError(key)
        return path

    async def open_stream(self, key: str) -> Iterator[bytes]:  # type: ignore[override]
        path = self.open_for_download(key)

        def _iter() -> Iterator[bytes]:
            with path.open("rb") as f:
                while chunk := f.read(CHUNK_SIZE):
                    yield chunk

        return _iter()

    async def purge(self) -> int:  # type: ignore[override]
        def _purge() -> int:
            removed = 0
            for path in self.base_path.iterdir():
                if path.is_file() and self.owns_key(path.name):
                    path.unlink(missing_ok=True)
                    removed += 1
            return removed

        return await asyncio.to_thread(_purge)


def build_storage_service(settings: Settings | None = None) -> StorageService:
    settings = settings or get_settings()
    if settings.storage_backend == "local":
        return LocalStorageService(settings)
    return StorageService(settings)
