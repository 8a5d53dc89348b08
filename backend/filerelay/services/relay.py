from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Callable

from fastapi import UploadFile

from filerelay.core.config import Settings, get_settings
from filerelay.core.errors import (
    FileNotFoundOrExpiredError,
    FileTooLargeError,
    NoFilesError,
    StorageWriteError,
    TooManyFilesError,
)
from filerelay.models import FileRecord
from filerelay.services.registry import ActiveFile, FileRegistry
from filerelay.services.storage import StorageService

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class UploadedFile:
    handle: str
    display_name: str
    expires_at: float
    size: int


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    source = upload.file
    position = source.tell()
    source.seek(0, 2)
    size = source.tell()
    source.seek(position)
    return size


class RelayService:
    def __init__(
        self,
        registry: FileRegistry,
        storage: StorageService,
        settings: Settings | None = None,
        clock: Clock = time.time,
    ) -> None:
        self.settings = settings or get_settings()
        self.registry = registry
        self.storage = storage
        self.clock = clock

    @property
    def lifetime(self) -> float:
        return self.settings.file_lifetime_seconds

    def _validate(self, uploads: Sequence[UploadFile]) -> None:
        if not uploads:
            raise NoFilesError()
        limit = self.settings.max_files_per_upload
        if len(uploads) > limit:
            raise TooManyFilesError(f"At most {limit} files per upload")
        max_size = self.settings.max_file_size_bytes
        for upload in uploads:
            if _upload_size(upload) > max_size:
                raise FileTooLargeError(
                    f"File {upload.filename!r} exceeds the {max_size} byte limit"
                )

    async def upload(self, uploads: Sequence[UploadFile]) -> list[UploadedFile]:
        self._validate(uploads)

        now = self.clock()
        stored: list[UploadedFile] = []
        for upload in uploads:
            display_name = upload.filename or "file"
            key = self.storage.generate_blob_key()
            try:
                blob = await self.storage.save_upload(key, upload.file)
            except Exception:
                logger.exception("Failed to store upload %r", display_name)
                continue
            try:
                handle = self.registry.register(
                    blob.key, display_name, now, self.lifetime, size=blob.size
                )
            except RuntimeError:
                logger.exception("Failed to register upload %r", display_name)
                await self._discard_unregistered(blob.key)
                continue
            stored.append(
                UploadedFile(
                    handle=handle,
                    display_name=display_name,
                    expires_at=now + self.lifetime,
                    size=blob.size,
                )
            )

        if not stored:
            raise StorageWriteError()
        return stored

    async def _discard_unregistered(self, key: str) -> None:
        try:
            await self.storage.delete_object(key)
        except Exception:
            logger.exception("Failed to delete unregistered blob %s", key)

    def list_active(self) -> list[ActiveFile]:
        return self.registry.list(self.clock())

    def lookup(self, handle: str) -> FileRecord | None:
        return self.registry.get(handle, self.clock())

    def delete(self, handle: str) -> None:
        if not self.registry.delete(handle):
            raise FileNotFoundOrExpiredError()
