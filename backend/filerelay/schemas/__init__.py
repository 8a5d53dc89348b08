from filerelay.schemas.files import (
    ActiveFileRead,
    FileListResponse,
    MessageResponse,
    StatusResponse,
    UploadedFileRead,
    UploadResponse,
    remaining_millis,
    to_millis,
)

__all__ = [
    "UploadedFileRead",
    "UploadResponse",
    "ActiveFileRead",
    "FileListResponse",
    "MessageResponse",
    "StatusResponse",
    "remaining_millis",
    "to_millis",
]
