import math

from pydantic import BaseModel, ConfigDict, Field


class RelayModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UploadedFileRead(RelayModel):
    id: str
    original_name: str = Field(serialization_alias="originalName")
    expires_at: int = Field(serialization_alias="expiresAt", description="Epoch milliseconds")
    size: int


class UploadResponse(RelayModel):
    success: bool = True
    files: list[UploadedFileRead]


class ActiveFileRead(RelayModel):
    id: str
    original_name: str = Field(serialization_alias="originalName")
    remaining_ms: int = Field(serialization_alias="remainingMs", gt=0)


class FileListResponse(RelayModel):
    success: bool = True
    files: list[ActiveFileRead]


class MessageResponse(RelayModel):
    success: bool
    message: str


class StatusResponse(RelayModel):
    ok: bool = True
    message: str = "Server Active"
    uptime_seconds: float = Field(serialization_alias="uptimeSeconds")
    active_files: int = Field(serialization_alias="activeFiles")
    cleanup_failures: int = Field(serialization_alias="cleanupFailures")


def to_millis(seconds: float) -> int:
    return int(seconds * 1000)


def remaining_millis(seconds: float) -> int:
    # Live records always report at least 1ms.
    return max(1, math.ceil(seconds * 1000))
