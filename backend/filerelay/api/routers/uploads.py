from fastapi import APIRouter, Depends, File, UploadFile

from filerelay.api.deps import get_relay_service
from filerelay.schemas import UploadedFileRead, UploadResponse, to_millis
from filerelay.services.relay import RelayService

router = APIRouter(tags=["uploads"])


@router.post("/upload", response_model=UploadResponse)
async def upload_files(
    files: list[UploadFile] | None = File(default=None),
    relay: RelayService = Depends(get_relay_service),
) -> UploadResponse:
    uploaded = await relay.upload(files or [])
    return UploadResponse(
        files=[
            UploadedFileRead(
                id=item.handle,
                original_name=item.display_name,
                expires_at=to_millis(item.expires_at),
                size=item.size,
            )
            for item in uploaded
        ]
    )
