from fastapi import APIRouter, Depends

from filerelay.api.deps import get_relay_service
from filerelay.schemas import ActiveFileRead, FileListResponse, MessageResponse, remaining_millis
from filerelay.services.relay import RelayService

router = APIRouter(prefix="/files", tags=["files"])


@router.get("", response_model=FileListResponse)
async def list_files(relay: RelayService = Depends(get_relay_service)) -> FileListResponse:
    return FileListResponse(
        files=[
            ActiveFileRead(
                id=item.handle,
                original_name=item.display_name,
                remaining_ms=remaining_millis(item.remaining),
            )
            for item in relay.list_active()
        ]
    )


@router.delete(
    "/{handle}",
    response_model=MessageResponse,
    responses={404: {"model": MessageResponse}},
)
async def delete_file(
    handle: str,
    relay: RelayService = Depends(get_relay_service),
) -> MessageResponse:
    relay.delete(handle)
    return MessageResponse(success=True, message="File deleted")
