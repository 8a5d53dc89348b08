from urllib.parse import quote

from fastapi import APIRouter, Depends, status
from fastapi.responses import FileResponse, PlainTextResponse, StreamingResponse

from filerelay.api.deps import get_relay_service
from filerelay.services.relay import RelayService
from filerelay.services.storage import LocalStorageService

router = APIRouter(tags=["downloads"])

GONE_MESSAGE = "File expired or not found"


def _gone() -> PlainTextResponse:
    return PlainTextResponse(GONE_MESSAGE, status_code=status.HTTP_410_GONE)


def _content_disposition(filename: str) -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


@router.get(
    "/download/{handle}",
    name="download_file",
    response_class=FileResponse,
    responses={410: {"content": {"text/plain": {}}, "description": GONE_MESSAGE}},
)
async def download_file(
    handle: str,
    relay: RelayService = Depends(get_relay_service),
):
    record = relay.lookup(handle)
    if record is None:
        return _gone()

    storage = relay.storage
    if isinstance(storage, LocalStorageService):
        try:
            path = storage.open_for_download(record.location)
        except FileNotFoundError:
            return _gone()
        return FileResponse(path, filename=record.display_name)

    try:
        chunks = await storage.open_stream(record.location)
    except FileNotFoundError:
        return _gone()
    return StreamingResponse(
        chunks,
        media_type="application/octet-stream",
        headers={"Content-Disposition": _content_disposition(record.display_name)},
    )
