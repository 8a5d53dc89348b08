import time

from fastapi import APIRouter, Depends, Request

from filerelay.api.deps import get_relay_service
from filerelay.schemas import StatusResponse
from filerelay.services.relay import RelayService

router = APIRouter(tags=["status"])


@router.get("/", response_model=StatusResponse)
async def server_status(
    request: Request,
    relay: RelayService = Depends(get_relay_service),
) -> StatusResponse:
    return StatusResponse(
        uptime_seconds=round(time.monotonic() - request.app.state.started_at, 3),
        active_files=len(relay.registry),
        cleanup_failures=relay.registry.cleanup_failures,
    )
