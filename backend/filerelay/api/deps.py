from fastapi import Request

from filerelay.services.relay import RelayService


def get_relay_service(request: Request) -> RelayService:
    return request.app.state.relay_service
