from typing import Any

from fastapi import APIRouter, Request, Response
from loguru import logger

from relay.app.constants import SERVICE_NAME

health_router = APIRouter(tags=["Health"])


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).warning("")


@health_router.get(
    "/health/live",
    summary="Liveness probe",
    description="Returns 200 if the relay process is running.",
    responses={200: {"description": "Service is alive."}},
)
async def live() -> dict:
    return {"status": "ok"}


@health_router.get(
    "/health/ready",
    summary="Readiness probe",
    description="Returns 200 only when the queue poller is running and the queue client is connected.",
    responses={
        200: {"description": "Poller running and queue client ready."},
        503: {"description": "Poller stopped or queue client not ready."},
    },
)
async def ready(request: Request) -> Response:
    poller = getattr(request.app.state, "poller", None)
    queue_client = getattr(request.app.state, "queue_client", None)
    if poller is None or queue_client is None:
        _log("components_not_initialized")
        return Response(status_code=503, content="Not ready")
    if not poller.running:
        _log("poller_not_running")
        return Response(status_code=503, content="Poller not running")
    if not queue_client.ready:
        _log("queue_client_not_ready")
        return Response(status_code=503, content="Queue not ready")
    return Response(status_code=200, content="OK")
