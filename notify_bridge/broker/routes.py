"""
Routes - Event submission, health, and the listener channel.

- POST /notify   submit one event, broadcast it, report deliveries
- GET  /health   liveness probe
- WS   /         listener channel
"""

from typing import Any

import structlog
from fastapi import APIRouter, Request, WebSocket
from fastapi.responses import JSONResponse

from ..events import EventError, parse_event

router = APIRouter()

logger = structlog.get_logger(__name__)


@router.post("/notify")
async def notify(request: Request) -> Any:
    """Accept one event and broadcast it to every open listener."""
    controller = request.app.state.controller
    body = await request.body()

    try:
        event = parse_event(body)
    except EventError as e:
        logger.info("notification_rejected", reason=e.reason, detail=str(e))
        return JSONResponse(status_code=400, content={"error": e.reason})

    delivered = await controller.hub.broadcast(event)

    logger.info("notification_broadcast", type=event.kind.value, clients=delivered)

    return {"success": True, "clientsNotified": delivered}


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Liveness probe. No side effects."""
    controller = request.app.state.controller
    return {
        "status": "ok",
        "connectedClients": controller.hub.size(),
        "uptime": controller.uptime,
    }


@router.websocket("/")
async def listener(websocket: WebSocket) -> None:
    """Listener channel: welcome, ping/pong, broadcasts."""
    controller = websocket.app.state.controller
    await controller.lifecycle.serve(websocket)
