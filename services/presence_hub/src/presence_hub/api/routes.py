"""API routes for the presence hub."""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, WebSocket
from fastapi.websockets import WebSocketDisconnect
from pydantic import ValidationError

from ..broadcast import WebSocketConnection
from ..config import HealthPayload, Settings, get_settings
from ..hub import ChatHub
from ..models import DebugSnapshot, InboundFrame

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_hub_from_app(app) -> ChatHub:  # type: ignore[no-untyped-def]
    hub = getattr(app.state, "hub", None)
    if hub is None:
        raise RuntimeError("ChatHub is not initialised")
    return hub


def get_hub(request: Request) -> ChatHub:
    """Fetch chat hub from HTTP request context."""

    return _get_hub_from_app(request.app)


def get_hub_for_ws(websocket: WebSocket) -> ChatHub:
    """Fetch chat hub for WebSocket connections."""

    return _get_hub_from_app(websocket.app)


@router.get("/health", response_model=HealthPayload, tags=["system"])
async def read_health(settings: Annotated[Settings, Depends(get_settings)]) -> HealthPayload:
    """Return service health information."""

    return HealthPayload(status="ok", api_version=settings.api_version)


@router.get("/debug/data", response_model=DebugSnapshot, response_model_by_alias=True, tags=["system"])
async def read_debug_data(hub: Annotated[ChatHub, Depends(get_hub)]) -> DebugSnapshot:
    """Return messages, known users and online usernames as held in memory."""

    return hub.snapshot()


@router.get("/debug/persistence", tags=["system"])
async def read_persistence_stats(hub: Annotated[ChatHub, Depends(get_hub)]) -> dict[str, Any]:
    """Return write-queue counters for both persisted records."""

    return hub.gateway.stats()


@router.websocket("/ws")
async def chat_ws(websocket: WebSocket) -> None:
    """Handle one client connection for its whole lifetime."""

    hub = get_hub_for_ws(websocket)
    settings = get_settings()
    await websocket.accept()
    connection = WebSocketConnection(websocket, max_queue=settings.outbound_queue_size)
    connection.start()
    hub.connect(connection)
    try:
        while True:
            data = await websocket.receive_json()
            try:
                frame = InboundFrame.model_validate(data)
            except ValidationError as exc:
                logger.warning("Invalid frame envelope from %s: %s", connection.id, exc)
                connection.send("error", {"err": "Invalid frame"})
                continue
            hub.dispatch(connection, frame)
    except WebSocketDisconnect:
        logger.debug("Client %s disconnected", connection.id)
    except json.JSONDecodeError as exc:
        logger.warning("Malformed JSON from %s: %s", connection.id, exc)
        try:
            await websocket.close(code=1003, reason="Invalid payload")
        except RuntimeError:
            logger.debug("Ignored error while closing websocket", exc_info=True)
    except RuntimeError as exc:
        # receive after a server-side close
        logger.debug("WebSocket %s closed: %s", connection.id, exc)
    finally:
        hub.disconnect(connection)
        await connection.aclose()
