"""Realtime websocket route for agent dashboards."""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from omniconnect.api.dependencies.services import get_ws_hub
from omniconnect.core.logging.logger import get_logger
from omniconnect.realtime.connection import StarletteSocketHandle

router = APIRouter(tags=["Realtime"])
logger = get_logger(__name__)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    """
    Agent socket. Frames are JSON objects ``{type, data?, timestamp?}``; the
    first frame sent by the server is ``welcome``.
    """
    hub = get_ws_hub(websocket)
    await websocket.accept()
    connection = await hub.connect(StarletteSocketHandle(websocket))

    try:
        while True:
            raw = await websocket.receive_text()
            await hub.handle_message(connection, raw)
    except WebSocketDisconnect as e:
        await hub.disconnect(connection, f"client closed ({e.code})")
    except Exception:
        # Evicted connections are closed server-side and fail their next receive
        if hub.is_registered(connection):
            logger.exception(f"Realtime connection {connection.id} failed")
        await hub.disconnect(connection, "error")
