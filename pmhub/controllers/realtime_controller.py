import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    """
    Realtime channel. The bearer token comes in the handshake query string
    (``/ws?token=...``); frames are ``{"type": ..., "data": {...}}``.
    """
    hub = websocket.app.state.sync_hub
    token = websocket.query_params.get(websocket.app.state.settings.WS_TOKEN_QUERY_PARAM)

    await websocket.accept()
    connection = await hub.connect(websocket, token)
    if connection is None:
        return

    writer = asyncio.create_task(connection.run_writer())
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            raw = message.get("text")
            if raw is None and message.get("bytes") is not None:
                raw = message["bytes"].decode("utf-8", errors="replace")
            try:
                frame = json.loads(raw or "")
            except ValueError:
                logger.warning(f"Dropped non-JSON frame from {connection.id}")
                continue

            hub.handle_frame(connection, frame)
    finally:
        hub.disconnect(connection)
        await writer
