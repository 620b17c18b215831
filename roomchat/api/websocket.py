# roomchat/api/websocket.py

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from roomchat.core import state

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/")
@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for room chat.

    Protocol:
    =========

    Client -> Server:
    -----------------
    Join Room (also switches rooms when already joined):
        {"type": "join", "payload": {"roomId": "lobby", "userName": "bob"}}
        Response: system notices (rename, welcome, other users)

    Chat:
        {"type": "chat", "payload": {"message": "hi"}}
        Response: the chat envelope, broadcast to the whole room

    Server -> Client:
    -----------------
    System:  {"type": "system", "message": "...", "timeStamp": "..."}
    Chat:    {"type": "chat", "sender": "bob", "message": "hi", "timeStamp": "...", "roomId": "lobby"}
    Error:   {"type": "error", "message": "..."}

    Lifecycle:
    ==========
    1. Connection accepted and given a server-side connection id
    2. Client sends "join"; until then chat is rejected
    3. On close or transport error the connection is cleaned up and the
       room is told the user left

    Error Handling:
        - Invalid JSON: logged and ignored
        - Unknown types: error envelope to this socket only
        - Connection errors: same cleanup as a close
    """
    await websocket.accept()

    connection_id = uuid.uuid4().hex
    state.total_connections += 1
    logger.info("✓ New connection established ID: %s Total connections: %d",
                connection_id, state.total_connections)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            data = message.get("text")
            if data is None:
                data = (message.get("bytes") or b"").decode("utf-8", errors="replace")

            await state.router.dispatch(connection_id, websocket, data)

    except WebSocketDisconnect:
        await state.router.cleanup(connection_id)
    except Exception as e:
        logger.error("WebSocket error: %s", e)
        await state.router.cleanup(connection_id)
