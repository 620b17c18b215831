# roomchat/models/models.py
from __future__ import annotations

from datetime import datetime, timezone
import time
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from starlette.websockets import WebSocketState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def socket_is_open(socket: Any) -> bool:
    """True while both ends of a Starlette WebSocket still consider it connected."""
    return (
        getattr(socket, "client_state", None) == WebSocketState.CONNECTED
        and getattr(socket, "application_state", None) == WebSocketState.CONNECTED
    )


# ============================================================================
# SERVER-SIDE STATE
# ============================================================================

class Connection(BaseModel):
    """
    One client's live socket plus the identity it joined with.

    ``connection_id`` is assigned by the server when the socket is accepted,
    so lookups never depend on anything the client sends. ``room_id`` and
    ``user_name`` are the only fields that change after creation.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    connection_id: str
    socket: Any = Field(exclude=True, repr=False)
    user_name: str
    room_id: Optional[str] = None
    joined_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_open(self) -> bool:
        return socket_is_open(self.socket)


class Room(BaseModel):
    id: str
    members: List[str] = Field(default_factory=list)  # connection ids, arrival order
    created_at: datetime = Field(default_factory=_utcnow)
    message_count: int = 0


# ============================================================================
# INBOUND PAYLOADS
# ============================================================================

class JoinPayload(BaseModel):
    roomId: str = ""
    userName: str = ""


class ChatPayload(BaseModel):
    message: str = ""


# ============================================================================
# OUTBOUND ENVELOPES
# ============================================================================

class SystemEnvelope(BaseModel):
    type: Literal["system"] = "system"
    message: str
    timeStamp: str = Field(default_factory=lambda: str(int(time.time() * 1000)))


class ChatEnvelope(BaseModel):
    type: Literal["chat"] = "chat"
    sender: str
    message: str
    timeStamp: str = Field(default_factory=lambda: _utcnow().isoformat())
    roomId: str


class ErrorEnvelope(BaseModel):
    type: Literal["error"] = "error"
    message: str
