# roomchat/services/router.py

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from roomchat.models.models import (
    ChatEnvelope,
    ChatPayload,
    Connection,
    ErrorEnvelope,
    JoinPayload,
    Room,
    SystemEnvelope,
    socket_is_open,
)
from roomchat.services.connection_registry import ConnectionRegistry
from roomchat.services.room_directory import RoomDirectory

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

# ============================================================================
# MESSAGE ROUTER
# ============================================================================

class MessageRouter:
    """
    Routes inbound frames to the join/chat handlers and fans messages out.

    Every operation applies its registry and directory changes before its
    first ``await``. Outbound frames are only sent once the state is
    consistent again, so other coroutines never see a half-applied join or
    teardown.

    Protocol:
    =========

    Client -> Server:
        {"type": "join", "payload": {"roomId": "lobby", "userName": "bob"}}
        {"type": "chat", "payload": {"message": "hi"}}

    Server -> Client:
        {"type": "system", "message": "...", "timeStamp": "1700000000000"}
        {"type": "chat", "sender": "bob", "message": "hi",
         "timeStamp": "2024-01-01T00:00:00+00:00", "roomId": "lobby"}
        {"type": "error", "message": "..."}
    """

    def __init__(self, registry: ConnectionRegistry, directory: RoomDirectory) -> None:
        self.registry = registry
        self.directory = directory

    # ------------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------------

    async def dispatch(self, connection_id: str, socket: Any, raw: str) -> None:
        """
        Decode one text frame and hand it to the matching handler.

        Frames that are not JSON are logged and dropped without a reply.
        Anything that decodes but is not a known ``type`` gets an error
        envelope back on the same socket.
        """
        try:
            message = json.loads(raw)
        except (ValueError, RecursionError) as e:
            logger.warning("Failed to parse message from %s: %s", connection_id, e)
            return

        if not isinstance(message, dict):
            message = {}

        msg_type = message.get("type")
        payload = message.get("payload")
        logger.info("Received message type: %s", msg_type)

        if msg_type == "join":
            await self.handle_join(connection_id, socket, payload)
        elif msg_type == "chat":
            await self.handle_chat(connection_id, socket, payload)
        else:
            logger.info("Unknown message type %s", msg_type)
            await self.send(socket, ErrorEnvelope(message="Invalid message type"))

    # ------------------------------------------------------------------------
    # Join
    # ------------------------------------------------------------------------

    async def handle_join(self, connection_id: str, socket: Any, payload: Any) -> None:
        """
        Put a connection into a room.

        Args:
            connection_id: Server-assigned id of the socket
            socket: The socket to reply on
            payload: Raw ``payload`` object from the frame

        Process:
            1. Validate roomId and userName
            2. Tear down the previous membership if this is a room switch
            3. Register the connection and get or create the room
            4. Resolve a display name that is free in the room
            5. Add to the room and send the welcome, join and listing notices
        """
        join = _parse(JoinPayload, payload)
        if join is None or not join.roomId or not join.userName:
            await self.send(socket, ErrorEnvelope(message="Required both roomId and userName"))
            return

        departed = None
        existing = self.registry.find(connection_id)
        if existing is not None:
            logger.info("User %s is switching rooms", existing.user_name)
            departed = self._detach(connection_id)

        connection = Connection(connection_id=connection_id, socket=socket, user_name=join.userName)
        self.registry.register(connection)

        room = self.directory.get_or_create(join.roomId)
        user_name = self.resolve_name(room, join.userName)
        connection.user_name = user_name
        connection.room_id = room.id
        member_count = self.directory.add_member(room.id, connection_id)
        others = self.member_names(room, exclude=connection_id)

        logger.info('%s joined room "%s". Room now has %d users.', user_name, room.id, member_count)

        if departed is not None:
            await self._announce_departure(departed)

        if user_name != join.userName:
            await self.send(socket, SystemEnvelope(
                message=f'Username was changed to "{user_name}" to avoid conflicts'
            ))

        await self.send(socket, SystemEnvelope(
            message=f"Welcome to room {room.id}. {member_count} total users including you."
        ))
        await self.broadcast(room.id, SystemEnvelope(message=f"{user_name} joined the room"),
                             exclude=connection_id)

        if others:
            await self.send(socket, SystemEnvelope(message=f"Other users in room: {', '.join(others)}"))

    def resolve_name(self, room: Room, user_name: str) -> str:
        """
        Return ``user_name`` or, if a member already uses it, the first free
        of ``"<name> 2"``, ``"<name> 3"``, ...
        """
        taken = set(self.member_names(room))
        if user_name not in taken:
            return user_name

        count = 2
        while f"{user_name} {count}" in taken:
            count += 1
        return f"{user_name} {count}"

    def member_names(self, room: Room, exclude: Optional[str] = None) -> List[str]:
        """Display names of a room's members in arrival order."""
        names = []
        for member_id in room.members:
            if member_id == exclude:
                continue
            member = self.registry.find(member_id)
            if member is not None:
                names.append(member.user_name)
        return names

    # ------------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------------

    async def handle_chat(self, connection_id: str, socket: Any, payload: Any) -> None:
        """
        Broadcast a chat message to the sender's room, sender included.

        The sender is resolved from the server-side registry only; a socket
        that never joined gets an error and nothing is broadcast.
        """
        connection = self.registry.find(connection_id)
        if connection is None or connection.room_id is None:
            await self.send(socket, ErrorEnvelope(message="You must join a room first"))
            return

        chat = _parse(ChatPayload, payload)
        if chat is None or not chat.message.strip():
            await self.send(socket, ErrorEnvelope(message="Message cannot be empty"))
            return

        text = chat.message.strip()
        self.directory.increment_message_count(connection.room_id)
        logger.info('%s in room "%s": %s', connection.user_name, connection.room_id, text)

        await self.broadcast(connection.room_id, ChatEnvelope(
            sender=connection.user_name,
            message=text,
            roomId=connection.room_id,
        ))

    # ------------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------------

    async def cleanup(self, connection_id: str) -> bool:
        """
        Tear down a connection: the one path for close, error, room switch
        and reaping.

        Removes the connection from the registry and its room (deleting the
        room if it empties) and tells the remaining members it left.

        Returns:
            True if something was cleaned up, False if the connection was
            already gone
        """
        connection = self._detach(connection_id)
        if connection is None:
            return False
        await self._announce_departure(connection)
        return True

    def _detach(self, connection_id: str) -> Optional[Connection]:
        connection = self.registry.find(connection_id)
        if connection is None:
            return None

        self.registry.remove(connection)
        if connection.room_id is not None:
            self.directory.remove_member(connection.room_id, connection_id)

        logger.info("✗ User %s (%s) disconnected. Total connections: %d",
                    connection.user_name, connection_id, len(self.registry))
        return connection

    async def _announce_departure(self, connection: Connection) -> None:
        if connection.room_id is None:
            return
        await self.broadcast(connection.room_id,
                             SystemEnvelope(message=f"{connection.user_name} left the room"),
                             exclude=connection.connection_id)

    # ------------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------------

    async def broadcast(self, room_id: str, envelope: BaseModel, exclude: Optional[str] = None) -> int:
        """
        Deliver an envelope to every open member of a room.

        Args:
            room_id: Target room
            envelope: Outbound envelope, serialized once for all members
            exclude: Connection id that must not receive it

        Returns:
            Number of members a delivery was attempted for

        Members whose socket is no longer open are skipped and left for the
        reaper. Deliveries run concurrently, so a slow peer does not hold up
        the others, and a failed send is logged and dropped.
        """
        room = self.directory.get(room_id)
        if room is None:
            logger.debug("Skipped broadcast: room=%s does not exist", room_id)
            return 0

        targets = []
        for member_id in list(room.members):
            if member_id == exclude:
                continue
            member = self.registry.find(member_id)
            if member is not None and member.is_open:
                targets.append(member)

        if not targets:
            return 0

        data = envelope.model_dump_json()
        await asyncio.gather(*(self._deliver(member.socket, data) for member in targets))
        return len(targets)

    async def send(self, socket: Any, envelope: BaseModel) -> bool:
        """Send an envelope to a single socket if it is still open."""
        if not socket_is_open(socket):
            return False
        return await self._deliver(socket, envelope.model_dump_json())

    async def _deliver(self, socket: Any, data: str) -> bool:
        try:
            await socket.send_text(data)
            return True
        except Exception as e:
            logger.debug("Send error: %s", e)
            return False


def _parse(model: Type[PayloadT], payload: Any) -> Optional[PayloadT]:
    if not isinstance(payload, dict):
        return None
    try:
        return model.model_validate(payload)
    except ValidationError:
        return None
