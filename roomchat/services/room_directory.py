# roomchat/services/room_directory.py
from __future__ import annotations

from typing import Dict, List, Optional
import logging

from roomchat.models.models import Room

logger = logging.getLogger(__name__)

# ============================================================================
# ROOM DIRECTORY
# ============================================================================
class RoomDirectory:
    """
    Manages in-memory room state.

    Rooms are created lazily on the first join for an unseen id and deleted
    the moment their last member leaves, so the directory never holds an
    empty room once a cleanup has finished.

    Attributes:
        rooms: Dictionary mapping room_id -> Room object

    Usage:
        directory = RoomDirectory()
        room = directory.get_or_create("lobby")
        directory.add_member("lobby", connection_id)
    """

    def __init__(self) -> None:
        self.rooms: Dict[str, Room] = {}

    def get_or_create(self, room_id: str) -> Room:
        """
        Get a room by ID, creating it if it does not exist yet.

        Args:
            room_id: Room identifier chosen by the joining client

        Returns:
            Room: The existing room, or a new one with no members and a
            zero message count
        """
        room = self.rooms.get(room_id)
        if room is None:
            room = Room(id=room_id)
            self.rooms[room_id] = room
            logger.info("✓ Room created %s", room_id)
        return room

    def get(self, room_id: str) -> Optional[Room]:
        return self.rooms.get(room_id)

    def list_rooms(self) -> List[Room]:
        return list(self.rooms.values())

    def add_member(self, room_id: str, connection_id: str) -> int:
        """
        Add a connection to a room's member list.

        Returns:
            The room's member count after the add
        """
        room = self.get_or_create(room_id)
        if connection_id not in room.members:
            room.members.append(connection_id)
        return len(room.members)

    def remove_member(self, room_id: str, connection_id: str) -> int:
        """
        Remove a connection from a room, deleting the room if it empties.

        Args:
            room_id: Room the connection belongs to
            connection_id: Member to remove

        Returns:
            Remaining member count; 0 when the room was deleted or unknown
        """
        room = self.rooms.get(room_id)
        if room is None:
            return 0

        if connection_id in room.members:
            room.members.remove(connection_id)

        if not room.members:
            del self.rooms[room_id]
            logger.info("✗ Removed empty room %s", room_id)
            return 0

        logger.info("%s now has %d users", room_id, len(room.members))
        return len(room.members)

    def increment_message_count(self, room_id: str) -> int:
        room = self.rooms.get(room_id)
        if room is None:
            return 0
        room.message_count += 1
        return room.message_count

    def __len__(self) -> int:
        return len(self.rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self.rooms
