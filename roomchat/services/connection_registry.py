# roomchat/services/connection_registry.py

from __future__ import annotations

from typing import Dict, List, Optional
import logging

from roomchat.models.models import Connection

logger = logging.getLogger(__name__)

# ============================================================================
# CONNECTION REGISTRY
# ============================================================================

class ConnectionRegistry:
    """
    Tracks every joined connection and the identity it joined with.

    The registry is the only owner of ``Connection`` objects. Rooms refer to
    members by ``connection_id`` and resolve them back through ``find``.

    Data Structures:
        connections: Maps connection_id -> Connection
                     Example: {"9f1c...": Connection(user_name="bob", room_id="lobby")}

    A connection enters the registry when it joins a room and leaves it
    through the router's cleanup path, whether that is triggered by a close,
    a transport error, a room switch or the reaper.
    """

    def __init__(self) -> None:
        """Initialize the registry empty."""
        self.connections: Dict[str, Connection] = {}

    def register(self, connection: Connection) -> None:
        """
        Add a connection.

        Args:
            connection: The connection to track

        Raises:
            ValueError: if the connection id is already registered. Callers
                switching rooms must clean up the old membership first.
        """
        if connection.connection_id in self.connections:
            raise ValueError(f"Connection {connection.connection_id} is already registered")

        self.connections[connection.connection_id] = connection
        logger.debug("✓ Registered %s (%s). Total: %d",
                     connection.user_name, connection.connection_id, len(self.connections))

    def find(self, connection_id: str) -> Optional[Connection]:
        """
        Resolve a connection id to its Connection.

        Returns:
            Connection if registered, None otherwise
        """
        return self.connections.get(connection_id)

    def remove(self, connection: Connection) -> None:
        """Remove a connection. Unknown connections are ignored."""
        self.connections.pop(connection.connection_id, None)

    def snapshot(self) -> List[Connection]:
        """Stable copy of all connections, safe to iterate while the registry changes."""
        return list(self.connections.values())

    def __len__(self) -> int:
        return len(self.connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self.connections
