# roomchat/services/reaper.py

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from roomchat.services.connection_registry import ConnectionRegistry
from roomchat.services.room_directory import RoomDirectory
from roomchat.services.router import MessageRouter

logger = logging.getLogger(__name__)

# ============================================================================
# LIFECYCLE REAPER
# ============================================================================

class Reaper:
    """
    Periodically forces cleanup of connections whose socket is no longer open.

    Broadcasts skip closed members instead of removing them, so a peer that
    vanished without a clean close is only torn down here.
    """

    def __init__(self, registry: ConnectionRegistry, router: MessageRouter, interval: float = 30) -> None:
        self.registry = registry
        self.router = router
        self.interval = interval

    async def sweep(self) -> int:
        """
        Clean up every registered connection that is not open.

        Iterates a snapshot of the registry, so connections that join or
        leave while the sweep is suspended are neither skipped nor visited
        twice.

        Returns:
            Number of connections cleaned up
        """
        cleaned_up = 0
        for connection in self.registry.snapshot():
            if connection.is_open:
                continue
            if await self.router.cleanup(connection.connection_id):
                cleaned_up += 1

        if cleaned_up > 0:
            logger.info("Cleaned up %d inactive connections", cleaned_up)
        return cleaned_up

    async def run(self) -> None:
        """Sweep every ``interval`` seconds until cancelled."""
        while True:
            try:
                await asyncio.sleep(self.interval)
                await self.sweep()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Reaper sweep failed")


# ============================================================================
# SERVER STATISTICS
# ============================================================================

class StatsReporter:
    """Logs aggregate connection and room statistics on a fixed period."""

    def __init__(self, registry: ConnectionRegistry, directory: RoomDirectory, interval: float = 300) -> None:
        self.registry = registry
        self.directory = directory
        self.interval = interval

    def snapshot(self) -> Dict[str, Any]:
        """
        Current statistics.

        Example:
            {
                "active_connections": 3,
                "active_rooms": 1,
                "rooms": {"lobby": {"users": 3, "messages": 12}}
            }
        """
        return {
            "active_connections": len(self.registry),
            "active_rooms": len(self.directory),
            "rooms": {
                room.id: {"users": len(room.members), "messages": room.message_count}
                for room in self.directory.list_rooms()
            },
        }

    def report(self) -> Dict[str, Any]:
        stats = self.snapshot()
        logger.info("=== Server Statistics ===")
        logger.info("Active connections: %d", stats["active_connections"])
        logger.info("Active rooms: %d", stats["active_rooms"])
        for room_id, info in stats["rooms"].items():
            logger.info('  Room "%s": %d users, %d messages', room_id, info["users"], info["messages"])
        logger.info("========================")
        return stats

    async def run(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval)
                self.report()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Statistics report failed")
