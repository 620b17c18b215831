# roomchat/core/state.py
from __future__ import annotations

from datetime import datetime, timezone

from roomchat.core.config import settings
from roomchat.services.connection_registry import ConnectionRegistry
from roomchat.services.room_directory import RoomDirectory
from roomchat.services.router import MessageRouter
from roomchat.services.reaper import Reaper, StatsReporter

# App state, empty at process start. Components get their collaborators
# through the constructor.
connection_registry = ConnectionRegistry()
room_directory = RoomDirectory()
router = MessageRouter(registry=connection_registry, directory=room_directory)
reaper = Reaper(registry=connection_registry, router=router, interval=settings.REAP_INTERVAL_SECONDS)
stats_reporter = StatsReporter(
    registry=connection_registry,
    directory=room_directory,
    interval=settings.STATS_INTERVAL_SECONDS,
)

# Metrics
total_connections: int = 0
app_start_time: datetime = datetime.now(timezone.utc)
