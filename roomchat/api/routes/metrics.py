# roomchat/api/routes/metrics.py
from fastapi import APIRouter
from datetime import datetime, timezone

from roomchat.core import state

router = APIRouter()

@router.get("/metrics")
async def get_metrics():
    """
    Server statistics endpoint.

    Exposes the same figures the periodic statistics log reports, plus
    uptime and the number of sockets opened since start.

    Example Response:
        {
            "uptime_hours": 1.25,
            "total_connections_opened": 42,
            "active_connections": 3,
            "active_rooms": 1,
            "total_messages": 12,
            "rooms": {"lobby": {"users": 3, "messages": 12}}
        }
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    stats = state.stats_reporter.snapshot()

    return {
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,
        "total_connections_opened": state.total_connections,
        "active_connections": stats["active_connections"],
        "active_rooms": stats["active_rooms"],
        "total_messages": sum(room["messages"] for room in stats["rooms"].values()),
        "rooms": stats["rooms"],
    }
