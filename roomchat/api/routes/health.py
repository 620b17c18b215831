# roomchat/api/routes/health.py

from fastapi import APIRouter

from roomchat.core import state

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns current system status, joined connection count and room count.
    Used by container health probes and monitoring.

    Returns:
        dict: Status, connection count, room count
    """
    return {
        "status": "healthy",
        "connections": len(state.connection_registry),
        "rooms": len(state.room_directory),
    }
