# roomchat/main.py

from __future__ import annotations

import asyncio
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomchat.core import state
from roomchat.core.config import settings
from roomchat.core.logging import setup_logging, get_logger
from roomchat.api.routes import health, metrics
from roomchat.api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="Room Chat")

# CORS for the HTTP probes (relaxed; WebSocket clients are unaffected)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST routes
app.include_router(health.router)
app.include_router(metrics.router)

# WebSocket routes
app.include_router(websocket_module.router)

background_tasks: List[asyncio.Task] = []


@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Chat server starting on port %d", settings.PORT)

    # Reap closed connections and log statistics in the background
    background_tasks.append(asyncio.create_task(state.reaper.run()))
    background_tasks.append(asyncio.create_task(state.stats_reporter.run()))


@app.on_event("shutdown")
async def on_shutdown():
    for task in background_tasks:
        task.cancel()
    await asyncio.gather(*background_tasks, return_exceptions=True)
    background_tasks.clear()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("roomchat.main:app", host=settings.HOST, port=settings.PORT)
