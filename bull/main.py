"""
Bull - Main Server
==================

Entry point. FastAPI serves the small REST surface (health and stats)
and python-socketio carries the game itself; both live in one ASGI app.

Every Socket.IO event is forwarded to ``SessionBridge.handle`` under its
own name, so adding an action only means adding a bridge handler.

To run:
    uvicorn bull.main:socket_app --host 0.0.0.0 --port 8000
"""

import asyncio
import time
from contextlib import asynccontextmanager
import socketio
from fastapi import FastAPI
import uvicorn
import logging

from .bridge import SessionBridge
from .config import Config

logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# =============================================================================
# SERVER SETUP
# =============================================================================

sio = socketio.AsyncServer(
    async_mode='asgi',
    cors_allowed_origins=Config.cors_origins(),
    logger=True,
    engineio_logger=False
)

bridge = SessionBridge(sio, config=Config)


async def cleanup_cycle():
    """Expire idle lobbies every CLEANUP_INTERVAL_SECONDS."""
    while True:
        await asyncio.sleep(Config.CLEANUP_INTERVAL_SECONDS)
        try:
            removed = await bridge.sweep()
            if removed:
                logger.info(f"Cleanup removed {removed} idle lobbies")
        except Exception as e:
            logger.error(f"Cleanup cycle failed: {e}")


@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    """Start and stop the background cleanup task."""
    logger.info(f"Bull server starting (max {Config.MAX_LOBBIES} lobbies)")
    cleanup_task = asyncio.create_task(cleanup_cycle())
    try:
        yield
    finally:
        cleanup_task.cancel()
        try:
            await asyncio.wait_for(cleanup_task, timeout=2.0)
        except asyncio.CancelledError:
            logger.info("Cleanup task cancelled")
        except asyncio.TimeoutError:
            logger.warning("Cleanup task did not cancel within timeout")
        bridge.timers.cancel_all()


app = FastAPI(
    title="Bull",
    description="Real-time team bluffing trivia game server",
    version="1.0.0",
    lifespan=lifespan
)

socket_app = socketio.ASGIApp(sio, app)


# =============================================================================
# SOCKET.IO EVENTS
# =============================================================================

@sio.event
async def connect(sid, environ, *args):
    logger.info(f"Client connected: {sid}")


@sio.event
async def disconnect(sid, *args):
    """The player keeps its seat for the reconnect grace period."""
    logger.info(f"Client disconnected: {sid}")
    await bridge.disconnect(sid)


def _forward(action: str):
    async def handler(sid, data=None):
        await bridge.handle(sid, action, data)
    handler.__name__ = action
    return handler


for _action in bridge.actions:
    sio.on(_action, _forward(_action))


# =============================================================================
# REST ROUTES
# =============================================================================

@app.get("/api/health")
async def health():
    return {
        "status": "ok",
        "timestamp": time.time(),
        "uptime_seconds": int(time.time() - bridge.started_at),
    }


@app.get("/api/stats")
async def stats():
    """Live server counters."""
    return bridge.stats()


# =============================================================================
# ENTRY POINT
# =============================================================================

def create_app():
    """Factory function returning the combined ASGI application."""
    return socket_app


if __name__ == "__main__":
    uvicorn.run(
        "bull.main:socket_app",
        host=Config.HOST,
        port=Config.PORT,
        reload=True
    )
