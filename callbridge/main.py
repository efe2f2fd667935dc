"""Main FastAPI application."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from callbridge.api import health, media_stream, monitoring
from callbridge.api.webhooks import agent, voice
from callbridge.core.config import settings
from callbridge.core.container import ServiceContainer
from callbridge.core.logging import setup_logging
from callbridge.db.database import AsyncSessionLocal, dispose_db, init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    if getattr(app.state, "services", None) is None:
        app.state.services = ServiceContainer(settings, AsyncSessionLocal)
    yield
    # Shutdown
    await dispose_db()


app = FastAPI(
    title="Voice Call Bridge",
    description="Bridges Twilio calls to tenant ElevenLabs voice agents",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(voice.router, prefix="/webhooks", tags=["webhooks"])
app.include_router(agent.router, prefix="/webhooks", tags=["webhooks"])
app.include_router(media_stream.router, tags=["media-stream"])
app.include_router(monitoring.router, tags=["monitoring"])


@app.get("/")
async def root():
    return {
        "message": "Voice Call Bridge API",
        "version": "0.1.0",
    }
