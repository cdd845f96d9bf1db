"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. The realtime objects (registry, hub, API key lookup) are built
once here and hung off app.state, so every handler and test gets them by
injection instead of importing module globals. Lifespan only manages the
things that need I/O: the Redis connection and its relay task.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from agenthq import __version__
from agenthq.api import api_router
from agenthq.auth.api_keys import ApiKeyRegistry
from agenthq.config import settings
from agenthq.realtime.hub import ConnectionHub
from agenthq.realtime.pubsub import EventBus, connect_redis
from agenthq.realtime.subscriptions import SubscriptionRegistry

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` at shutdown.
    Redis is optional — without it, fan-out stays inside this process.
    """
    logger.info(
        "agenthq.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    redis = None
    if settings.redis_url:
        try:
            redis = await connect_redis(settings.redis_url)
            logger.info("agenthq.redis_connected", url=settings.redis_url)
        except Exception as e:
            logger.warning("agenthq.redis_unavailable", error=str(e))

    bus = EventBus(app.state.hub, redis)
    app.state.event_bus = bus
    relay_task = asyncio.create_task(bus.run_relay()) if bus.distributed else None

    yield

    logger.info("agenthq.shutdown", **app.state.hub.stats())

    if relay_task is not None:
        bus.stop()
        relay_task.cancel()
        try:
            await relay_task
        except asyncio.CancelledError:
            pass

    await bus.close()


def get_event_bus(request: Request) -> EventBus:
    """FastAPI dependency for event producers."""
    return request.app.state.event_bus


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="AgentHQ Realtime",
        description="Channel subscriptions and live event fan-out for AgentHQ",
        version=__version__,
        lifespan=lifespan,
    )

    # One registry + hub per process
    app.state.hub = ConnectionHub(SubscriptionRegistry())
    app.state.api_keys = ApiKeyRegistry()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    from agenthq.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: agenthq.main:app)
app = create_app()
