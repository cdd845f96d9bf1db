"""Health check endpoint.

Learn: Reports server status plus the realtime layer's own numbers
(open sockets, live channels) and whether the Redis relay is up.
"""

from fastapi import APIRouter, Request

from agenthq import __version__

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health and realtime connectivity."""
    checks = {"server": "ok", "version": __version__}

    bus = getattr(request.app.state, "event_bus", None)
    if bus is None or not bus.distributed:
        checks["redis"] = "disabled"
    else:
        try:
            await bus.redis.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {e}"

    status = "healthy" if checks["redis"] in ("ok", "disabled") else "degraded"

    return {
        "status": status,
        **checks,
        "realtime": request.app.state.hub.stats(),
    }
