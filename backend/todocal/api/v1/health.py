from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from todocal.core.config import settings
from todocal.db import engine
from todocal.services.change_feed import change_feed
from todocal.services.redis_pubsub import change_relay
from todocal.services.websocket_manager import manager

router = APIRouter()


@router.get("/", summary="Health check", tags=["health"])
def read_health() -> dict[str, str]:
    """Return basic service health information."""
    return {"status": "ok"}


@router.get("/ready", summary="Readiness check", tags=["health"])
def read_ready():
    """Check if service is ready to accept traffic (readiness probe)."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "database": "disconnected",
                "error": str(e) if settings.ENVIRONMENT != "production" else "Database connection failed",
            },
        )
    return {
        "status": "ready",
        "database": "connected",
        "realtime_relay": "connected" if change_relay.connected else "local",
        "websocket_connections": manager.get_connection_count(),
        "feed_subscriptions": change_feed.subscriber_count(),
    }
