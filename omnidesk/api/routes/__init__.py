"""API routes."""

from omnidesk.api.routes.campaigns import router as campaigns_router
from omnidesk.api.routes.conversations import router as conversations_router
from omnidesk.api.routes.health import router as health_router
from omnidesk.api.routes.webhooks import router as webhooks_router

__all__ = ["campaigns_router", "conversations_router", "health_router", "webhooks_router"]
