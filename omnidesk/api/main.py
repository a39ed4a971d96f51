"""FastAPI application factory and configuration."""

import structlog
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import socketio
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from omnidesk.api.routes import (
    campaigns_router,
    conversations_router,
    health_router,
    webhooks_router,
)
from omnidesk.api.socketio import create_socketio_app, create_socketio_server
from omnidesk.api.ws import register_agent_namespace
from omnidesk.core.config import settings
from omnidesk.core.exceptions import AppException
from omnidesk.services.platform import Platform, build_platform
from omnidesk.services.realtime import SocketIONotifier
from omnidesk.storage.memory import InMemoryStorage


# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


def create_app(sio: socketio.AsyncServer, platform: Platform | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        sio: Socket.IO server the realtime notifier and agent namespace use
        platform: Prebuilt platform; built on startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        logger.info(
            "Starting omnidesk",
            environment=settings.app_env,
            debug=settings.app_debug,
        )

        current = platform if platform is not None else build_platform(SocketIONotifier(sio))
        app.state.platform = current
        register_agent_namespace(sio, current)

        # Seed demo company in development
        if settings.is_development and isinstance(current.storage, InMemoryStorage):
            await current.storage.seed_demo_company()
            logger.info("Seeded demo company for development")

        await current.start()

        yield

        logger.info("Shutting down omnidesk")
        await current.shutdown()

    app = FastAPI(
        title="Omnidesk API",
        description="Multi-tenant omnichannel conversation routing with chatbot and human agents",
        version="0.1.0",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        """Handle application-specific exceptions."""
        logger.warning(
            "Application exception",
            code=exc.code,
            message=exc.message,
            details=exc.details,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.code,
                "message": exc.message,
                "details": exc.details,
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.error("Unhandled exception", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(webhooks_router)
    app.include_router(conversations_router)
    app.include_router(campaigns_router)

    # Root endpoint
    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": "Omnidesk API",
            "version": "0.1.0",
            "status": "running",
        }

    return app


# Create default app instance
sio = create_socketio_server()
fastapi_app = create_app(sio)
app = create_socketio_app(sio, fastapi_app)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "omnidesk.api.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.is_development,
    )
