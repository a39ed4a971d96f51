"""Socket.IO server configuration."""

import socketio

from omnidesk.core.config import settings

SOCKETIO_PATH = "/socket.io"
SOCKETIO_PING_INTERVAL = 25  # seconds
SOCKETIO_PING_TIMEOUT = 20  # seconds
SOCKETIO_MAX_HTTP_BUFFER_SIZE = 1_000_000


def create_socketio_server() -> socketio.AsyncServer:
    """Create the Socket.IO server agents connect to."""
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins="*" if settings.is_development else [],
        ping_interval=SOCKETIO_PING_INTERVAL,
        ping_timeout=SOCKETIO_PING_TIMEOUT,
        max_http_buffer_size=SOCKETIO_MAX_HTTP_BUFFER_SIZE,
        logger=False,
        engineio_logger=False,
    )


def create_socketio_app(sio: socketio.AsyncServer, other_asgi_app=None) -> socketio.ASGIApp:
    """Wrap the server (and optionally the HTTP app) into one ASGI app."""
    return socketio.ASGIApp(sio, other_asgi_app=other_asgi_app, socketio_path=SOCKETIO_PATH)
