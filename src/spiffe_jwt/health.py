"""
Health Endpoint

Startup/readiness probe for the sidecar. ``GET /started`` answers 200 once the
first JWT SVID has been fetched and written, 503 before that. The handler only
reads the readiness flag, so probes never wait on the renewal loop.
"""

from fastapi import FastAPI, Response
import uvicorn

from .readiness import ReadinessFlag
from .utils.logging import get_logger

logger = get_logger(__name__)

# Slow or idle probers are dropped quickly
KEEP_ALIVE_TIMEOUT_SECONDS = 5
GRACEFUL_SHUTDOWN_SECONDS = 10
MAX_CONCURRENT_CONNECTIONS = 32
MAX_INCOMPLETE_EVENT_SIZE = 16 * 1024


def create_health_app(readiness: ReadinessFlag) -> FastAPI:
    """Build the probe app around an injected readiness flag."""
    app = FastAPI(
        title="spiffe-jwt",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/started", tags=["health"])
    def started():
        """
        Kubernetes startup/readiness probe.
        Returns 200 after the first successful renewal, 503 before.
        """
        if readiness.is_ready():
            return Response(status_code=200)
        return Response(status_code=503)

    return app


class HealthServer:
    """Serves the health app with uvicorn, blocking the calling thread."""

    def __init__(self, readiness: ReadinessFlag, host: str = "0.0.0.0", port: int = 8080):
        self.host = host
        self.port = port
        self.app = create_health_app(readiness)
        self.config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_config=None,
            access_log=False,
            timeout_keep_alive=KEEP_ALIVE_TIMEOUT_SECONDS,
            timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_SECONDS,
            limit_concurrency=MAX_CONCURRENT_CONNECTIONS,
            h11_max_incomplete_event_size=MAX_INCOMPLETE_EVENT_SIZE,
        )
        self.server = uvicorn.Server(self.config)

    def serve(self) -> bool:
        """
        Run until SIGINT/SIGTERM.

        uvicorn exits the process itself if the port cannot be bound.
        """
        logger.info(f"Starting health server on port {self.port}")
        self.server.run()
        return self.server.started
