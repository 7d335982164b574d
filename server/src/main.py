"""
Main server entrypoint.
Initializes the FastAPI application and includes the API routers.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Response

from server.src.api import websockets
from server.src.api.connection_manager import ConnectionManager
from server.src.api.handlers import build_handler_registry
from server.src.api.router import RequestRouter
from server.src.core.config import settings
from server.src.core.container import ServiceContainer
from server.src.core.logging_config import setup_logging, get_logger
from server.src.core.metrics import init_metrics, get_metrics, get_metrics_content_type
from server.src.services.reference_data import seed_reference_template
from common.src import __version__

# Initialize logging and metrics as early as possible
setup_logging()
init_metrics(settings.ENVIRONMENT)
logger = get_logger(__name__)


# OpenAPI Documentation for WebSockets is not directly supported in the same way as HTTP endpoints.
# A common practice is to describe the WebSocket endpoint in the main app description.
app_description = """
Session and request server for the Skirmish combat game.

### WebSocket Protocol (`/ws`)
- **Transport**: every frame is a binary `msgpack` map `{event, data}`.
- **Handshake**:
    1. Client connects to `/ws` and receives `connected`.
    2. Client sends `init` with its `sessionKey` (if it has one).
    3. Server answers `ready` with `session: true` once a session is bound.
- **Login**: `session` events with `getUserExists` or `createUser` return a
  new `sessionKey`.
- **Requests**: `request` events carry `category`, `action` and `sessionKey`
  and are answered with exactly one `response`.
"""


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application. Without ``container`` one is built from the
    settings when the lifespan starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        services = container or ServiceContainer.build(settings)
        logger.info(
            "Skirmish server starting up",
            extra={"version": __version__, "environment": services.settings.ENVIRONMENT},
        )

        await services.store.ensure_indexes()
        if services.settings.SEED_REFERENCE_TEMPLATE and services.reference_template:
            await seed_reference_template(services.store, services.reference_template)

        app.state.container = services
        app.state.connection_manager = ConnectionManager()
        app.state.request_router = RequestRouter(
            build_handler_registry(services), services.sessions, services.login
        )
        services.sessions.start_sweeper(services.settings.SESSION_SWEEP_INTERVAL)

        yield

        # Shutdown
        logger.info("Skirmish server shutting down", extra={"sessions": len(services.sessions)})
        await services.close()

    app = FastAPI(
        title="Skirmish Server",
        description=app_description,
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/metrics", summary="Prometheus metrics endpoint", tags=["Monitoring"])
    def get_metrics_endpoint():
        """
        Prometheus metrics endpoint.
        Returns server metrics in Prometheus format for monitoring and alerting.
        """
        logger.debug("Metrics endpoint accessed")
        return Response(content=get_metrics(), media_type=get_metrics_content_type())

    @app.get("/", summary="Health check endpoint", tags=["Status"])
    def read_root():
        """Root endpoint for health checks."""
        logger.debug("Health check endpoint accessed")
        return {"status": "ok"}

    @app.get("/version", summary="Get server version", tags=["Status"])
    def read_version():
        """Returns the current version of the server application."""
        logger.debug("Version endpoint accessed")
        return {"version": __version__}

    # Include API routers
    app.include_router(websockets.router)
    return app


app = create_app()
