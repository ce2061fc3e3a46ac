# Entry point for the FastAPI app
import os

from fastapi import FastAPI

from worldkeeper.api.config.openapi import setup_openapi
from worldkeeper.api.logging_config import configure_logging, get_logger
from worldkeeper.api.middleware import setup_middleware
from worldkeeper.api.routes import retention
from worldkeeper.api.settings import settings

logger = get_logger(__name__)


def create_app() -> FastAPI:
    """Build the FastAPI application."""

    app = FastAPI(
        title="worldkeeper",
        description="Retention and ownership management for world backup folders",
        version=settings.IMAGE_TAG,
    )

    setup_openapi(app)
    setup_middleware(app)
    app.include_router(retention.router)

    # Health check endpoint.
    @app.get("/health")
    def check_health():
        return {"status": "OK"}

    # Get Image version.
    @app.get("/version")
    def get_version():
        return {"IMAGE_TAG": f"{settings.IMAGE_TAG}"}

    return app


configure_logging(log_dir=settings.LOG_DIR or None, log_level=settings.LOG_LEVEL, debug=settings.DEBUG)
app = create_app()
logger.info("Registered retention routes (/worlds, /retention/*, /ownership/fix)")


def run() -> None:
    """Serve the API with uvicorn (`worldkeeper-api`)."""

    import uvicorn

    uvicorn.run(
        "worldkeeper.main:app",
        host=os.environ.get("API_HOST", "0.0.0.0"),
        port=int(os.environ.get("API_PORT", "8000")),
    )
