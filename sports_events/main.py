"""FastAPI application for the sports events service."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError

from sports_events import __version__
from sports_events.config import get_settings
from sports_events.container import Container, build_container
from sports_events.responses import ERROR_VALIDATION, ApiError, api_error_handler, error
from sports_events.routes.core import router as core_router
from sports_events.routes.events import router as events_router
from sports_events.routes.standings import router as standings_router
from sports_events.telemetry.sentry import init_sentry

# Configure logging
logging.basicConfig(
    level=get_settings().LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return error("Validation failed", 422, ERROR_VALIDATION, errors=jsonable_encoder(exc.errors()))


def create_app(container: Optional[Container] = None, start_workers: bool = True) -> FastAPI:
    """
    Build the application. The container is built in the lifespan when not
    supplied, so importing this module opens no connections.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        nonlocal container
        if container is None:
            container = build_container(get_settings())
        settings = container.settings

        logger.info(f"Starting {settings.SERVICE_NAME} v{__version__}...")
        init_sentry(settings.SENTRY_DSN, settings.SENTRY_TRACES_SAMPLE_RATE, settings.SERVICE_NAME)
        app.state.container = container
        await container.start(with_workers=start_workers)

        yield

        logger.info(f"Shutting down {settings.SERVICE_NAME}...")
        await container.shutdown()

    app = FastAPI(
        title="Sports Events Service",
        description="Cross-service event propagation and standings jobs",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(core_router)
    app.include_router(events_router)
    app.include_router(standings_router)
    return app


app = create_app()
