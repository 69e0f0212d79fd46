"""Runeforge Workflow Engine - FastAPI Application."""

from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI

from app.config import get_settings
from api.v1.router import api_v1_router
from core.logging_config import setup_logging
from core.middleware import RequestTrackingMiddleware, setup_exception_handlers
from db import database
from services.execution_service import build_execution_service

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    setup_logging()

    await database.init_db()
    app.state.session_factory = database.AsyncSessionLocal

    http_client = httpx.AsyncClient()
    app.state.execution_service = build_execution_service(
        database.AsyncSessionLocal, http_client, settings
    )
    logger.info(
        "Application started",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )
    yield

    await app.state.execution_service.shutdown()
    await http_client.aclose()
    await database.close_db()
    logger.info("Application shut down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Workflow execution engine: graph walking, retries, "
                    "branching, agent tasks and durable execution state.",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.add_middleware(RequestTrackingMiddleware)
    setup_exception_handlers(app)

    app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()
