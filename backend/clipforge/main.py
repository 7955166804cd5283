from __future__ import annotations
"""Clipforge — FastAPI application entry point.

Builds the shared provider client, task registry and orchestrator once at
startup, mounts the API routes and configures CORS.
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clipforge.api.router import api_router
from clipforge.config import Settings, get_settings
from clipforge.services.asset_resolver import EXAMPLE_IMAGES, AssetResolver
from clipforge.services.http_retry import RetryClient
from clipforge.services.orchestrator import TaskOrchestrator
from clipforge.services.providers.runway import RunwayClient
from clipforge.services.task_registry import TaskRegistry

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings, http_client: httpx.AsyncClient) -> TaskOrchestrator:
    """Wire the provider client, registry and resolver into an orchestrator."""
    retry_client = RetryClient(
        http_client,
        timeout=settings.HTTP_TIMEOUT,
        max_retries=settings.HTTP_MAX_RETRIES,
        base_delay=settings.HTTP_RETRY_BASE_DELAY,
    )
    runway = RunwayClient(
        retry_client,
        settings.USEAPI_TOKEN,
        base_url=settings.RUNWAY_BASE_URL,
        email=settings.RUNWAY_EMAIL,
        password=settings.RUNWAY_PASSWORD,
        max_jobs=settings.RUNWAY_MAX_JOBS,
    )
    resolver = AssetResolver(runway, settings.example_image_urls or EXAMPLE_IMAGES)
    return TaskOrchestrator(
        TaskRegistry(),
        runway,
        resolver,
        poll_max_attempts=settings.POLL_MAX_ATTEMPTS,
        poll_interval=settings.POLL_INTERVAL,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: build services on startup, close them on shutdown."""
    logger.info("%s starting up...", settings.APP_NAME)
    logger.info("Provider: %s", settings.RUNWAY_BASE_URL)

    http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT)
    try:
        orchestrator = build_orchestrator(settings, http_client)
    except Exception:
        await http_client.aclose()
        logger.error("USEAPI_TOKEN is not configured, refusing to start")
        raise

    # Account activation is optional; the gateway works without it.
    await orchestrator.client.ensure_account_configured()
    app.state.orchestrator = orchestrator

    yield

    await orchestrator.aclose()
    await http_client.aclose()
    logger.info("%s shut down", settings.APP_NAME)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Clipforge API",
        description="Image/text-to-video generation jobs with progress tracking",
        version="0.1.0",
        lifespan=lifespan,
        redirect_slashes=False,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"service": settings.APP_NAME, "status": "running"}

    @app.get("/health")
    async def health():
        """Detailed health check."""
        return {
            "status": "healthy",
            "provider": settings.RUNWAY_BASE_URL,
            "account_credentials": settings.has_account_credentials,
        }

    return app


app = create_app()
