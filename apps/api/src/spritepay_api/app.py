from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from spritepay_api.core.settings import settings
from spritepay_api.db.session import engine
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "SpritePay API starting",
        environment=settings.environment,
        rate_limit_backend=settings.withdrawal_rate_limit_backend,
        risk_threshold=settings.eligibility_risk_threshold,
    )
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("SpritePay API stopped")


def create_app() -> FastAPI:
    """Application factory for the SpritePay FastAPI service."""
    configure_logging(
        service_name="spritepay-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="SpritePay API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="spritepay-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
