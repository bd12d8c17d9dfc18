"""FastAPI application factory."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, List

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from coach_push.api.v1 import api_router
from coach_push.config import settings
from coach_push.push.dispatcher import missing_credentials
from coach_push.utils.exceptions import (
    NotificationDataError,
    PushConfigurationError,
    SubscriptionError,
    handle_configuration_error,
    handle_subscription_error,
)


tags_metadata: List[dict[str, str]] = [
    {"name": "push", "description": "Register web and mobile devices and send test notifications."},
    {"name": "health", "description": "Which push channels this server can deliver to."},
]


def log_push_channels() -> None:
    """Warn at startup about push channels that lack credentials."""

    missing = missing_credentials(settings)
    for platform, names in missing.items():
        logger.warning("Push channel disabled", platform=platform, missing=names)
    ready = sorted(set(("web", "android", "ios")) - set(missing))
    logger.info("Push channels ready", platforms=ready)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    log_push_channels()
    yield


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Push notification delivery for the coaching platform.",
        version="0.1.0",
        openapi_tags=tags_metadata,
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors(), "message": "Validation failed"},
        )

    @app.exception_handler(PushConfigurationError)
    async def configuration_exception_handler(
        request: Request, exc: PushConfigurationError
    ) -> JSONResponse:
        http_exc = handle_configuration_error(exc)
        return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})

    @app.exception_handler(SubscriptionError)
    async def subscription_exception_handler(
        request: Request, exc: SubscriptionError
    ) -> JSONResponse:
        http_exc = handle_subscription_error(exc)
        return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})

    @app.exception_handler(NotificationDataError)
    async def notification_data_exception_handler(
        request: Request, exc: NotificationDataError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": {"message": exc.message, "details": exc.details}},
        )

    @app.get(f"{settings.API_V1_STR}/health", tags=["health"])
    def health() -> dict:
        missing = missing_credentials(settings)
        return {
            "status": "ok",
            "channels": {platform: platform not in missing for platform in ("web", "android", "ios")},
        }

    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
