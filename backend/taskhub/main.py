"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from taskhub.api import router as api_router
from taskhub.config import Settings, get_settings
from taskhub.db.session import close_db, create_engine, create_session_factory, init_db
from taskhub.exceptions import AuthenticationError, DomainError
from taskhub.middleware.logging import LoggingMiddleware, configure_logging
from taskhub.middleware.request_id import RequestIDMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    settings: Settings = app.state.settings
    logger.info("application_starting", version=settings.app_version, environment=settings.environment)
    await init_db(app.state.engine)
    logger.info("database_connected")

    yield

    logger.info("application_stopping")
    await close_db(app.state.engine)
    logger.info("database_disconnected")


async def domain_error_handler(request: Request, exc: DomainError) -> ORJSONResponse:
    """Render a classified service failure as ``{"detail", "code"}``."""
    if exc.status_code >= 500:
        logger.error("domain_error", code=exc.code, kind=exc.kind.value)
    else:
        logger.info("domain_error", code=exc.code, kind=exc.kind.value, status_code=exc.status_code)

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return ORJSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    The database engine and session factory are created here and kept on
    ``app.state`` for the request-scoped session dependency.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Multi-tenant task and project management API",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = create_engine(settings)
    app.state.session_factory = create_session_factory(app.state.engine)

    app.add_exception_handler(DomainError, domain_error_handler)

    # Add middleware (order matters - last added is first executed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    # Trust proxy headers (X-Forwarded-Proto, X-Forwarded-For) from the load balancer
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

    app.include_router(api_router, prefix=settings.api_prefix)

    return app


app = create_app()
