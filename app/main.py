"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.api.v1.endpoints import health
from app.api.v1.router import api_router
from app.core.config import settings
from app.core.database import close_database, init_database
from app.core.exceptions import APIClientError, AppError, ConfigurationError, ValidationError
from app.utils.logging import get_logger, set_default_level
from app.utils.responses import create_error_detail

set_default_level(settings.log_level)
LOGGER = get_logger(__name__, level=settings.log_level)

_ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST, "Invalid Request"),
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE, "Service Not Configured"),
    (APIClientError, status.HTTP_502_BAD_GATEWAY, "Upstream Service Error"),
)


class ServiceInfo(BaseModel):
    """Root endpoint response payload."""

    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Running application version")
    environment: str = Field(..., description="Deployment environment")
    mailbox_configured: bool = Field(..., description="Whether a monitored mailbox is set")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the service health check")
    ingestion_health: str = Field(..., description="Path to the mailbox ingestion health check")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Validate configuration and initialize the database."""
    missing = [
        name
        for name, value in (
            ("GEMINI_API_KEY", settings.llm.gemini_api_key),
            ("MONITORED_MAILBOX", settings.graph.monitored_mailbox),
            ("SUPABASE_URL", settings.storage.url),
        )
        if not value
    ]
    if missing:
        LOGGER.error(f"Missing configuration: {', '.join(missing)}")

    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )

    # Production schemas come from alembic
    try:
        await asyncio.wait_for(
            init_database(create_tables=settings.environment != "production"),
            timeout=settings.db_init_timeout,
        )
        LOGGER.info("Database initialized")
    except asyncio.TimeoutError:
        LOGGER.error(f"Database initialization timed out after {settings.db_init_timeout}s")
    except Exception as e:
        LOGGER.error(f"Database initialization failed: {e}", exc_info=True)

    yield

    LOGGER.info("Shutting down application")
    await close_database()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Ingestion and lifecycle tracking for government solicitations and purchase orders",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid4()))
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


@app.exception_handler(AppError)
async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    """Render uncaught application errors as RFC 7807 bodies."""
    status_code, title = status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Error"
    for error_class, code, error_title in _ERROR_STATUS:
        if isinstance(exc, error_class):
            status_code, title = code, error_title
            break

    LOGGER.error(
        f"{type(exc).__name__}: {exc}",
        exc_info=exc.original_error is not None,
        extra={"path": request.url.path, "status_code": status_code},
    )
    error_detail = create_error_detail(title=title, status=status_code, detail=str(exc), request=request)
    return JSONResponse(status_code=status_code, content={"detail": error_detail.model_dump(mode="json")})


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)

app.include_router(api_router, prefix=settings.api_v1_prefix)
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get(
    "/",
    response_model=ServiceInfo,
    tags=["Root"],
    summary="Service metadata",
    operation_id="get_service_info",
)
async def root() -> ServiceInfo:
    return ServiceInfo(
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        mailbox_configured=bool(settings.graph.monitored_mailbox),
        docs="/docs",
        health="/health",
        ingestion_health=f"{settings.api_v1_prefix}/email/health",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
