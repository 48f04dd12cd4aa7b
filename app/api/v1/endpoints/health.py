"""Service liveness and database readiness."""

from typing import List, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.core.config import settings
from app.core.database import db_client
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


class DatabaseHealth(BaseModel):
    status: str = Field(..., description="healthy, unmigrated or unhealthy")
    dialect: Optional[str] = None
    latency_ms: Optional[float] = None
    missing_tables: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="healthy or degraded")
    service: str
    version: str
    environment: str
    database: DatabaseHealth


@router.get(
    "/",
    response_model=HealthCheckResponse,
    summary="Service health",
    description="Liveness plus database reachability and schema readiness; 503 when degraded",
    operation_id="get_service_health_status",
    responses={503: {"model": HealthCheckResponse}},
)
async def health_check():
    database = DatabaseHealth(**await db_client.health_check())
    body = HealthCheckResponse(
        status="healthy" if database.status == "healthy" else "degraded",
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        database=database,
    )
    if body.status != "healthy":
        return JSONResponse(status_code=503, content=body.model_dump(mode="json"))
    return body
