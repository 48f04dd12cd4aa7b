from fastapi import APIRouter

from app.api.v1.endpoints import email, links, workflows

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(email.router, prefix="/email", tags=["Email Ingestion"])
api_router.include_router(links.router, prefix="/links", tags=["Links"])
api_router.include_router(workflows.router, prefix="/workflows", tags=["Workflows"])

__all__ = ["api_router"]
