from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.dependencies import get_workflow_service
from app.schemas.common import ApiResponse
from app.schemas.workflows import WorkflowListResponse
from app.services.workflow.status_engine import WorkflowStatus
from app.services.workflow_service import WorkflowService
from app.utils.logging import get_logger
from app.utils.responses import create_api_response, create_error_detail

LOGGER = get_logger(__name__)

router = APIRouter()


@router.get(
    "/",
    response_model=ApiResponse,
    summary="List workflows",
    operation_id="list_workflows",
)
async def list_workflows(
    request: Request,
    workflow_service: Annotated[WorkflowService, Depends(get_workflow_service)],
    status_filter: Optional[WorkflowStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    stats: bool = Query(False, description="Return per-status counts instead of records"),
) -> ApiResponse:
    """List deals by most recent activity, or summarize them by status."""
    if stats:
        summary = await workflow_service.get_workflow_stats()
        return create_api_response(data=summary, message="Workflow stats retrieved", request=request)

    records = await workflow_service.list_workflows(status=status_filter, limit=limit, offset=offset)
    data = WorkflowListResponse(items=records, count=len(records), limit=limit, offset=offset)
    return create_api_response(data=data, message="Workflows retrieved successfully", request=request)


@router.get(
    "/{identifier}",
    response_model=ApiResponse,
    summary="Get a workflow",
    operation_id="get_workflow",
)
async def get_workflow(
    request: Request,
    identifier: str,
    workflow_service: Annotated[WorkflowService, Depends(get_workflow_service)],
) -> ApiResponse:
    """Look up a deal by solicitation number, order number or solicitation id."""
    record = await workflow_service.get_workflow(identifier)
    if record is None:
        error_detail = create_error_detail(
            title="Workflow Not Found",
            status=status.HTTP_404_NOT_FOUND,
            detail=f"No workflow found for '{identifier}'",
            request=request
        )
        raise HTTPException(status_code=404, detail=error_detail.model_dump(mode="json"))

    return create_api_response(data=record, message="Workflow retrieved successfully", request=request)
