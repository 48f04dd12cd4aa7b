from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.dependencies import get_document_linker
from app.schemas.common import ApiResponse
from app.schemas.ingestion import LinkReportItem
from app.services.ingestion.document_linker import DocumentLinker
from app.utils.logging import get_logger
from app.utils.responses import create_api_response, create_error_detail

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "/backfill",
    response_model=ApiResponse,
    summary="Repair order to solicitation links",
    operation_id="backfill_document_links",
)
async def backfill_links(
    request: Request,
    linker: Annotated[DocumentLinker, Depends(get_document_linker)],
    dry_run: bool = Query(False, description="Report what would be linked without writing"),
) -> ApiResponse:
    """Reconcile legacy order references and match unlinked orders by reference number."""
    try:
        reports = await linker.backfill_links(dry_run=dry_run)
    except Exception as e:
        LOGGER.error(f"Link backfill failed: {e}", exc_info=True)
        error_detail = create_error_detail(
            title="Link Backfill Failed",
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
            request=request
        )
        raise HTTPException(status_code=500, detail=error_detail.model_dump(mode="json"))

    items = [LinkReportItem.model_validate(report) for report in reports]
    return create_api_response(
        data={
            "dry_run": dry_run,
            "examined": len(items),
            "linked": sum(1 for item in items if item.created),
            "items": [item.model_dump(mode="json") for item in items],
        },
        message="Dry run completed" if dry_run else "Links backfilled",
        request=request,
    )
