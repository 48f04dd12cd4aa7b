"""Centralized dependency injection for the FastAPI application.

External collaborators are built lazily so endpoints that never touch the
mailbox or the extractor do not need their credentials configured.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_async_session
from app.services.extraction_service import DocumentExtractor, GeminiExtractor
from app.services.ingestion.document_linker import DocumentLinker
from app.services.ingestion.email_ingestion_service import EmailIngestionService
from app.services.ingestion.ingestion_tracker import IngestionTracker
from app.services.mail_client import GraphMailClient, MailClient
from app.services.storage_service import BlobStore, StorageService
from app.services.workflow_service import WorkflowService


def get_mail_client() -> MailClient:
    return GraphMailClient()


def get_blob_store() -> BlobStore:
    return StorageService()


def get_document_extractor() -> DocumentExtractor:
    return GeminiExtractor()


async def get_ingestion_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)],
    mail_client: Annotated[MailClient, Depends(get_mail_client)],
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
    extractor: Annotated[DocumentExtractor, Depends(get_document_extractor)],
) -> EmailIngestionService:
    """Get the mailbox ingestion service.

    Args:
        db_session: Database session from dependency injection
        mail_client: Mailbox client
        blob_store: Document storage
        extractor: Field extractor

    Returns:
        EmailIngestionService: Service for webhook and poll ingestion
    """
    return EmailIngestionService(db_session, mail_client, blob_store, extractor)


async def get_ingestion_tracker(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> IngestionTracker:
    return IngestionTracker(db_session)


async def get_document_linker(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> DocumentLinker:
    return DocumentLinker(db_session)


async def get_workflow_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> WorkflowService:
    return WorkflowService(db_session)
