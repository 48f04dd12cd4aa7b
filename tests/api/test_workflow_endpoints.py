"""Tests for the workflow, link and health endpoints."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from app.core.database import db_client
from app.core.exceptions import MailClientError, ValidationError
from app.dependencies import get_document_linker, get_workflow_service
from app.main import app
from app.schemas.workflows import WorkflowRecord, WorkflowStats
from app.services.ingestion.document_linker import LinkReport
from app.services.workflow.status_engine import WorkflowStatus


def make_record(number: str, status: WorkflowStatus = WorkflowStatus.RFQ_RECEIVED) -> WorkflowRecord:
    return WorkflowRecord(
        solicitation_number=number,
        status=status,
        status_label="Awaiting Response",
        solicitation_received_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )


def override_workflow_service() -> AsyncMock:
    service = AsyncMock()
    app.dependency_overrides[get_workflow_service] = lambda: service
    return service


class TestWorkflowEndpoints:
    def test_list_workflows(self, test_client: TestClient) -> None:
        service = override_workflow_service()
        service.list_workflows.return_value = [make_record("SPE1C1-26-T-0001")]

        response = test_client.get("/api/v1/workflows/?status=rfq_received&limit=10&offset=5")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["count"] == 1
        assert data["items"][0]["solicitation_number"] == "SPE1C1-26-T-0001"
        service.list_workflows.assert_awaited_once_with(
            status=WorkflowStatus.RFQ_RECEIVED, limit=10, offset=5
        )

    def test_rejects_unknown_status(self, test_client: TestClient) -> None:
        override_workflow_service()

        response = test_client.get("/api/v1/workflows/?status=archived")

        assert response.status_code == 422

    def test_stats(self, test_client: TestClient) -> None:
        service = override_workflow_service()
        service.get_workflow_stats.return_value = WorkflowStats(
            total=3,
            by_status={WorkflowStatus.RFQ_RECEIVED: 2, WorkflowStatus.SHIPPED: 1},
        )

        response = test_client.get("/api/v1/workflows/?stats=true")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 3
        assert data["by_status"]["shipped"] == 1
        service.list_workflows.assert_not_awaited()

    def test_get_workflow(self, test_client: TestClient) -> None:
        service = override_workflow_service()
        service.get_workflow.return_value = make_record("SPE1C1-26-T-0001")

        response = test_client.get("/api/v1/workflows/SPE1C1-26-T-0001")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "rfq_received"
        service.get_workflow.assert_awaited_once_with("SPE1C1-26-T-0001")

    def test_get_workflow_not_found(self, test_client: TestClient) -> None:
        service = override_workflow_service()
        service.get_workflow.return_value = None

        response = test_client.get("/api/v1/workflows/unknown")

        assert response.status_code == 404
        assert response.json()["detail"]["title"] == "Workflow Not Found"


class TestLinkBackfill:
    def test_backfill(self, test_client: TestClient) -> None:
        linker = AsyncMock()
        linker.backfill_links.return_value = [
            LinkReport(1, "SPE1C1-26-P-0001", 7, "SPE1C1-26-T-0001", "exact", created=True),
            LinkReport(2, "SPE1C1-26-P-0002", None, None, "none"),
        ]
        app.dependency_overrides[get_document_linker] = lambda: linker

        response = test_client.post("/api/v1/links/backfill?dry_run=true")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["dry_run"] is True
        assert data["examined"] == 2
        assert data["linked"] == 1
        linker.backfill_links.assert_awaited_once_with(dry_run=True)

    def test_backfill_failure(self, test_client: TestClient) -> None:
        linker = AsyncMock()
        linker.backfill_links.side_effect = RuntimeError("database unavailable")
        app.dependency_overrides[get_document_linker] = lambda: linker

        response = test_client.post("/api/v1/links/backfill")

        assert response.status_code == 500


class TestServiceEndpoints:
    def test_root(self, test_client: TestClient) -> None:
        response = test_client.get("/")

        assert response.status_code == 200
        body = response.json()
        assert body["service"] == "Procurement Workflow Service"
        assert body["ingestion_health"] == "/api/v1/email/health"

    def test_health(self, test_client: TestClient, monkeypatch) -> None:
        healthy = {"status": "healthy", "dialect": "sqlite", "latency_ms": 0.4}
        monkeypatch.setattr(db_client, "health_check", AsyncMock(return_value=healthy))

        response = test_client.get("/health/")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_degraded(self, test_client: TestClient, monkeypatch) -> None:
        unmigrated = {"status": "unmigrated", "dialect": "postgresql", "missing_tables": ["document_links"]}
        monkeypatch.setattr(db_client, "health_check", AsyncMock(return_value=unmigrated))

        response = test_client.get("/health/")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "degraded"
        assert body["database"]["missing_tables"] == ["document_links"]


class TestApplicationErrors:
    def test_validation_error_is_400(self, test_client: TestClient) -> None:
        service = override_workflow_service()
        service.list_workflows.side_effect = ValidationError("limit and offset must be non-negative")

        response = test_client.get("/api/v1/workflows/")

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["title"] == "Invalid Request"
        assert detail["instance"] == "/api/v1/workflows/"

    def test_upstream_error_is_502(self, test_client: TestClient) -> None:
        service = override_workflow_service()
        service.get_workflow.side_effect = MailClientError("Graph unavailable")

        response = test_client.get("/api/v1/workflows/SPE1C1-26-T-0001")

        assert response.status_code == 502
        assert response.json()["detail"]["detail"] == "Graph unavailable"
