"""Tests for lifecycle status derivation."""

from datetime import timedelta

import pytest

from app.services.workflow.status_engine import (
    STATUS_LABELS,
    OrderState,
    QuoteState,
    SolicitationState,
    WorkflowStatus,
    compute_workflow_status,
    order_status_to_workflow,
)


class TestComputeWorkflowStatus:
    def test_expired_when_due_date_passed_without_quote(self, now) -> None:
        result = compute_workflow_status(
            SolicitationState(due_date=now - timedelta(days=1)), None, None, now
        )

        assert result.status == WorkflowStatus.EXPIRED
        assert result.label == "Expired"

    def test_lost_when_submitted_long_ago_without_order(self, now) -> None:
        result = compute_workflow_status(
            SolicitationState(),
            QuoteState(status="submitted", submitted_at=now - timedelta(days=45)),
            None,
            now,
        )

        assert result.status == WorkflowStatus.LOST

    def test_order_received_after_completed_quote(self, now) -> None:
        result = compute_workflow_status(
            SolicitationState(),
            QuoteState(status="completed", submitted_at=now - timedelta(days=5)),
            OrderState(status="pending"),
            now,
        )

        assert result.status == WorkflowStatus.PO_RECEIVED
        assert result.label == "PO Received"

    @pytest.mark.parametrize("order", [None, OrderState(status="shipped")])
    def test_no_bid_regardless_of_order(self, now, order) -> None:
        result = compute_workflow_status(
            SolicitationState(),
            QuoteState(status="submitted", submitted_at=now, no_bid=True),
            order,
            now,
        )

        assert result.status == WorkflowStatus.NO_BID

    def test_submitted_quote_is_not_expired(self, now) -> None:
        result = compute_workflow_status(
            SolicitationState(due_date=now - timedelta(days=3)),
            QuoteState(status="submitted", submitted_at=now - timedelta(days=4)),
            None,
            now,
        )

        assert result.status == WorkflowStatus.RESPONSE_SUBMITTED

    def test_expiry_wins_over_no_bid_draft(self, now) -> None:
        result = compute_workflow_status(
            SolicitationState(due_date=now - timedelta(days=1)),
            QuoteState(status="draft", no_bid=True),
            None,
            now,
        )

        assert result.status == WorkflowStatus.EXPIRED

    def test_draft_quote(self, now) -> None:
        result = compute_workflow_status(
            SolicitationState(due_date=now + timedelta(days=2)), QuoteState(status="draft"), None, now
        )

        assert result.status == WorkflowStatus.RESPONSE_DRAFT

    def test_lost_threshold_is_inclusive_and_configurable(self, now) -> None:
        quote = QuoteState(status="submitted", submitted_at=now - timedelta(days=10))

        assert compute_workflow_status(SolicitationState(), quote, None, now).status == WorkflowStatus.RESPONSE_SUBMITTED
        assert (
            compute_workflow_status(SolicitationState(), quote, None, now, lost_after_days=10).status
            == WorkflowStatus.LOST
        )

    def test_order_without_solicitation_follows_order(self, now) -> None:
        result = compute_workflow_status(None, None, OrderState(status="verified"), now)

        assert result.status == WorkflowStatus.VERIFIED

    def test_nothing_at_all(self, now) -> None:
        assert compute_workflow_status(None, None, None, now).status == WorkflowStatus.RFQ_RECEIVED

    def test_unknown_quote_status_falls_back(self, now) -> None:
        result = compute_workflow_status(SolicitationState(), QuoteState(status="archived"), None, now)

        assert result.status == WorkflowStatus.RFQ_RECEIVED

    def test_same_inputs_same_result(self, now) -> None:
        args = (
            SolicitationState(due_date=now + timedelta(days=1)),
            QuoteState(status="submitted", submitted_at=now - timedelta(days=1)),
            OrderState(status="labels_generated"),
            now,
        )

        assert compute_workflow_status(*args) == compute_workflow_status(*args)
        assert compute_workflow_status(*args).status == WorkflowStatus.IN_FULFILLMENT


class TestOrderStatusMapping:
    @pytest.mark.parametrize(
        "order_status,expected",
        [
            ("pending", WorkflowStatus.PO_RECEIVED),
            ("quality_sheet_created", WorkflowStatus.IN_FULFILLMENT),
            ("labels_generated", WorkflowStatus.IN_FULFILLMENT),
            ("verified", WorkflowStatus.VERIFIED),
            ("shipped", WorkflowStatus.SHIPPED),
            ("extraction_failed", WorkflowStatus.PO_RECEIVED),
            (None, WorkflowStatus.PO_RECEIVED),
        ],
    )
    def test_mapping(self, order_status, expected) -> None:
        assert order_status_to_workflow(order_status) == expected

    def test_every_status_has_a_label(self) -> None:
        assert set(STATUS_LABELS) == set(WorkflowStatus)
