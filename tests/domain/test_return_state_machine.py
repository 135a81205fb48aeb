"""Tests for the ReturnRequest state machine: valid transitions and transition guards."""

import pytest
from protean.exceptions import ValidationError

from aftersales.errors import InvalidTransitionError
from aftersales.returns.return_request import (
    TERMINAL_STATUSES,
    Party,
    ReturnRequest,
    ReturnStatus,
    valid_targets,
)


def _make_request(request_type="refund"):
    request = ReturnRequest.create(
        order_id="order-001",
        order_item_id="item-001",
        buyer_id="buyer-001",
        seller_id="seller-001",
        request_type=request_type,
        reason_id="reason-001",
        description="Screen cracked on arrival",
        media_urls=["https://cdn.example.com/crack.jpg"],
    )
    request._events.clear()
    return request


def _request_at_state(target_status, request_type="refund"):
    """Create a request and walk it along the happy path to `target_status`."""
    request = _make_request(request_type)
    path = [
        (ReturnStatus.APPROVED, lambda r: r.update_status(ReturnStatus.APPROVED, "seller-001")),
        (ReturnStatus.ITEM_IN_TRANSIT, lambda r: r.add_return_tracking("buyer-001", "TRK-1", "BlueDart")),
        (ReturnStatus.ITEM_RECEIVED, lambda r: r.mark_received("seller-001", "good")),
    ]
    if request_type == "replacement":
        path.append(
            (
                ReturnStatus.REPLACEMENT_IN_TRANSIT,
                lambda r: r.add_replacement_tracking("seller-001", "TRK-2", "Delhivery"),
            )
        )
    else:
        path.append(
            (ReturnStatus.REFUND_INITIATED, lambda r: r.update_status(ReturnStatus.REFUND_INITIATED, "seller-001"))
        )
        path.append(
            (ReturnStatus.REFUND_PROCESSED, lambda r: r.update_status(ReturnStatus.REFUND_PROCESSED, "seller-001"))
        )
    path.append((ReturnStatus.COMPLETED, lambda r: r.complete("seller-001")))

    if target_status == ReturnStatus.PENDING:
        return request
    for status, step in path:
        step(request)
        if status == target_status:
            request._events.clear()
            return request
    raise ValueError(f"Cannot create {request_type} request at state {target_status}")


# ---------------------------------------------------------------
# Creation
# ---------------------------------------------------------------
class TestCreation:
    def test_starts_pending(self):
        request = _make_request()
        assert request.status == ReturnStatus.PENDING.value

    def test_creation_writes_first_history_row(self):
        request = _make_request()
        history = request.ordered_history()
        assert len(history) == 1
        assert history[0].sequence == 1
        assert history[0].previous_status is None
        assert history[0].new_status == ReturnStatus.PENDING.value
        assert history[0].notes == "Return request created"
        assert history[0].changed_by == "buyer-001"

    def test_media_urls_keep_upload_order(self):
        request = ReturnRequest.create(
            order_id="o",
            order_item_id="i",
            buyer_id="b",
            seller_id="s",
            request_type="return",
            reason_id="r",
            media_urls=["https://a.example/1.jpg", "https://a.example/2.jpg"],
        )
        assert request.media() == ["https://a.example/1.jpg", "https://a.example/2.jpg"]

    def test_replacement_is_not_refund_eligible(self):
        assert _make_request("replacement").eligible_for_refund is False
        assert _make_request("refund").eligible_for_refund is True
        assert _make_request("return").eligible_for_refund is True

    def test_creation_raises_return_requested(self):
        request = ReturnRequest.create(
            order_id="o",
            order_item_id="i",
            buyer_id="b",
            seller_id="s",
            request_type="return",
            reason_id="r",
        )
        assert [type(e).__name__ for e in request._events] == ["ReturnRequested"]


# ---------------------------------------------------------------
# Happy path transitions
# ---------------------------------------------------------------
class TestValidTransitions:
    def test_pending_to_approved(self):
        request = _request_at_state(ReturnStatus.PENDING)
        request.update_status(ReturnStatus.APPROVED, "seller-001")
        assert request.status == ReturnStatus.APPROVED.value

    def test_refund_path_reaches_completed(self):
        request = _request_at_state(ReturnStatus.COMPLETED)
        assert request.status == ReturnStatus.COMPLETED.value
        assert request.completed_at is not None
        assert [h.new_status for h in request.ordered_history()] == [
            "pending",
            "approved",
            "item_in_transit",
            "item_received",
            "refund_initiated",
            "refund_processed",
            "completed",
        ]

    def test_replacement_path_reaches_completed(self):
        request = _request_at_state(ReturnStatus.COMPLETED, request_type="replacement")
        assert [h.new_status for h in request.ordered_history()][-2:] == [
            "replacement_in_transit",
            "completed",
        ]
        assert request.replacement_tracking.courier_name == "Delhivery"

    def test_history_sequence_is_gapless(self):
        request = _request_at_state(ReturnStatus.REFUND_PROCESSED)
        assert [h.sequence for h in request.ordered_history()] == [1, 2, 3, 4, 5, 6]

    def test_history_links_previous_status(self):
        request = _request_at_state(ReturnStatus.ITEM_RECEIVED)
        history = request.ordered_history()
        for earlier, later in zip(history, history[1:]):
            assert later.previous_status == earlier.new_status

    def test_transition_raises_status_changed(self):
        request = _request_at_state(ReturnStatus.PENDING)
        request.update_status(ReturnStatus.APPROVED, "seller-001", "Looks fine")
        event = request._events[-1]
        assert type(event).__name__ == "ReturnStatusChanged"
        assert event.previous_status == "pending"
        assert event.new_status == "approved"
        assert event.notes == "Looks fine"

    def test_default_history_note(self):
        request = _request_at_state(ReturnStatus.PENDING)
        request.update_status(ReturnStatus.APPROVED, "seller-001")
        assert request.latest_history().notes == "Status updated to approved"

    def test_tracking_note_names_courier(self):
        request = _request_at_state(ReturnStatus.APPROVED)
        request.add_return_tracking("buyer-001", "AWB123", "BlueDart")
        assert request.latest_history().notes == "Return shipment initiated with BlueDart (AWB123)"
        assert request.return_tracking.tracking_number == "AWB123"

    def test_mark_received_records_condition(self):
        request = _request_at_state(ReturnStatus.ITEM_IN_TRANSIT)
        request.mark_received("seller-001", "damaged")
        assert request.item_condition == "damaged"
        assert request.received_at is not None
        assert request.latest_history().notes == "Item received in damaged condition"


# ---------------------------------------------------------------
# Invalid transitions
# ---------------------------------------------------------------
class TestInvalidTransitions:
    def test_pending_cannot_complete(self):
        request = _request_at_state(ReturnStatus.PENDING)
        with pytest.raises(InvalidTransitionError) as exc:
            request.update_status(ReturnStatus.COMPLETED, "seller-001")
        assert "Cannot transition from pending to completed" in exc.value.messages["status"]

    def test_rejected_transition_leaves_no_trace(self):
        request = _request_at_state(ReturnStatus.PENDING)
        with pytest.raises(InvalidTransitionError):
            request.update_status(ReturnStatus.ITEM_RECEIVED, "seller-001")
        assert request.status == ReturnStatus.PENDING.value
        assert len(request.ordered_history()) == 1
        assert request._events == []

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_states_have_no_exits(self, terminal):
        assert valid_targets(terminal.value) == set()

    def test_completed_rejects_everything(self):
        request = _request_at_state(ReturnStatus.COMPLETED)
        for target in ReturnStatus:
            with pytest.raises(InvalidTransitionError):
                request.assert_can_transition(target)

    def test_replacement_cannot_enter_refund_states(self):
        request = _request_at_state(ReturnStatus.ITEM_RECEIVED, request_type="replacement")
        with pytest.raises(InvalidTransitionError) as exc:
            request.update_status(ReturnStatus.REFUND_INITIATED, "seller-001")
        assert "does not apply to replacement requests" in exc.value.messages["status"][0]

    def test_refund_cannot_ship_replacement(self):
        request = _request_at_state(ReturnStatus.ITEM_RECEIVED)
        with pytest.raises(InvalidTransitionError):
            request.add_replacement_tracking("seller-001", "TRK", "Courier")

    def test_refund_processed_cannot_be_cancelled(self):
        request = _request_at_state(ReturnStatus.REFUND_PROCESSED)
        with pytest.raises(InvalidTransitionError):
            request.update_status(ReturnStatus.CANCELLED, "admin-001", "Admin override")


# ---------------------------------------------------------------
# Required inputs
# ---------------------------------------------------------------
class TestRequiredInputs:
    def test_rejection_requires_notes(self):
        request = _request_at_state(ReturnStatus.PENDING)
        with pytest.raises(ValidationError) as exc:
            request.update_status(ReturnStatus.REJECTED, "seller-001", "   ")
        assert "notes" in exc.value.messages
        assert request.status == ReturnStatus.PENDING.value

    def test_rejection_with_notes(self):
        request = _request_at_state(ReturnStatus.PENDING)
        request.update_status(ReturnStatus.REJECTED, "seller-001", "Used item")
        assert request.status == ReturnStatus.REJECTED.value
        assert request.latest_history().notes == "Used item"

    def test_tracking_requires_number_and_courier(self):
        request = _request_at_state(ReturnStatus.APPROVED)
        with pytest.raises(ValidationError) as exc:
            request.add_return_tracking("buyer-001", "", "BlueDart")
        assert exc.value.messages["tracking"] == ["Tracking number and courier name are required"]
        assert request.status == ReturnStatus.APPROVED.value

    def test_mark_received_requires_condition(self):
        request = _request_at_state(ReturnStatus.ITEM_IN_TRANSIT)
        with pytest.raises(ValidationError):
            request.mark_received("seller-001", None)


# ---------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------
class TestCancellation:
    @pytest.mark.parametrize("status", [ReturnStatus.PENDING, ReturnStatus.APPROVED])
    def test_cancel_before_shipping(self, status):
        request = _request_at_state(status)
        request.cancel("buyer-001", Party.BUYER, "changed mind")
        assert request.status == ReturnStatus.CANCELLED.value
        assert request.cancellation_reason == "changed mind"
        assert request.cancelled_at is not None
        assert request.latest_history().notes == "Cancelled by buyer: changed mind"

    def test_cancel_after_shipping_fails(self):
        request = _request_at_state(ReturnStatus.ITEM_IN_TRANSIT)
        with pytest.raises(InvalidTransitionError):
            request.cancel("buyer-001", Party.BUYER, "changed mind")
        assert request.status == ReturnStatus.ITEM_IN_TRANSIT.value

    def test_cancel_requires_reason(self):
        request = _request_at_state(ReturnStatus.PENDING)
        with pytest.raises(ValidationError) as exc:
            request.cancel("buyer-001", Party.BUYER, "")
        assert "reason" in exc.value.messages

    def test_cancelled_request_is_inactive(self):
        request = _request_at_state(ReturnStatus.APPROVED)
        request.cancel("admin-001", Party.ADMIN, "duplicate")
        assert request.is_active() is False
        assert request.is_terminal() is True
        assert request.latest_history().notes == "Cancelled by admin: duplicate"
