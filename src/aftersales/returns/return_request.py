"""ReturnRequest aggregate (CQRS) — one buyer request to return, refund or replace an item.

The request and its status history are a single aggregate, so a status change
and the history row recording it are persisted in the same unit of work.

State Machine:
    PENDING → APPROVED → ITEM_IN_TRANSIT → ITEM_RECEIVED
    ITEM_RECEIVED → REPLACEMENT_IN_TRANSIT → COMPLETED      (replacement)
    ITEM_RECEIVED → REFUND_INITIATED → REFUND_PROCESSED → COMPLETED  (return/refund)
    PENDING → REJECTED
    {PENDING, APPROVED, ITEM_IN_TRANSIT, ITEM_RECEIVED,
     REPLACEMENT_IN_TRANSIT, REFUND_INITIATED} → CANCELLED
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import Index, atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from aftersales.domain import aftersales
from aftersales.errors import InvalidTransitionError
from aftersales.returns.events import ReturnMessagePosted, ReturnRequested, ReturnStatusChanged


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ReturnStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ITEM_IN_TRANSIT = "item_in_transit"
    ITEM_RECEIVED = "item_received"
    REPLACEMENT_IN_TRANSIT = "replacement_in_transit"
    REFUND_INITIATED = "refund_initiated"
    REFUND_PROCESSED = "refund_processed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RequestType(Enum):
    RETURN = "return"
    REFUND = "refund"
    REPLACEMENT = "replacement"


class RefundMethod(Enum):
    ORIGINAL_METHOD = "original_method"
    WALLET = "wallet"


class RefundStatus(Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Party(Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


# ---------------------------------------------------------------------------
# State Machine
# ---------------------------------------------------------------------------
_VALID_TRANSITIONS = {
    ReturnStatus.PENDING: {ReturnStatus.APPROVED, ReturnStatus.REJECTED, ReturnStatus.CANCELLED},
    ReturnStatus.APPROVED: {ReturnStatus.ITEM_IN_TRANSIT, ReturnStatus.CANCELLED},
    ReturnStatus.ITEM_IN_TRANSIT: {ReturnStatus.ITEM_RECEIVED, ReturnStatus.CANCELLED},
    ReturnStatus.ITEM_RECEIVED: {
        ReturnStatus.REPLACEMENT_IN_TRANSIT,
        ReturnStatus.REFUND_INITIATED,
        ReturnStatus.CANCELLED,
    },
    ReturnStatus.REPLACEMENT_IN_TRANSIT: {ReturnStatus.COMPLETED, ReturnStatus.CANCELLED},
    ReturnStatus.REFUND_INITIATED: {ReturnStatus.REFUND_PROCESSED, ReturnStatus.CANCELLED},
    ReturnStatus.REFUND_PROCESSED: {ReturnStatus.COMPLETED},
    ReturnStatus.COMPLETED: set(),  # Terminal
    ReturnStatus.CANCELLED: set(),  # Terminal
    ReturnStatus.REJECTED: set(),  # Terminal
}

_SELLER_SIDE = frozenset({Party.SELLER, Party.ADMIN})
_BUYER_SIDE = frozenset({Party.BUYER, Party.ADMIN})

# Who may drive the request into each status. Admins appear everywhere: an
# admin override is still a validated transition, only authorization relaxes.
TRANSITION_PARTIES = {
    ReturnStatus.APPROVED: _SELLER_SIDE,
    ReturnStatus.REJECTED: _SELLER_SIDE,
    ReturnStatus.ITEM_IN_TRANSIT: _BUYER_SIDE,
    ReturnStatus.ITEM_RECEIVED: _SELLER_SIDE,
    ReturnStatus.REPLACEMENT_IN_TRANSIT: _SELLER_SIDE,
    ReturnStatus.REFUND_INITIATED: _SELLER_SIDE,
    ReturnStatus.REFUND_PROCESSED: _SELLER_SIDE,
    ReturnStatus.COMPLETED: _SELLER_SIDE,
    ReturnStatus.CANCELLED: _BUYER_SIDE,
}

# Request types each status is meaningful for
_TYPE_RESTRICTED = {
    ReturnStatus.REPLACEMENT_IN_TRANSIT: {RequestType.REPLACEMENT},
    ReturnStatus.REFUND_INITIATED: {RequestType.RETURN, RequestType.REFUND},
    ReturnStatus.REFUND_PROCESSED: {RequestType.RETURN, RequestType.REFUND},
}

TERMINAL_STATUSES = {s for s, targets in _VALID_TRANSITIONS.items() if not targets}

# Requests in these states no longer block a new request for the same item
INACTIVE_STATUSES = {ReturnStatus.CANCELLED, ReturnStatus.REJECTED}

# A buyer may only withdraw before the item ships back
BUYER_CANCELLABLE_STATUSES = {ReturnStatus.PENDING, ReturnStatus.APPROVED}

# Order item status once the request completes
_ITEM_OUTCOME = {
    RequestType.RETURN: "returned",
    RequestType.REFUND: "refunded",
    RequestType.REPLACEMENT: "replaced",
}


def valid_targets(status: str) -> set[ReturnStatus]:
    return set(_VALID_TRANSITIONS.get(ReturnStatus(status), set()))


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@aftersales.value_object(part_of="ReturnRequest")
class PolicySnapshot:
    """The return policy as it stood when the request was created."""

    policy_id = Identifier()
    return_window_days = Integer()
    replacement_window_days = Integer()
    refund_window_days = Integer()
    shipping_paid_by = String(max_length=20)
    non_returnable_items = Text()  # JSON list
    policy_text = Text()


@aftersales.value_object(part_of="ReturnRequest")
class ShipmentTracking:
    tracking_number = String(max_length=100, required=True)
    courier_name = String(max_length=100, required=True)
    tracking_url = String(max_length=500)
    shipped_at = DateTime()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@aftersales.entity(part_of="ReturnRequest")
class StatusHistory:
    """One immutable row per transition, ordered by `sequence`."""

    sequence = Integer(required=True, min_value=1)
    previous_status = String(max_length=50)  # None for the creation row
    new_status = String(max_length=50, required=True)
    changed_by = Identifier(required=True)
    notes = Text()
    created_at = DateTime(required=True)


@aftersales.entity(part_of="ReturnRequest")
class ReturnMessage:
    sender_id = Identifier(required=True)
    sender_role = String(max_length=20, choices=Party, required=True)
    message = Text(required=True)
    media_urls = Text()  # JSON list
    read_by = Text()  # JSON list of user ids who have opened the message
    created_at = DateTime(required=True)

    def is_read_by(self, user_id) -> bool:
        return str(user_id) in json.loads(self.read_by or "[]")


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@aftersales.aggregate(indexes=[Index("active_item_key", unique=True)])
class ReturnRequest:
    """A buyer's request to return, refund or replace one order item."""

    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    request_type = String(max_length=20, choices=RequestType, required=True)
    reason_id = Identifier(required=True)
    description = Text()
    media_urls = Text()  # JSON list, in upload order
    status = String(max_length=50, choices=ReturnStatus, default=ReturnStatus.PENDING.value)
    eligible_for_refund = Boolean(default=False)
    return_policy = ValueObject(PolicySnapshot)

    # Settlement bookkeeping, written by the refund settlement service
    refund_amount = Float()
    refund_method = String(max_length=30, choices=RefundMethod)
    refund_status = String(max_length=20, choices=RefundStatus)

    # Shipments
    return_tracking = ValueObject(ShipmentTracking)
    replacement_tracking = ValueObject(ShipmentTracking)
    item_condition = String(max_length=50)

    status_history = HasMany(StatusHistory)
    messages = HasMany(ReturnMessage)

    # The order item id while the request is active, cleared once cancelled or
    # rejected. The unique index keeps one active request per item in storage.
    active_item_key = Identifier()

    # Milestones
    created_at = DateTime()
    status_updated_at = DateTime()
    received_at = DateTime()
    completed_at = DateTime()
    cancelled_at = DateTime()
    cancellation_reason = Text()
    updated_at = DateTime()

    @invariant.post
    def status_matches_latest_history(self):
        latest = self.latest_history()
        if latest is not None and latest.new_status != self.status:
            raise ValidationError(
                {"status": [f"Status {self.status} does not match the latest history entry {latest.new_status}"]}
            )

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_id: str,
        order_item_id: str,
        buyer_id: str,
        seller_id: str,
        request_type: str,
        reason_id: str,
        description: str | None = None,
        media_urls: list[str] | None = None,
        policy: PolicySnapshot | None = None,
    ):
        """Open a request in PENDING with its creation history row."""
        now = datetime.now(UTC)
        request = cls(
            order_id=order_id,
            order_item_id=order_item_id,
            buyer_id=buyer_id,
            seller_id=seller_id,
            request_type=request_type,
            reason_id=reason_id,
            description=description,
            media_urls=json.dumps(list(media_urls or [])),
            status=ReturnStatus.PENDING.value,
            eligible_for_refund=RequestType(request_type) != RequestType.REPLACEMENT,
            return_policy=policy,
            active_item_key=order_item_id,
            created_at=now,
            status_updated_at=now,
            updated_at=now,
        )
        request.add_status_history(
            StatusHistory(
                sequence=1,
                previous_status=None,
                new_status=ReturnStatus.PENDING.value,
                changed_by=buyer_id,
                notes="Return request created",
                created_at=now,
            )
        )
        request.raise_(
            ReturnRequested(
                return_request_id=str(request.id),
                order_id=str(order_id),
                order_item_id=str(order_item_id),
                buyer_id=str(buyer_id),
                seller_id=str(seller_id),
                request_type=request_type,
                created_at=now,
            )
        )
        return request

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def latest_history(self) -> StatusHistory | None:
        history = list(self.status_history or [])
        if not history:
            return None
        return max(history, key=lambda h: h.sequence)

    def ordered_history(self) -> list[StatusHistory]:
        return sorted(self.status_history or [], key=lambda h: h.sequence)

    def ordered_messages(self) -> list[ReturnMessage]:
        return sorted(self.messages or [], key=lambda m: m.created_at)

    def media(self) -> list[str]:
        return json.loads(self.media_urls or "[]")

    def is_terminal(self) -> bool:
        return ReturnStatus(self.status) in TERMINAL_STATUSES

    def is_active(self) -> bool:
        return ReturnStatus(self.status) not in INACTIVE_STATUSES

    def item_outcome(self) -> str:
        return _ITEM_OUTCOME[RequestType(self.request_type)]

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def assert_can_transition(self, target_status: ReturnStatus) -> None:
        current = ReturnStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransitionError(current.value, target_status.value)

        allowed_types = _TYPE_RESTRICTED.get(target_status)
        if allowed_types and RequestType(self.request_type) not in allowed_types:
            raise InvalidTransitionError(
                current.value,
                target_status.value,
                f"Status {target_status.value} does not apply to {self.request_type} requests",
            )

    def _transition(self, target_status: ReturnStatus, changed_by: str, notes: str | None = None) -> None:
        self.assert_can_transition(target_status)

        previous = self.status
        now = datetime.now(UTC)
        notes = notes or f"Status updated to {target_status.value}"
        latest = self.latest_history()

        with atomic_change(self):
            self.status = target_status.value
            self.status_updated_at = now
            self.updated_at = now
            if target_status == ReturnStatus.ITEM_RECEIVED:
                self.received_at = now
            elif target_status == ReturnStatus.COMPLETED:
                self.completed_at = now
            elif target_status == ReturnStatus.CANCELLED:
                self.cancelled_at = now
            if target_status in INACTIVE_STATUSES:
                self.active_item_key = None
            self.add_status_history(
                StatusHistory(
                    sequence=(latest.sequence if latest else 0) + 1,
                    previous_status=previous,
                    new_status=target_status.value,
                    changed_by=changed_by,
                    notes=notes,
                    created_at=now,
                )
            )

        self.raise_(
            ReturnStatusChanged(
                return_request_id=str(self.id),
                order_id=str(self.order_id),
                order_item_id=str(self.order_item_id),
                buyer_id=str(self.buyer_id),
                seller_id=str(self.seller_id),
                request_type=self.request_type,
                previous_status=previous,
                new_status=target_status.value,
                changed_by=str(changed_by),
                notes=notes,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def update_status(self, target_status: ReturnStatus, changed_by: str, notes: str | None = None) -> None:
        """Apply any transition the state machine allows."""
        self.assert_can_transition(target_status)
        if target_status == ReturnStatus.REJECTED and not (notes and notes.strip()):
            raise ValidationError({"notes": ["A reason is required to reject a return request"]})
        if target_status == ReturnStatus.CANCELLED:
            self.cancellation_reason = notes
        self._transition(target_status, changed_by, notes)

    def cancel(self, changed_by: str, cancelled_by: Party, reason: str) -> None:
        """Withdraw the request. Only possible before the item ships back."""
        if not (reason and reason.strip()):
            raise ValidationError({"reason": ["A cancellation reason is required"]})

        current = ReturnStatus(self.status)
        if current not in BUYER_CANCELLABLE_STATUSES:
            raise InvalidTransitionError(
                current.value,
                ReturnStatus.CANCELLED.value,
                f"Return request cannot be cancelled once it is {current.value}",
            )

        self.cancellation_reason = reason
        self._transition(ReturnStatus.CANCELLED, changed_by, f"Cancelled by {cancelled_by.value}: {reason}")

    def add_return_tracking(
        self,
        changed_by: str,
        tracking_number: str | None,
        courier_name: str | None,
        tracking_url: str | None = None,
    ) -> None:
        """Record the buyer's outbound shipment and move to ITEM_IN_TRANSIT."""
        self.assert_can_transition(ReturnStatus.ITEM_IN_TRANSIT)
        self.return_tracking = _tracking(tracking_number, courier_name, tracking_url)
        self._transition(
            ReturnStatus.ITEM_IN_TRANSIT,
            changed_by,
            f"Return shipment initiated with {courier_name} ({tracking_number})",
        )

    def add_replacement_tracking(
        self,
        changed_by: str,
        tracking_number: str | None,
        courier_name: str | None,
        tracking_url: str | None = None,
    ) -> None:
        """Record the seller's replacement shipment and move to REPLACEMENT_IN_TRANSIT."""
        self.assert_can_transition(ReturnStatus.REPLACEMENT_IN_TRANSIT)
        self.replacement_tracking = _tracking(tracking_number, courier_name, tracking_url)
        self._transition(
            ReturnStatus.REPLACEMENT_IN_TRANSIT,
            changed_by,
            f"Replacement shipped with {courier_name} ({tracking_number})",
        )

    def mark_received(self, changed_by: str, condition: str | None, notes: str | None = None) -> None:
        if not (condition and condition.strip()):
            raise ValidationError({"condition": ["Item condition is required"]})
        self.assert_can_transition(ReturnStatus.ITEM_RECEIVED)
        self.item_condition = condition
        self._transition(
            ReturnStatus.ITEM_RECEIVED,
            changed_by,
            notes or f"Item received in {condition} condition",
        )

    def complete(self, changed_by: str, notes: str | None = None) -> None:
        self._transition(ReturnStatus.COMPLETED, changed_by, notes or "Return process completed")

    # -------------------------------------------------------------------
    # Settlement bookkeeping
    # -------------------------------------------------------------------
    def record_refund(self, amount: float, method: str, status: RefundStatus) -> None:
        self.refund_amount = amount
        self.refund_method = method
        self.refund_status = status.value
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------
    def post_message(
        self,
        sender_id: str,
        sender_role: Party,
        message: str,
        media_urls: list[str] | None = None,
    ) -> ReturnMessage:
        if not (message and message.strip()):
            raise ValidationError({"message": ["Message cannot be empty"]})

        now = datetime.now(UTC)
        entry = ReturnMessage(
            sender_id=sender_id,
            sender_role=sender_role.value,
            message=message.strip(),
            media_urls=json.dumps(list(media_urls or [])),
            read_by=json.dumps([str(sender_id)]),
            created_at=now,
        )
        self.add_messages(entry)
        self.updated_at = now
        self.raise_(
            ReturnMessagePosted(
                return_request_id=str(self.id),
                message_id=str(entry.id),
                sender_id=str(sender_id),
                sender_role=sender_role.value,
                buyer_id=str(self.buyer_id),
                seller_id=str(self.seller_id),
                posted_at=now,
            )
        )
        return entry

    def mark_thread_read(self, reader_id: str) -> int:
        """Mark every message from someone else as read by `reader_id`. Returns how many changed."""
        changed = 0
        for entry in self.messages or []:
            if str(entry.sender_id) == str(reader_id) or entry.is_read_by(reader_id):
                continue
            readers = json.loads(entry.read_by or "[]")
            readers.append(str(reader_id))
            entry.read_by = json.dumps(readers)
            changed += 1
        return changed


def _tracking(tracking_number, courier_name, tracking_url) -> ShipmentTracking:
    if not (tracking_number and tracking_number.strip()) or not (courier_name and courier_name.strip()):
        raise ValidationError({"tracking": ["Tracking number and courier name are required"]})
    return ShipmentTracking(
        tracking_number=tracking_number.strip(),
        courier_name=courier_name.strip(),
        tracking_url=tracking_url,
        shipped_at=datetime.now(UTC),
    )
