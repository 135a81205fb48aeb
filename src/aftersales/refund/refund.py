"""ReturnRefund aggregate — one settlement attempt for a return request.

A request accumulates several rows only when earlier attempts failed; the
most recent row is authoritative.

State Machine:
    PROCESSING → COMPLETED
    PROCESSING → FAILED
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from aftersales.domain import aftersales
from aftersales.refund.events import RefundCompleted, RefundFailed
from aftersales.returns.return_request import RefundMethod, RefundStatus

_VALID_TRANSITIONS = {
    RefundStatus.PROCESSING: {RefundStatus.COMPLETED, RefundStatus.FAILED},
    RefundStatus.COMPLETED: set(),  # Terminal
    RefundStatus.FAILED: set(),  # Terminal
}


@aftersales.aggregate
class ReturnRefund:
    return_request_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.0)
    method = String(max_length=30, choices=RefundMethod, required=True)
    status = String(max_length=20, choices=RefundStatus, default=RefundStatus.PROCESSING.value)
    attempt = Integer(default=1, min_value=1)
    external_refund_id = String(max_length=255)
    notes = Text()
    failure_reason = Text()
    # The gateway never answered, so the money may have moved anyway
    timed_out = Boolean(default=False)
    created_at = DateTime()
    processed_at = DateTime()

    @classmethod
    def start(cls, return_request_id: str, amount: float, method: str, attempt: int = 1):
        return cls(
            return_request_id=return_request_id,
            amount=amount,
            method=method,
            status=RefundStatus.PROCESSING.value,
            attempt=attempt,
            created_at=datetime.now(UTC),
        )

    def _assert_can_transition(self, target_status: RefundStatus) -> None:
        current = RefundStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition refund from {current.value} to {target_status.value}"]})

    def accept(self, external_refund_id: str, notes: str | None = None) -> None:
        """The gateway took the refund but has not settled it yet. Stays PROCESSING."""
        self.external_refund_id = external_refund_id
        self.notes = notes

    def complete(self, external_refund_id: str | None = None, notes: str | None = None) -> None:
        self._assert_can_transition(RefundStatus.COMPLETED)
        now = datetime.now(UTC)
        self.status = RefundStatus.COMPLETED.value
        self.external_refund_id = external_refund_id or self.external_refund_id
        if notes:
            self.notes = notes
        self.processed_at = now
        self.raise_(
            RefundCompleted(
                refund_id=str(self.id),
                return_request_id=str(self.return_request_id),
                amount=self.amount,
                method=self.method,
                external_refund_id=self.external_refund_id,
                completed_at=now,
            )
        )

    def fail(self, reason: str, notes: str | None = None, timed_out: bool = False) -> None:
        self._assert_can_transition(RefundStatus.FAILED)
        now = datetime.now(UTC)
        self.status = RefundStatus.FAILED.value
        self.failure_reason = reason
        self.timed_out = timed_out
        self.notes = notes or reason
        self.processed_at = now
        self.raise_(
            RefundFailed(
                refund_id=str(self.id),
                return_request_id=str(self.return_request_id),
                amount=self.amount,
                method=self.method,
                reason=reason,
                failed_at=now,
            )
        )


@aftersales.repository(part_of=ReturnRefund)
class ReturnRefundRepository:
    def for_request(self, return_request_id: str) -> list[ReturnRefund]:
        refunds = self._dao.query.filter(return_request_id=str(return_request_id)).all().items
        return sorted(refunds, key=lambda r: (r.attempt, r.created_at))

    def latest_for(self, return_request_id: str) -> ReturnRefund | None:
        refunds = self.for_request(return_request_id)
        return refunds[-1] if refunds else None
