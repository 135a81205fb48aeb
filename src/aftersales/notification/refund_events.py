"""Event handler — escalates failed refund attempts to every admin."""

import structlog
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.notification.fanout import notify_admins
from aftersales.notification.notification import NotificationType
from aftersales.notification.return_events import admin_link
from aftersales.refund.events import RefundFailed
from aftersales.refund.refund import ReturnRefund

logger = structlog.get_logger(__name__)


@aftersales.event_handler(part_of=ReturnRefund)
class RefundEscalationHandler:
    @handle(RefundFailed)
    def on_refund_failed(self, event: RefundFailed) -> None:
        request_id = str(event.return_request_id)
        logger.warning(
            "Escalating failed refund to admins",
            return_request_id=request_id,
            refund_id=str(event.refund_id),
            reason=event.reason,
        )
        try:
            notify_admins(
                NotificationType.REFUND_FAILED.value,
                f"Refund of {event.amount:.2f} for return request {request_id} failed: {event.reason}",
                metadata={
                    "return_request_id": request_id,
                    "refund_id": str(event.refund_id),
                    "method": event.method,
                },
                link=admin_link(request_id),
            )
        except Exception as exc:
            logger.error("Refund failure escalation failed", return_request_id=request_id, error=str(exc))
