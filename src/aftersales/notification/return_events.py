"""Event handler — Notification fan-out for the return lifecycle.

Listens for ReturnRequested (buyer confirmation by email, seller in-app and
push), ReturnStatusChanged (the counterparty of each transition) and
ReturnMessagePosted (everyone on the thread except the sender).
"""

import structlog
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.notification.fanout import notify, notify_admins
from aftersales.notification.notification import NotificationType
from aftersales.returns.events import ReturnMessagePosted, ReturnRequested, ReturnStatusChanged
from aftersales.returns.return_request import Party, ReturnRequest, ReturnStatus

logger = structlog.get_logger(__name__)


def buyer_link(return_request_id) -> str:
    return f"/returns/{return_request_id}"


def seller_link(return_request_id) -> str:
    return f"/seller/returns/{return_request_id}"


def admin_link(return_request_id) -> str:
    return f"/admin/returns/{return_request_id}"


# Target status -> (recipient, kind, message template)
_STATUS_NOTICES = {
    ReturnStatus.APPROVED: (
        Party.BUYER,
        NotificationType.RETURN_APPROVED,
        "Your {request_type} request has been approved. Please ship the item back.",
    ),
    ReturnStatus.REJECTED: (
        Party.BUYER,
        NotificationType.RETURN_REJECTED,
        "Your {request_type} request has been rejected. Reason: {notes}",
    ),
    ReturnStatus.ITEM_IN_TRANSIT: (
        Party.SELLER,
        NotificationType.RETURN_IN_TRANSIT,
        "The buyer has shipped the returned item. {notes}",
    ),
    ReturnStatus.ITEM_RECEIVED: (
        Party.BUYER,
        NotificationType.RETURN_ITEM_RECEIVED,
        "The seller has received your returned item.",
    ),
    ReturnStatus.REFUND_INITIATED: (
        Party.BUYER,
        NotificationType.REFUND_INITIATED,
        "Your refund has been initiated.",
    ),
    ReturnStatus.REFUND_PROCESSED: (
        Party.BUYER,
        NotificationType.REFUND_PROCESSED,
        "Your refund has been processed.",
    ),
    ReturnStatus.REPLACEMENT_IN_TRANSIT: (
        Party.BUYER,
        NotificationType.REPLACEMENT_SHIPPED,
        "Your replacement item is on its way. {notes}",
    ),
    ReturnStatus.COMPLETED: (
        Party.BUYER,
        NotificationType.RETURN_COMPLETED,
        "Your {request_type} request has been completed.",
    ),
    ReturnStatus.CANCELLED: (
        Party.SELLER,
        NotificationType.RETURN_CANCELLED,
        "A {request_type} request has been cancelled. {notes}",
    ),
}


@aftersales.event_handler(part_of=ReturnRequest)
class ReturnNotificationsHandler:
    """Tells every interested party about return lifecycle events."""

    @handle(ReturnRequested)
    def on_return_requested(self, event: ReturnRequested) -> None:
        request_id = str(event.return_request_id)
        metadata = {"return_request_id": request_id, "order_id": str(event.order_id)}
        try:
            notify(
                str(event.buyer_id),
                NotificationType.RETURN_REQUEST.value,
                f"Your {event.request_type} request has been received and is awaiting review.",
                metadata=metadata,
                link=buyer_link(request_id),
                title="Return Request Submitted",
            )
            notify(
                str(event.seller_id),
                NotificationType.RETURN_REQUEST.value,
                f"A buyer has requested a {event.request_type} for order {event.order_id}.",
                metadata=metadata,
                link=seller_link(request_id),
                send_email=False,
            )
        except Exception as exc:
            logger.error("Return request notification failed", return_request_id=request_id, error=str(exc))

    @handle(ReturnStatusChanged)
    def on_status_changed(self, event: ReturnStatusChanged) -> None:
        notice = _STATUS_NOTICES.get(ReturnStatus(event.new_status))
        if notice is None:
            return
        recipient, kind, template = notice
        request_id = str(event.return_request_id)
        message = template.format(request_type=event.request_type, notes=event.notes or "").strip()
        metadata = {
            "return_request_id": request_id,
            "order_id": str(event.order_id),
            "status": event.new_status,
        }

        try:
            if recipient == Party.BUYER:
                notify(str(event.buyer_id), kind.value, message, metadata=metadata, link=buyer_link(request_id))
            else:
                notify(str(event.seller_id), kind.value, message, metadata=metadata, link=seller_link(request_id))

            # An admin or seller cancelling on the buyer's behalf tells the buyer too
            if ReturnStatus(event.new_status) == ReturnStatus.CANCELLED and str(event.changed_by) != str(event.buyer_id):
                notify(str(event.buyer_id), kind.value, message, metadata=metadata, link=buyer_link(request_id))
        except Exception as exc:
            logger.error(
                "Return status notification failed",
                return_request_id=request_id,
                new_status=event.new_status,
                error=str(exc),
            )

    @handle(ReturnMessagePosted)
    def on_message_posted(self, event: ReturnMessagePosted) -> None:
        request_id = str(event.return_request_id)
        metadata = {"return_request_id": request_id, "message_id": str(event.message_id)}
        message = f"New message from the {event.sender_role} on a return request."
        sender = str(event.sender_id)

        try:
            if str(event.buyer_id) != sender:
                notify(
                    str(event.buyer_id),
                    NotificationType.RETURN_MESSAGE.value,
                    message,
                    metadata=metadata,
                    link=buyer_link(request_id),
                )
            if str(event.seller_id) != sender:
                notify(
                    str(event.seller_id),
                    NotificationType.RETURN_MESSAGE.value,
                    message,
                    metadata=metadata,
                    link=seller_link(request_id),
                )
            if event.sender_role != Party.ADMIN.value:
                admins = notify_admins(
                    NotificationType.RETURN_MESSAGE.value,
                    message,
                    metadata=metadata,
                    link=admin_link(request_id),
                )
                logger.debug("Admins notified of return message", return_request_id=request_id, count=len(admins))
        except Exception as exc:
            logger.error("Return message notification failed", return_request_id=request_id, error=str(exc))

