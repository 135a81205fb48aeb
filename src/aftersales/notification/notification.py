"""Notification aggregate — the durable in-app notice behind every fan-out.

A notification is written once per recipient per event and is the record
of truth; push and email are attempts made after it exists. The only
change after creation is the recipient marking it read.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.fields import Boolean, DateTime, Identifier, String, Text

from aftersales.domain import aftersales
from aftersales.errors import AccessDeniedError


class NotificationType(Enum):
    RETURN_REQUEST = "return_request"
    RETURN_APPROVED = "return_approved"
    RETURN_REJECTED = "return_rejected"
    RETURN_IN_TRANSIT = "return_in_transit"
    RETURN_ITEM_RECEIVED = "return_item_received"
    REFUND_INITIATED = "refund_initiated"
    REFUND_PROCESSED = "refund_processed"
    REFUND_FAILED = "refund_failed"
    REPLACEMENT_SHIPPED = "replacement_shipped"
    RETURN_COMPLETED = "return_completed"
    RETURN_CANCELLED = "return_cancelled"
    RETURN_MESSAGE = "return_message"
    ORDER_STATUS = "order_status"
    SELLER_ORDER = "seller_order"


TITLES = {
    NotificationType.RETURN_REQUEST: "New Return Request",
    NotificationType.RETURN_APPROVED: "Return Request Approved",
    NotificationType.RETURN_REJECTED: "Return Request Rejected",
    NotificationType.RETURN_IN_TRANSIT: "Return Shipment Initiated",
    NotificationType.RETURN_ITEM_RECEIVED: "Return Item Received",
    NotificationType.REFUND_INITIATED: "Refund Initiated",
    NotificationType.REFUND_PROCESSED: "Refund Processed",
    NotificationType.REFUND_FAILED: "Refund Failed",
    NotificationType.REPLACEMENT_SHIPPED: "Replacement Shipped",
    NotificationType.RETURN_COMPLETED: "Return Completed",
    NotificationType.RETURN_CANCELLED: "Return Request Cancelled",
    NotificationType.RETURN_MESSAGE: "New Message",
    NotificationType.ORDER_STATUS: "Order Status Updated",
    NotificationType.SELLER_ORDER: "Seller Order Updated",
}

# Kinds that also go out by email unless the caller says otherwise
EMAIL_TYPES = {
    NotificationType.RETURN_REQUEST,
    NotificationType.RETURN_APPROVED,
    NotificationType.RETURN_REJECTED,
    NotificationType.REFUND_PROCESSED,
    NotificationType.RETURN_COMPLETED,
    NotificationType.ORDER_STATUS,
}


@aftersales.aggregate
class Notification:
    user_id: Identifier(required=True)
    type: String(max_length=50, choices=NotificationType, required=True)
    title: String(max_length=255, required=True)
    message: Text(required=True)
    read: Boolean(default=False)
    link: String(max_length=500)
    payload: Text()  # JSON object, exposed as `metadata`
    created_at: DateTime()
    read_at: DateTime()

    @classmethod
    def create(cls, user_id, notification_type, message, title=None, link=None, metadata=None):
        kind = NotificationType(notification_type)
        return cls(
            user_id=user_id,
            type=kind.value,
            title=title or TITLES[kind],
            message=message,
            read=False,
            link=link,
            payload=json.dumps(metadata or {}, default=str),
            created_at=datetime.now(UTC),
        )

    def details(self) -> dict:
        return json.loads(self.payload or "{}")

    def mark_read(self, reader_id) -> None:
        if str(reader_id) != str(self.user_id):
            raise AccessDeniedError("Only the recipient can mark a notification as read")
        if self.read:
            return
        self.read = True
        self.read_at = datetime.now(UTC)


@aftersales.repository(part_of=Notification)
class NotificationRepository:
    def for_user(self, user_id: str, unread_only: bool = False) -> list[Notification]:
        filters = {"user_id": str(user_id)}
        if unread_only:
            filters["read"] = False
        notifications = self._dao.query.filter(**filters).all().items
        return sorted(notifications, key=lambda n: n.created_at, reverse=True)
