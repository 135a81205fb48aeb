"""Event handler — Notification fan-out for order status changes.

OrderStatusChanged reaches the buyer, every seller on the order and every
admin; SellerOrderStatusChanged reaches the seller whose sub-order moved.
"""

import json

import structlog
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.notification.fanout import notify, notify_admins, notify_many
from aftersales.notification.notification import NotificationType
from aftersales.order.events import OrderStatusChanged, SellerOrderStatusChanged
from aftersales.order.order import Order

logger = structlog.get_logger(__name__)


def _label(status: str) -> str:
    return status.replace("_", " ")


@aftersales.event_handler(part_of=Order)
class OrderNotificationsHandler:
    @handle(OrderStatusChanged)
    def on_order_status_changed(self, event: OrderStatusChanged) -> None:
        order_id = str(event.order_id)
        metadata = {
            "order_id": order_id,
            "previous_status": event.previous_status,
            "status": event.new_status,
        }
        try:
            notify(
                str(event.buyer_id),
                NotificationType.ORDER_STATUS.value,
                f"Your order {order_id} is now {_label(event.new_status)}.",
                metadata=metadata,
                link=f"/orders/{order_id}",
            )
            notify_many(
                json.loads(event.seller_ids or "[]"),
                NotificationType.ORDER_STATUS.value,
                f"Order {order_id} is now {_label(event.new_status)}.",
                metadata=metadata,
                link=f"/seller/orders/{order_id}",
            )
            notify_admins(
                NotificationType.ORDER_STATUS.value,
                f"Order {order_id} moved from {_label(event.previous_status)} to {_label(event.new_status)}.",
                metadata=metadata,
                link=f"/admin/orders/{order_id}",
                send_email=False,
            )
        except Exception as exc:
            logger.error("Order status notification failed", order_id=order_id, error=str(exc))

    @handle(SellerOrderStatusChanged)
    def on_seller_order_status_changed(self, event: SellerOrderStatusChanged) -> None:
        order_id = str(event.order_id)
        try:
            notify(
                str(event.seller_id),
                NotificationType.SELLER_ORDER.value,
                f"Your part of order {order_id} is now {_label(event.new_status)}.",
                metadata={
                    "order_id": order_id,
                    "seller_order_id": str(event.seller_order_id),
                    "status": event.new_status,
                },
                link=f"/seller/orders/{order_id}",
                send_email=True,
            )
        except Exception as exc:
            logger.error(
                "Seller order notification failed",
                order_id=order_id,
                seller_order_id=str(event.seller_order_id),
                error=str(exc),
            )
