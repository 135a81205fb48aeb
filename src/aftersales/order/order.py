"""Order aggregate (CQRS) — the order, its per-seller sub-orders and line items.

The broader order subsystem owns checkout and shipping; this context keeps
the slice the return lifecycle reads (delivery date, payment method, item
prices) and writes (item outcome, marked-for-return, cancellation).

Status propagation is bottom-up: when every item of a SellerOrder shares a
status the SellerOrder takes it, and when every SellerOrder shares a status
the Order takes it.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String
from protean.utils.globals import current_domain

from aftersales.domain import aftersales
from aftersales.errors import NotFoundError
from aftersales.order.events import OrderStatusChanged, SellerOrderStatusChanged
from aftersales.utils.money import line_total, round_money


class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    MARKED_FOR_RETURN = "marked_for_return"
    RETURNED = "returned"
    REPLACED = "replaced"
    REFUNDED = "refunded"


class PaymentMethod(Enum):
    COD = "cod"
    RAZORPAY = "razorpay"
    CARD = "card"
    UPI = "upi"
    WALLET = "wallet"


# Orders in these states have reached the buyer
FULFILLED_STATUSES = {
    OrderStatus.DELIVERED,
    OrderStatus.COMPLETED,
    OrderStatus.MARKED_FOR_RETURN,
}

# Only a buyer may cancel, and only before shipping
BUYER_CANCELLABLE_STATUSES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}


@aftersales.entity(part_of="Order")
class SellerOrder:
    """The portion of an order fulfilled by one seller."""

    seller_id = Identifier(required=True)
    status = String(max_length=50, choices=OrderStatus, default=OrderStatus.PENDING.value)
    updated_at = DateTime()


@aftersales.entity(part_of="Order")
class OrderItem:
    product_id = Identifier()
    product_name = String(max_length=255)
    seller_id = Identifier(required=True)
    category_id = Identifier()
    seller_order_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    price = Float(required=True, min_value=0.0)
    total_price = Float()
    status = String(max_length=50, choices=OrderStatus, default=OrderStatus.PENDING.value)


@aftersales.aggregate
class Order:
    buyer_id = Identifier(required=True)
    status = String(max_length=50, choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_method = String(max_length=30, choices=PaymentMethod, default=PaymentMethod.COD.value)
    payment_transaction_id = String(max_length=255)
    wallet_coins_used = Float(default=0.0)
    total = Float(default=0.0)
    items = HasMany(OrderItem)
    seller_orders = HasMany(SellerOrder)
    delivered_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        buyer_id: str,
        items_data: list[dict],
        payment_method: str = PaymentMethod.COD.value,
        payment_transaction_id: str | None = None,
        wallet_coins_used: float = 0.0,
        order_id: str | None = None,
    ):
        """Create an order with one SellerOrder per distinct seller."""
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = datetime.now(UTC)
        kwargs = {"id": order_id} if order_id else {}
        order = cls(
            buyer_id=buyer_id,
            status=OrderStatus.PENDING.value,
            payment_method=payment_method,
            payment_transaction_id=payment_transaction_id,
            wallet_coins_used=wallet_coins_used or 0.0,
            created_at=now,
            updated_at=now,
            **kwargs,
        )

        sub_orders: dict[str, SellerOrder] = {}
        for data in items_data:
            seller_id = str(data["seller_id"])
            if seller_id not in sub_orders:
                sub_orders[seller_id] = SellerOrder(seller_id=seller_id, updated_at=now)
                order.add_seller_orders(sub_orders[seller_id])

        total = 0.0
        for data in items_data:
            fields = dict(data)
            if not fields.get("total_price"):
                fields["total_price"] = line_total(data["price"], data["quantity"])
            fields["seller_order_id"] = str(sub_orders[str(data["seller_id"])].id)
            item = OrderItem(**fields)
            order.add_items(item)
            total += item.total_price
        order.total = round_money(total)
        return order

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    def item(self, item_id: str) -> OrderItem | None:
        return next((i for i in (self.items or []) if str(i.id) == str(item_id)), None)

    def seller_order(self, seller_order_id: str) -> SellerOrder | None:
        return next((s for s in (self.seller_orders or []) if str(s.id) == str(seller_order_id)), None)

    def seller_ids(self) -> list[str]:
        return sorted({str(i.seller_id) for i in (self.items or [])})

    def is_fulfilled(self) -> bool:
        return OrderStatus(self.status) in FULFILLED_STATUSES

    # -------------------------------------------------------------------
    # Status changes
    # -------------------------------------------------------------------
    def change_status(self, target_status: OrderStatus) -> bool:
        """Move the order to `target_status`. Returns False when nothing changed."""
        previous = OrderStatus(self.status)
        if previous == target_status:
            return False
        if previous == OrderStatus.CANCELLED:
            raise ValidationError({"status": ["Order is already cancelled"]})

        now = datetime.now(UTC)
        self.status = target_status.value
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                buyer_id=str(self.buyer_id),
                previous_status=previous.value,
                new_status=target_status.value,
                seller_ids=json.dumps(self.seller_ids()),
                changed_at=now,
            )
        )
        return True

    def mark_delivered(self, delivered_at: datetime | None = None) -> None:
        """Record delivery of the whole order, down to every item and sub-order."""
        if OrderStatus(self.status) == OrderStatus.CANCELLED:
            raise ValidationError({"status": ["A cancelled order cannot be delivered"]})
        self.delivered_at = delivered_at or datetime.now(UTC)
        for item in self.items or []:
            item.status = OrderStatus.DELIVERED.value
        for sub_order in self.seller_orders or []:
            sub_order.status = OrderStatus.DELIVERED.value
            sub_order.updated_at = self.delivered_at
        self.change_status(OrderStatus.DELIVERED)

    def update_item_status(self, item_id: str, target_status: OrderStatus) -> None:
        """Set one item's status and promote sub-order and order when they converge."""
        item = self.item(item_id)
        if item is None:
            raise ValidationError({"order_item_id": ["Order item not found"]})

        item.status = target_status.value
        self.updated_at = datetime.now(UTC)
        self._promote_seller_order(item.seller_order_id)
        self._promote_order()

    def _promote_seller_order(self, seller_order_id: str) -> None:
        sub_order = self.seller_order(seller_order_id)
        if sub_order is None:
            return
        statuses = {i.status for i in (self.items or []) if str(i.seller_order_id) == str(sub_order.id)}
        if len(statuses) != 1:
            return
        (shared,) = statuses
        if sub_order.status == shared:
            return

        now = datetime.now(UTC)
        previous = sub_order.status
        sub_order.status = shared
        sub_order.updated_at = now
        self.raise_(
            SellerOrderStatusChanged(
                order_id=str(self.id),
                seller_order_id=str(sub_order.id),
                seller_id=str(sub_order.seller_id),
                previous_status=previous,
                new_status=shared,
                changed_at=now,
            )
        )

    def _promote_order(self) -> None:
        statuses = {s.status for s in (self.seller_orders or [])}
        if len(statuses) != 1:
            return
        (shared,) = statuses
        if OrderStatus(self.status) == OrderStatus.CANCELLED:
            return
        self.change_status(OrderStatus(shared))


def load_order(order_id: str) -> Order:
    try:
        return current_domain.repository_for(Order).get(str(order_id))
    except ObjectNotFoundError:
        raise NotFoundError("Order not found") from None


@aftersales.repository(part_of=Order)
class OrderRepository:
    def for_buyer(self, buyer_id: str) -> list[Order]:
        return self._dao.query.filter(buyer_id=str(buyer_id)).all().items
