"""Order domain events raised while order, sub-order and item statuses move."""

from protean.fields import DateTime, Identifier, String, Text

from aftersales.domain import aftersales


@aftersales.event(part_of="Order")
class OrderStatusChanged:
    """The order-level status changed, directly or by promotion from its sub-orders."""

    __version__ = 1

    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    seller_ids = Text()  # JSON list of seller ids on the order
    changed_at = DateTime(required=True)


@aftersales.event(part_of="Order")
class SellerOrderStatusChanged:
    """Every item of a seller's sub-order reached the same status."""

    __version__ = 1

    order_id = Identifier(required=True)
    seller_order_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    previous_status = String()
    new_status = String(required=True)
    changed_at = DateTime(required=True)

