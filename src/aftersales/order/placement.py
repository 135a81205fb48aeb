"""PlaceOrder and MarkOrderDelivered — the slice of checkout and shipping returns depend on."""

import json

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.errors import AccessDeniedError
from aftersales.identity.user import load_actor
from aftersales.order.order import Order, PaymentMethod, load_order
from aftersales.wallet.ledger import adjust_wallet
from aftersales.wallet.wallet import ReferenceType, TransactionType


@aftersales.command(part_of="Order")
class PlaceOrder:
    order_id = Identifier()
    buyer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of item dicts
    payment_method = String(max_length=30, choices=PaymentMethod, default=PaymentMethod.COD.value)
    payment_transaction_id = String(max_length=255)
    wallet_coins_used = Float(default=0.0, min_value=0.0)


@aftersales.command(part_of="Order")
class MarkOrderDelivered:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    delivered_at = DateTime()


@aftersales.command_handler(part_of=Order)
class OrderPlacementHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        load_actor(command.buyer_id)
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        if not isinstance(items_data, list):
            raise ValidationError({"items": ["Items must be a list"]})

        order = Order.place(
            buyer_id=str(command.buyer_id),
            items_data=items_data,
            payment_method=command.payment_method,
            payment_transaction_id=command.payment_transaction_id,
            wallet_coins_used=command.wallet_coins_used or 0.0,
            order_id=command.order_id,
        )
        if order.wallet_coins_used:
            adjust_wallet(
                user_id=str(order.buyer_id),
                amount=order.wallet_coins_used,
                transaction_type=TransactionType.DEBIT.value,
                reference_type=ReferenceType.ORDER_PAYMENT.value,
                reference_id=str(order.id),
                description=f"Wallet coins used for order {order.id}",
            )
        current_domain.repository_for(Order).add(order)
        return str(order.id)

    @handle(MarkOrderDelivered)
    def mark_delivered(self, command):
        actor = load_actor(command.actor_id)
        order = load_order(command.order_id)
        if not actor.is_admin() and str(actor.id) not in order.seller_ids():
            raise AccessDeniedError("Only a seller on this order or an admin can mark it delivered")

        order.mark_delivered(command.delivered_at)
        current_domain.repository_for(Order).add(order)
        return str(order.id)
