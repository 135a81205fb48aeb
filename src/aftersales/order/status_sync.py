"""Order status synchronizer.

ChangeOrderStatus moves the whole order; UpdateOrderItemStatus moves one
item and lets sub-order and order statuses catch up bottom-up. Cancelling
an order that spent wallet coins gives the coins back first; if that
credit fails the cancellation still goes through and the failure is
logged. Buyer, seller and admin notifications follow from the events.
"""

import structlog
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.errors import AccessDeniedError
from aftersales.identity.user import User, load_actor
from aftersales.order.order import BUYER_CANCELLABLE_STATUSES, Order, OrderStatus, load_order
from aftersales.wallet.ledger import adjust_wallet
from aftersales.wallet.wallet import ReferenceType, TransactionType

logger = structlog.get_logger(__name__)


@aftersales.command(part_of="Order")
class ChangeOrderStatus:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    status = String(required=True, max_length=50)


@aftersales.command(part_of="Order")
class UpdateOrderItemStatus:
    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    status = String(required=True, max_length=50)


def parse_order_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError({"status": [f"Unknown order status: {value}"]}) from None


def restore_wallet_coins(order: Order) -> None:
    """Credit coins spent on a cancelled order back to the buyer. Failures are logged only."""
    coins = order.wallet_coins_used or 0
    if coins <= 0:
        return
    try:
        adjust_wallet(
            user_id=str(order.buyer_id),
            amount=coins,
            transaction_type=TransactionType.CREDIT.value,
            reference_type=ReferenceType.ORDER_CANCELLATION.value,
            reference_id=str(order.id),
            description=f"Refund of {coins:g} wallet coins for cancelled order {order.id}",
        )
    except Exception as exc:
        logger.error(
            "Wallet refund on order cancellation failed",
            order_id=str(order.id),
            buyer_id=str(order.buyer_id),
            coins=coins,
            error=str(exc),
        )


def apply_order_status(order: Order, target: OrderStatus) -> bool:
    """Move the order to `target`, restoring wallet coins first on cancellation."""
    if OrderStatus(order.status) == target:
        return False
    if target == OrderStatus.CANCELLED:
        restore_wallet_coins(order)
    return order.change_status(target)


def _authorize_order_change(actor: User, order: Order, target: OrderStatus) -> None:
    if actor.is_admin():
        return
    if str(actor.id) in order.seller_ids():
        return
    if (
        str(actor.id) == str(order.buyer_id)
        and target == OrderStatus.CANCELLED
        and OrderStatus(order.status) in BUYER_CANCELLABLE_STATUSES
    ):
        return
    raise AccessDeniedError("You are not allowed to change the status of this order")


@aftersales.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(ChangeOrderStatus)
    def change_order_status(self, command):
        actor = load_actor(command.actor_id)
        order = load_order(command.order_id)
        target = parse_order_status(command.status)
        _authorize_order_change(actor, order, target)

        if apply_order_status(order, target):
            current_domain.repository_for(Order).add(order)
        return order.status

    @handle(UpdateOrderItemStatus)
    def update_item_status(self, command):
        actor = load_actor(command.actor_id)
        order = load_order(command.order_id)
        target = parse_order_status(command.status)

        item = order.item(command.order_item_id)
        if item is None:
            raise ValidationError({"order_item_id": ["Order item not found"]})
        if not actor.is_admin() and str(item.seller_id) != str(actor.id):
            raise AccessDeniedError("Only the item's seller or an admin can update it")

        if target == OrderStatus.CANCELLED and OrderStatus(order.status) != OrderStatus.CANCELLED:
            # Coins come back only when the last item's cancellation cancels the order
            remaining = [i for i in order.items if str(i.id) != str(item.id) and i.status != OrderStatus.CANCELLED.value]
            if not remaining:
                restore_wallet_coins(order)

        order.update_item_status(str(item.id), target)
        current_domain.repository_for(Order).add(order)
        return order.status
