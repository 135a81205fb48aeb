"""Application tests for order status synchronization and wallet coin restoration."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from aftersales.errors import AccessDeniedError
from aftersales.notification.notification import Notification
from aftersales.order.order import Order
from aftersales.order.status_sync import ChangeOrderStatus, UpdateOrderItemStatus
from aftersales.wallet.ledger import adjust_wallet
from aftersales.wallet.wallet import Wallet


def _change(order, actor, status):
    return current_domain.process(
        ChangeOrderStatus(order_id=str(order.id), actor_id=str(actor.id), status=status),
        asynchronous=False,
    )


def _update_item(order, item, actor, status):
    return current_domain.process(
        UpdateOrderItemStatus(
            order_id=str(order.id),
            order_item_id=str(item.id),
            actor_id=str(actor.id),
            status=status,
        ),
        asynchronous=False,
    )


def _wallet(user):
    return current_domain.repository_for(Wallet).for_user(str(user.id))


def _fund(user, amount):
    adjust_wallet(str(user.id), amount, "CREDIT", "adjustment", "seed", "Opening balance")


class TestWalletCoins:
    def test_order_payment_debits_coins(self, marketplace, buyer, seller):
        _fund(buyer, 100)
        marketplace.order(buyer, seller, wallet_coins_used=40, delivered_days_ago=None)
        assert _wallet(buyer).balance == 60.0

    def test_insufficient_coins_refuse_the_order(self, marketplace, buyer, seller):
        _fund(buyer, 10)
        with pytest.raises(ValidationError):
            marketplace.order(buyer, seller, wallet_coins_used=40, delivered_days_ago=None)
        assert current_domain.repository_for(Order).for_buyer(str(buyer.id)) == []

    def test_buyer_cancel_restores_coins(self, marketplace, buyer, seller):
        _fund(buyer, 100)
        order = marketplace.order(buyer, seller, wallet_coins_used=40, delivered_days_ago=None)

        status = _change(order, buyer, "cancelled")

        assert status == "cancelled"
        wallet = _wallet(buyer)
        assert wallet.balance == 100.0
        restored = wallet.transactions[-1]
        assert restored.reference_type == "order_cancellation"
        assert restored.reference_id == str(order.id)

    def test_cancelling_last_item_restores_coins(self, marketplace, buyer, seller):
        _fund(buyer, 50)
        order = marketplace.order(buyer, seller, wallet_coins_used=25, delivered_days_ago=None)

        status = _update_item(order, order.items[0], seller, "cancelled")

        assert status == "cancelled"
        assert _wallet(buyer).balance == 50.0

    def test_cancelled_order_stays_cancelled(self, marketplace, buyer, seller):
        order = marketplace.order(buyer, seller, delivered_days_ago=None)
        _change(order, buyer, "cancelled")
        with pytest.raises(ValidationError):
            _change(order, seller, "confirmed")


class TestAuthorization:
    def test_buyer_cannot_cancel_delivered_order(self, marketplace, buyer, seller):
        order = marketplace.order(buyer, seller)
        with pytest.raises(AccessDeniedError):
            _change(order, buyer, "cancelled")

    def test_stranger_cannot_change_order(self, marketplace, buyer, seller):
        stranger = marketplace.user("seller")
        order = marketplace.order(buyer, seller)
        with pytest.raises(AccessDeniedError):
            _change(order, stranger, "completed")

    def test_other_seller_cannot_update_item(self, marketplace, buyer, seller):
        other = marketplace.user("seller")
        order = marketplace.order(buyer, [seller, other])
        item = next(i for i in order.items if i.seller_id == str(seller.id))
        with pytest.raises(AccessDeniedError):
            _update_item(order, item, other, "returned")

    def test_unknown_status(self, marketplace, admin, buyer, seller):
        order = marketplace.order(buyer, seller)
        with pytest.raises(ValidationError) as exc:
            _change(order, admin, "lost")
        assert exc.value.messages["status"] == ["Unknown order status: lost"]


class TestPromotion:
    def test_items_promote_order_and_notify(self, marketplace, admin, buyer, seller):
        other = marketplace.user("seller")
        order = marketplace.order(buyer, [seller, other])

        for item in order.items:
            actor = seller if item.seller_id == str(seller.id) else other
            _update_item(order, item, actor, "completed")

        refreshed = current_domain.repository_for(Order).get(str(order.id))
        assert refreshed.status == "completed"
        assert {s.status for s in refreshed.seller_orders} == {"completed"}

        notifications = current_domain.repository_for(Notification)
        seller_notices = [n for n in notifications.for_user(str(seller.id)) if n.type == "seller_order"]
        assert len(seller_notices) == 1
        assert seller_notices[0].link == f"/seller/orders/{order.id}"
        buyer_notices = [n for n in notifications.for_user(str(buyer.id)) if n.details().get("status") == "completed"]
        assert len(buyer_notices) == 1
        admin_notices = [n for n in notifications.for_user(str(admin.id)) if n.link == f"/admin/orders/{order.id}"]
        assert len(admin_notices) == 2  # delivered, then completed
