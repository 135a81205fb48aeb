"""Shared BDD fixtures and step definitions for the return lifecycle."""

from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when

from aftersales.notification.notification import Notification
from aftersales.order.order import Order
from aftersales.refund.refund import ReturnRefund
from aftersales.returns.return_request import ReturnRequest
from aftersales.returns.shipping import AddReturnTracking, MarkReturnReceived
from aftersales.returns.transitions import UpdateReturnStatus
from aftersales.wallet.wallet import Wallet


@pytest.fixture()
def context():
    """Holds the actors, the order and the request a scenario works on."""
    return {"error": None}


def move_request(context, actor, status):
    try:
        current_domain.process(
            UpdateReturnStatus(
                return_request_id=context["request_id"],
                actor_id=str(actor.id),
                status=status,
            ),
            asynchronous=False,
        )
        context["error"] = None
    except ValidationError as exc:
        context["error"] = exc


def _request(context):
    return current_domain.repository_for(ReturnRequest).get(context["request_id"])


def _notification_types(user):
    return [n.type for n in current_domain.repository_for(Notification).for_user(str(user.id))]


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("a marketplace with a {days:d} day return policy"))
def marketplace_with_policy(context, marketplace, days):
    context["admin"] = marketplace.user("admin")
    context["buyer"] = marketplace.user("buyer")
    context["seller"] = marketplace.user("seller")
    context["reason_id"] = marketplace.reason(context["admin"])
    marketplace.policy(context["admin"], return_window_days=days)


@given(parsers.cfparse("a cash on delivery order delivered {days:d} days ago for {price:f}"))
def delivered_cod_order(context, marketplace, days, price):
    context["order"] = marketplace.order(
        context["buyer"],
        context["seller"],
        price=price,
        payment_method="cod",
        delivered_days_ago=days,
    )


@given(parsers.cfparse("the order was delivered {days:d} days ago"))
def redeliver_order(context, days):
    repo = current_domain.repository_for(Order)
    order = repo.get(str(context["order"].id))
    order.mark_delivered(datetime.now(UTC) - timedelta(days=days))
    repo.add(order)
    context["order"] = order


@given(parsers.cfparse('the buyer has requested a "{request_type}"'))
def buyer_requested(context, marketplace, request_type):
    context["request_id"] = marketplace.return_request(
        context["buyer"], context["order"], context["reason_id"], request_type=request_type
    )


@given("the returned item has been received by the seller")
def item_received(context):
    move_request(context, context["seller"], "approved")
    current_domain.process(
        AddReturnTracking(
            return_request_id=context["request_id"],
            actor_id=str(context["buyer"].id),
            tracking_number="AWB-BDD-1",
            courier_name="BlueDart",
        ),
        asynchronous=False,
    )
    current_domain.process(
        MarkReturnReceived(
            return_request_id=context["request_id"],
            actor_id=str(context["seller"].id),
            condition="good",
        ),
        asynchronous=False,
    )


@given(parsers.cfparse('the seller moves the request to "{status}"'))
@when(parsers.cfparse('the seller moves the request to "{status}"'))
def seller_moves(context, status):
    move_request(context, context["seller"], status)


@when(parsers.cfparse('the admin moves the request to "{status}"'))
def admin_moves(context, status):
    move_request(context, context["admin"], status)


@when("the buyer ships the item back")
def buyer_ships_back(context):
    try:
        current_domain.process(
            AddReturnTracking(
                return_request_id=context["request_id"],
                actor_id=str(context["buyer"].id),
                tracking_number="AWB-BDD-2",
                courier_name="Delhivery",
            ),
            asynchronous=False,
        )
        context["error"] = None
    except ValidationError as exc:
        context["error"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the request status is "{status}"'))
def request_status_is(context, status):
    assert _request(context).status == status


@then("the transition is refused")
def transition_refused(context):
    assert context["error"] is not None
    assert "status" in context["error"].messages


@then(parsers.cfparse('the {party} has a "{kind}" notification'))
def party_has_notification(context, party, kind):
    assert kind in _notification_types(context[party])


@then(parsers.cfparse('the latest refund is "{status}"'))
def latest_refund_is(context, status):
    latest = current_domain.repository_for(ReturnRefund).latest_for(context["request_id"])
    assert latest is not None
    assert latest.status == status


@then(parsers.cfparse("the buyer's wallet balance is {amount:f}"))
def wallet_balance_is(context, amount):
    wallet = current_domain.repository_for(Wallet).for_user(str(context["buyer"].id))
    assert wallet.balance == pytest.approx(amount)


@then(parsers.cfparse('the request refund status is "{status}"'))
def refund_status_is(context, status):
    assert _request(context).refund_status == status
