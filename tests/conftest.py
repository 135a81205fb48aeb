import json
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the config overlay before the domain is imported anywhere."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = Path(item.fspath)

        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def aftersales_bed():
    from aftersales.domain import aftersales

    bed = DomainFixture(aftersales)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(scope="session", autouse=True)
def setup_db(aftersales_bed):
    from aftersales.domain import aftersales
    from aftersales.utils.db import drop_db, setup_db

    setup_db(aftersales)

    yield

    drop_db(aftersales)


@pytest.fixture(autouse=True)
def _ctx(aftersales_bed):
    with aftersales_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def run_around_tests(_ctx):
    """Fixture to automatically cleanup infrastructure after every test"""
    from aftersales.channel import reset_channels
    from aftersales.gateway import reset_gateway

    reset_channels()
    reset_gateway()

    yield

    from protean import current_domain

    # Clear all databases
    for _, provider in current_domain.providers.items():
        provider._data_reset()

    # Drain event stores
    current_domain.event_store.store._data_reset()

    reset_channels()
    reset_gateway()


# ---------------------------------------------------------------------------
# Marketplace seeding
# ---------------------------------------------------------------------------
class Marketplace:
    """Seeds users, policies, reasons and delivered orders through commands."""

    def user(self, role="buyer", name=None, is_co_admin=False):
        from protean import current_domain

        from aftersales.identity.user import RegisterUser, User

        suffix = uuid4().hex[:8]
        user_id = current_domain.process(
            RegisterUser(
                name=name or f"{role}-{suffix}",
                email=f"{role}-{suffix}@example.com",
                role=role,
                is_co_admin=is_co_admin,
            ),
            asynchronous=False,
        )
        return current_domain.repository_for(User).get(user_id)

    def reason(self, admin, category="all", text="Item is defective", display_order=0):
        from protean import current_domain

        from aftersales.policy.management import AddReturnReason

        return current_domain.process(
            AddReturnReason(
                actor_id=str(admin.id),
                reason_text=text,
                category=category,
                display_order=display_order,
            ),
            asynchronous=False,
        )

    def policy(self, admin, **fields):
        from protean import current_domain

        from aftersales.policy.management import DefineReturnPolicy

        if "non_returnable_items" in fields and not isinstance(fields["non_returnable_items"], str):
            fields["non_returnable_items"] = json.dumps(fields["non_returnable_items"])
        return current_domain.process(
            DefineReturnPolicy(actor_id=str(admin.id), **fields),
            asynchronous=False,
        )

    def order(
        self,
        buyer,
        sellers,
        price=500.0,
        quantity=1,
        payment_method="cod",
        payment_transaction_id=None,
        wallet_coins_used=0.0,
        delivered_days_ago=1,
    ):
        """Place an order with one item per seller and deliver it `delivered_days_ago` days back.

        `delivered_days_ago=None` leaves the order undelivered.
        """
        from protean import current_domain

        from aftersales.order.order import Order
        from aftersales.order.placement import MarkOrderDelivered, PlaceOrder

        if not isinstance(sellers, (list, tuple)):
            sellers = [sellers]
        items = [
            {
                "product_id": f"prod-{uuid4().hex[:8]}",
                "product_name": f"Product {index + 1}",
                "seller_id": str(seller.id),
                "category_id": "cat-general",
                "quantity": quantity,
                "price": price,
            }
            for index, seller in enumerate(sellers)
        ]
        order_id = current_domain.process(
            PlaceOrder(
                buyer_id=str(buyer.id),
                items=json.dumps(items),
                payment_method=payment_method,
                payment_transaction_id=payment_transaction_id,
                wallet_coins_used=wallet_coins_used,
            ),
            asynchronous=False,
        )
        if delivered_days_ago is not None:
            current_domain.process(
                MarkOrderDelivered(
                    order_id=order_id,
                    actor_id=str(sellers[0].id),
                    delivered_at=datetime.now(UTC) - timedelta(days=delivered_days_ago),
                ),
                asynchronous=False,
            )
        return current_domain.repository_for(Order).get(order_id)

    def return_request(self, buyer, order, reason_id, request_type="refund", item=None):
        from protean import current_domain

        from aftersales.returns.creation import CreateReturnRequest

        item = item or order.items[0]
        return current_domain.process(
            CreateReturnRequest(
                buyer_id=str(buyer.id),
                order_id=str(order.id),
                order_item_id=str(item.id),
                request_type=request_type,
                reason_id=reason_id,
                description="Stopped working after two days",
            ),
            asynchronous=False,
        )


@pytest.fixture()
def marketplace():
    return Marketplace()


@pytest.fixture()
def admin(marketplace):
    return marketplace.user("admin")


@pytest.fixture()
def buyer(marketplace):
    return marketplace.user("buyer")


@pytest.fixture()
def seller(marketplace):
    return marketplace.user("seller")


@pytest.fixture()
def reason_id(marketplace, admin):
    return marketplace.reason(admin)


@pytest.fixture()
def default_policy(marketplace, admin):
    """The system-wide 7 day policy."""
    return marketplace.policy(admin, return_window_days=7)


@pytest.fixture()
def push():
    from aftersales.channel import ChannelType, get_channel

    return get_channel(ChannelType.PUSH.value)


@pytest.fixture()
def email():
    from aftersales.channel import ChannelType, get_channel

    return get_channel(ChannelType.EMAIL.value)


@pytest.fixture()
def gateway():
    from aftersales.gateway import set_gateway
    from aftersales.gateway.fake_adapter import FakeGateway

    fake = FakeGateway()
    set_gateway(fake)
    return fake
