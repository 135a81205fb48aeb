"""Integration tests for the Aftersales API endpoints via TestClient."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from aftersales.api.accounts import notification_router, user_router, wallet_router
from aftersales.api.errors import install_error_handlers
from aftersales.api.orders import order_router
from aftersales.api.policies import policy_router
from aftersales.api.returns import return_router


@pytest.fixture()
def client():
    app = FastAPI()
    for router in (return_router, order_router, policy_router, user_router, notification_router, wallet_router):
        app.include_router(router)
    install_error_handlers(app)
    return TestClient(app)


def _as(user):
    return {"X-User-Id": str(user.id)}


def _register(client, role, name):
    response = client.post("/users", json={"name": name, "email": f"{name}@example.com", "role": role})
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture()
def delivered_order(marketplace, buyer, seller, default_policy):
    return marketplace.order(buyer, seller, price=250.0)


def _create_return(client, buyer, order, reason_id, request_type="refund"):
    return client.post(
        "/returns/request",
        headers=_as(buyer),
        json={
            "orderId": str(order.id),
            "orderItemId": str(order.items[0].id),
            "requestType": request_type,
            "reasonId": reason_id,
            "description": "Arrived scratched",
            "mediaUrls": ["https://cdn.example.com/scratch.jpg"],
        },
    )


class TestSetupAPI:
    def test_register_users_and_policy(self, client):
        admin_id = _register(client, "admin", "ops-admin")

        response = client.post(
            "/return-policies",
            headers={"X-User-Id": admin_id},
            json={"returnWindowDays": 10, "nonReturnableItems": ["cat-food"]},
        )
        assert response.status_code == 201

        response = client.post(
            "/return-reasons",
            headers={"X-User-Id": admin_id},
            json={"reasonText": "Damaged in transit", "category": "all"},
        )
        assert response.status_code == 201

        reasons = client.get("/returns/reasons", params={"requestType": "refund"}).json()
        assert [r["reasonText"] for r in reasons] == ["Damaged in transit"]

    def test_buyer_cannot_add_reason(self, client, buyer):
        response = client.post("/return-reasons", headers=_as(buyer), json={"reasonText": "Nope"})
        assert response.status_code == 403

    def test_place_order(self, client, buyer, seller):
        response = client.post(
            "/orders",
            headers=_as(buyer),
            json={"items": [{"sellerId": str(seller.id), "productId": "prod-1", "quantity": 1, "price": 99.0}]},
        )
        assert response.status_code == 201
        order_id = response.json()["id"]

        response = client.post(f"/orders/{order_id}/deliver", headers=_as(seller))
        assert response.status_code == 200
        assert response.json()["status"] == "delivered"


class TestReturnRequestAPI:
    def test_create_returns_201_with_history(self, client, buyer, delivered_order, reason_id):
        response = _create_return(client, buyer, delivered_order, reason_id)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["requestType"] == "refund"
        assert body["eligibleForRefund"] is True
        assert body["mediaUrls"] == ["https://cdn.example.com/scratch.jpg"]
        assert [h["newStatus"] for h in body["statusHistory"]] == ["pending"]

    def test_duplicate_is_400(self, client, buyer, delivered_order, reason_id):
        _create_return(client, buyer, delivered_order, reason_id)
        response = _create_return(client, buyer, delivered_order, reason_id)
        assert response.status_code == 400
        assert response.json()["error"]["eligibility"] == ["A return request already exists for this item"]

    def test_missing_header_is_403(self, client, delivered_order, reason_id):
        response = client.get(f"/returns/check-eligibility/{delivered_order.id}/{delivered_order.items[0].id}")
        assert response.status_code == 403

    def test_check_eligibility(self, client, buyer, delivered_order):
        response = client.get(
            f"/returns/check-eligibility/{delivered_order.id}/{delivered_order.items[0].id}",
            headers=_as(buyer),
            params={"requestType": "return"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["eligible"] is True
        assert body["remainingDays"] == 6
        assert body["policy"]["return_window_days"] == 7

    def test_unknown_order_is_404(self, client, buyer):
        response = client.get("/returns/check-eligibility/missing/missing", headers=_as(buyer))
        assert response.status_code == 404

    def test_unknown_request_is_404(self, client, buyer):
        response = client.get("/returns/missing", headers=_as(buyer))
        assert response.status_code == 404
        assert response.json()["error"] == {"_entity": ["Return request not found"]}

    def test_outsider_gets_403(self, client, marketplace, buyer, delivered_order, reason_id):
        request_id = _create_return(client, buyer, delivered_order, reason_id).json()["id"]
        outsider = marketplace.user("buyer")
        assert client.get(f"/returns/{request_id}", headers=_as(outsider)).status_code == 403

    def test_invalid_transition_is_400(self, client, buyer, seller, delivered_order, reason_id):
        request_id = _create_return(client, buyer, delivered_order, reason_id).json()["id"]
        response = client.post(f"/returns/{request_id}/status", headers=_as(seller), json={"status": "completed"})
        assert response.status_code == 400
        assert response.json()["error"]["status"] == ["Cannot transition from pending to completed"]

    def test_full_refund_flow(self, client, buyer, seller, delivered_order, reason_id):
        request_id = _create_return(client, buyer, delivered_order, reason_id).json()["id"]

        steps = [
            (seller, "status", {"status": "approved"}),
            (buyer, "return-tracking", {"trackingNumber": "AWB9", "courierName": "BlueDart"}),
            (seller, "mark-received", {"condition": "good"}),
            (seller, "status", {"status": "refund_initiated"}),
            (seller, "status", {"status": "refund_processed"}),
            (seller, "complete", {}),
        ]
        for actor, path, payload in steps:
            response = client.post(f"/returns/{request_id}/{path}", headers=_as(actor), json=payload)
            assert response.status_code == 200, response.json()

        body = response.json()
        assert body["status"] == "completed"
        assert body["refundStatus"] == "completed"
        assert body["refundAmount"] == 250.0
        assert [r["status"] for r in body["refunds"]] == ["completed"]
        assert body["returnTracking"]["courierName"] == "BlueDart"

        wallet = client.get("/wallet", headers=_as(buyer)).json()
        assert wallet["balance"] == 250.0
        assert wallet["transactions"][0]["referenceType"] == "return_refund"

    def test_cancel(self, client, buyer, delivered_order, reason_id):
        request_id = _create_return(client, buyer, delivered_order, reason_id).json()["id"]
        response = client.post(f"/returns/{request_id}/cancel", headers=_as(buyer), json={"reason": "changed mind"})
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancellationReason"] == "changed mind"

    def test_stale_version_is_409(self, client, buyer, seller, delivered_order, reason_id):
        created = _create_return(client, buyer, delivered_order, reason_id).json()
        seen = created["version"]

        response = client.post(
            f"/returns/{created['id']}/status",
            headers=_as(seller),
            json={"status": "approved", "expectedVersion": seen},
        )
        assert response.status_code == 200
        assert response.json()["version"] > seen

        response = client.post(
            f"/returns/{created['id']}/cancel",
            headers=_as(buyer),
            json={"reason": "changed mind", "expectedVersion": seen},
        )
        assert response.status_code == 409
        assert "version" in response.json()["error"]
        assert client.get(f"/returns/{created['id']}", headers=_as(buyer)).json()["status"] == "approved"

    def test_listing(self, client, buyer, seller, delivered_order, reason_id):
        request_id = _create_return(client, buyer, delivered_order, reason_id).json()["id"]

        entries = client.get("/returns", headers=_as(seller)).json()

        assert [(e["id"], e["kind"]) for e in entries] == [(request_id, "request")]
        assert client.get("/returns", headers=_as(seller), params={"status": "approved"}).json() == []


class TestMessagesAPI:
    def test_post_and_read_thread(self, client, buyer, seller, delivered_order, reason_id):
        request_id = _create_return(client, buyer, delivered_order, reason_id).json()["id"]

        response = client.post(f"/returns/{request_id}/messages", headers=_as(seller), json={"message": "Photo please"})
        assert response.status_code == 201

        thread = client.get(f"/returns/{request_id}/messages", headers=_as(buyer)).json()
        assert [m["message"] for m in thread] == ["Photo please"]
        assert thread[0]["senderRole"] == "seller"
        assert thread[0]["isRead"] is True

    def test_empty_message_is_400(self, client, buyer, delivered_order, reason_id):
        request_id = _create_return(client, buyer, delivered_order, reason_id).json()["id"]
        response = client.post(f"/returns/{request_id}/messages", headers=_as(buyer), json={"message": ""})
        assert response.status_code == 400


class TestOrderAPI:
    def test_mark_for_return(self, client, buyer, delivered_order, reason_id):
        response = client.post(f"/orders/{delivered_order.id}/mark-for-return", headers=_as(buyer), json={})
        assert response.status_code == 200
        body = response.json()
        assert len(body["created"]) == 1
        assert body["skipped"] == []

    def test_seller_updates_item(self, client, buyer, seller, delivered_order):
        item_id = delivered_order.items[0].id
        response = client.post(
            f"/orders/{delivered_order.id}/items/{item_id}/status",
            headers=_as(seller),
            json={"status": "completed"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "completed"


class TestNotificationAPI:
    def test_list_and_mark_read(self, client, buyer, delivered_order, reason_id):
        _create_return(client, buyer, delivered_order, reason_id)

        notifications = client.get("/notifications", headers=_as(buyer), params={"unread_only": True}).json()
        assert {n["type"] for n in notifications} >= {"return_request", "order_status"}

        first = notifications[0]["id"]
        assert client.post(f"/notifications/{first}/read", headers=_as(buyer)).status_code == 200

        response = client.post("/notifications/read-all", headers=_as(buyer))
        assert response.json()["updated"] == len(notifications) - 1

    def test_cannot_read_someone_elses(self, client, buyer, seller, delivered_order, reason_id):
        _create_return(client, buyer, delivered_order, reason_id)
        notification_id = client.get("/notifications", headers=_as(buyer)).json()[0]["id"]
        response = client.post(f"/notifications/{notification_id}/read", headers=_as(seller))
        assert response.status_code == 403
