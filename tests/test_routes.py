from unittest.mock import Mock, patch

import pytest

from services import gateway
from tests.factories import ADMIN, CUSTOMER, OTHER_CUSTOMER, VENDOR, order_payload


@pytest.fixture()
def customer_headers(auth_headers):
    return auth_headers(CUSTOMER)


@pytest.fixture()
def admin_headers(auth_headers):
    return auth_headers(ADMIN)


@pytest.fixture()
def placed_order(client, customer_headers):
    response = client.post("/orders/", json=order_payload(), headers=customer_headers)
    assert response.status_code == 201
    return response.json()


class TestHealth:
    """Test cases for service endpoints"""

    def test_health_check(self, client):
        """Test health check endpoint"""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAuthentication:
    """Test cases for bearer token handling"""

    def test_missing_token(self, client):
        """Test requests without a token are rejected"""
        response = client.get("/orders/")
        assert response.status_code == 401
        assert response.json()["kind"] == "not_authenticated"

    def test_garbage_token(self, client):
        """Test an unreadable token is rejected"""
        response = client.get("/orders/", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_system_role_cannot_be_claimed(self, client):
        """Test tokens cannot impersonate the gateway"""
        from security import jwt as jwt_utils

        token = jwt_utils.create_access_token("payment-gateway", role="system")
        response = client.get("/orders/", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


class TestOrderRoutes:
    """Test cases for order endpoints"""

    def test_create_order(self, placed_order):
        """Test checkout returns the priced pending order"""
        assert placed_order["status"] == "pending"
        assert placed_order["total_price"] == 103.0
        assert placed_order["items_price"] == 100.0
        assert placed_order["is_paid"] is False
        assert len(placed_order["status_history"]) == 1

    def test_create_order_schema_error(self, client, customer_headers):
        """Test malformed bodies are reported as validation errors"""
        payload = order_payload()
        payload["items"][0]["quantity"] = 0
        response = client.post("/orders/", json=payload, headers=customer_headers)
        assert response.status_code == 422
        assert response.json()["kind"] == "validation_error"

    def test_create_order_business_rule_error(self, client, customer_headers):
        """Test a discount above the order amount is rejected"""
        response = client.post("/orders/", json=order_payload(discount_amount="999"), headers=customer_headers)
        assert response.status_code == 400
        assert response.json() == {"kind": "validation_error", "message": "Discount cannot exceed the order amount"}

    def test_list_and_get(self, client, placed_order, customer_headers, auth_headers):
        """Test the owner can list and read; others get 404"""
        listing = client.get("/orders/", headers=customer_headers).json()
        assert [order["id"] for order in listing["data"]] == [placed_order["id"]]
        assert listing["pagination"] == {"current": 1, "total": 1, "count": 1}

        assert client.get(f"/orders/{placed_order['id']}", headers=customer_headers).status_code == 200
        response = client.get(f"/orders/{placed_order['id']}", headers=auth_headers(OTHER_CUSTOMER))
        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"

    def test_vendor_listing_is_projected(self, client, placed_order, auth_headers):
        """Test vendors see only their items plus status counts"""
        listing = client.get("/orders/", headers=auth_headers(VENDOR)).json()
        order = listing["data"][0]
        assert [item["vendor_id"] for item in order["items"]] == ["vendor-1"]
        assert order["vendor_subtotal"] == 60.0
        assert listing["status_counts"]["pending"] == 1

    def test_admin_filter_rejected_for_customer(self, client, placed_order, customer_headers):
        """Test admin-only filters are refused in customer scope"""
        response = client.get("/orders/?search=shirt", headers=customer_headers)
        assert response.status_code == 400

    def test_admin_search(self, client, placed_order, admin_headers):
        """Test admins search by item name"""
        listing = client.get("/orders/?search=LEATHER", headers=admin_headers).json()
        assert listing["pagination"]["count"] == 1

    def test_page_beyond_last(self, client, placed_order, admin_headers):
        """Test paging past the end returns empty data"""
        listing = client.get("/orders/?page=3&limit=1", headers=admin_headers).json()
        assert listing["data"] == []
        assert listing["pagination"] == {"current": 3, "total": 1, "count": 1}

    def test_customer_cancels_pending(self, client, placed_order, customer_headers):
        """Test the cancel endpoint for a pending order"""
        response = client.post(
            f"/orders/{placed_order['id']}/cancel", json={"reason": "Ordered twice"}, headers=customer_headers
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "cancelled"
        assert body["status_history"][-1]["note"] == "Ordered twice"

    def test_cancel_without_body(self, client, placed_order, customer_headers):
        """Test the cancel body is optional"""
        response = client.post(f"/orders/{placed_order['id']}/cancel", headers=customer_headers)
        assert response.status_code == 200
        assert response.json()["status_history"][-1]["note"] == "Cancelled by customer"

    def test_shipped_order_cancel_conflict(self, client, placed_order, customer_headers, admin_headers):
        """Test a customer cancelling a shipped order gets a conflict"""
        order_id = placed_order["id"]
        for status in ("processing", "shipped"):
            response = client.put(f"/orders/{order_id}/status", json={"status": status}, headers=admin_headers)
            assert response.status_code == 200

        response = client.post(f"/orders/{order_id}/cancel", headers=customer_headers)
        assert response.status_code == 409
        assert response.json()["kind"] == "cancellation_not_permitted"
        assert client.get(f"/orders/{order_id}", headers=customer_headers).json()["status"] == "shipped"

    def test_invalid_transition(self, client, placed_order, admin_headers):
        """Test skipping steps is a conflict"""
        response = client.put(
            f"/orders/{placed_order['id']}/status", json={"status": "delivered"}, headers=admin_headers
        )
        assert response.status_code == 409
        assert response.json()["kind"] == "invalid_transition"

    def test_unknown_status_value(self, client, placed_order, admin_headers):
        """Test an unknown status is a validation error"""
        response = client.put(
            f"/orders/{placed_order['id']}/status", json={"status": "lost"}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "validation_error"

    def test_customer_cannot_ship(self, client, placed_order, customer_headers):
        """Test customers cannot drive fulfilment"""
        response = client.put(
            f"/orders/{placed_order['id']}/status", json={"status": "processing"}, headers=customer_headers
        )
        assert response.status_code == 403
        assert response.json()["kind"] == "permission_denied"


class TestTrackingRoute:
    """Test cases for public tracking"""

    def test_unknown_tracking_number(self, client):
        """Test tracking an unknown number without authentication"""
        response = client.get("/orders/track/WC0000000000")
        assert response.status_code == 404
        assert response.json() == {"kind": "not_found", "message": "No order found with this tracking number"}

    def test_track_shipped_order(self, client, placed_order, admin_headers):
        """Test tracking a shipped order needs no token"""
        order_id = placed_order["id"]
        client.put(f"/orders/{order_id}/status", json={"status": "processing"}, headers=admin_headers)
        shipped = client.put(f"/orders/{order_id}/status", json={"status": "shipped"}, headers=admin_headers).json()

        response = client.get(f"/orders/track/{shipped['tracking_number']}")
        assert response.status_code == 200
        assert response.json()["status"] == "shipped"
        assert len(response.json()["timeline"]) == 3


class TestAnalyticsRoute:
    """Test cases for the analytics endpoint"""

    def test_admin_analytics(self, client, placed_order, admin_headers):
        """Test admins get the snapshot"""
        response = client.get("/orders/analytics?tz=Asia/Kolkata", headers=admin_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["total_orders"] == 1
        assert body["total_revenue"] == 103.0
        assert body["timezone"] == "Asia/Kolkata"

    def test_customer_analytics_forbidden(self, client, customer_headers):
        """Test customers cannot read analytics"""
        assert client.get("/orders/analytics", headers=customer_headers).status_code == 403

    def test_bad_timezone(self, client, admin_headers):
        """Test an unknown timezone is rejected"""
        assert client.get("/orders/analytics?tz=Nowhere/Land", headers=admin_headers).status_code == 400

    def test_timezone_directory_rejected(self, client, admin_headers):
        """Test a tz database directory name is a validation error, not a crash"""
        response = client.get("/orders/analytics", params={"tz": "America"}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["kind"] == "validation_error"

    def test_top_products(self, client, placed_order, auth_headers):
        """Test vendors see only their own best sellers"""
        body = client.get("/orders/analytics", headers=auth_headers(VENDOR)).json()
        assert body["top_products"] == [
            {"product_id": "prod-1", "name": "Cotton Shirt", "quantity": 2, "revenue": 60.0}
        ]


class TestPaymentRoutes:
    """Test cases for the payment endpoints"""

    def _open_intent(self, client, order_id, headers):
        response = Mock()
        response.raise_for_status.return_value = None
        response.json.return_value = {"id": "order_RZP777", "amount": 10300, "currency": "INR"}
        with patch("services.gateway.requests.post", return_value=response):
            return client.post("/payments/intent", json={"order_id": order_id}, headers=headers)

    def test_intent_and_confirm(self, client, placed_order, customer_headers):
        """Test the client-side payment flow end to end"""
        order_id = placed_order["id"]
        intent = self._open_intent(client, order_id, customer_headers)
        assert intent.status_code == 200
        assert intent.json()["amount"] == 10300

        body = {
            "order_id": order_id,
            "gateway_reference": "order_RZP777",
            "gateway_payment_id": "pay_777",
            "amount": 10300,
            "currency": "INR",
            "signature": gateway.sign_capture("order_RZP777", order_id, 10300),
        }
        response = client.post("/payments/confirm", json=body, headers=customer_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "processing"
        assert response.json()["is_paid"] is True

    def test_intent_gateway_failure(self, client, placed_order, customer_headers):
        """Test a gateway outage surfaces as 502 and the order stays pending"""
        import requests

        with patch("services.gateway.requests.post", side_effect=requests.Timeout("slow")):
            response = client.post("/payments/intent", json={"order_id": placed_order["id"]}, headers=customer_headers)
        assert response.status_code == 502
        assert response.json()["kind"] == "payment_intent_failed"
        order = client.get(f"/orders/{placed_order['id']}", headers=customer_headers).json()
        assert order["status"] == "pending"

    def test_tampered_confirmation(self, client, placed_order, customer_headers):
        """Test a bad signature is rejected and nothing changes"""
        order_id = placed_order["id"]
        self._open_intent(client, order_id, customer_headers)
        body = {
            "order_id": order_id,
            "gateway_reference": "order_RZP777",
            "amount": 10300,
            "signature": "0" * 64,
        }
        response = client.post("/payments/confirm", json=body, headers=customer_headers)
        assert response.status_code == 400
        assert response.json()["kind"] == "payment_verification_failed"

        order = client.get(f"/orders/{order_id}", headers=customer_headers).json()
        assert order["is_paid"] is False
        assert len(order["status_history"]) == 1

    def test_webhook_is_idempotent(self, client, placed_order, customer_headers):
        """Test the gateway webhook verifies and tolerates redelivery"""
        order_id = placed_order["id"]
        self._open_intent(client, order_id, customer_headers)
        body = {"order_id": order_id, "gateway_reference": "order_RZP777", "amount": 10300, "currency": "INR"}
        headers = {"X-Gateway-Signature": gateway.sign_capture("order_RZP777", order_id, 10300)}

        first = client.post("/payments/webhook", json=body, headers=headers)
        second = client.post("/payments/webhook", json=body, headers=headers)

        assert first.status_code == 200
        assert first.json() == {
            "received": True,
            "order_id": order_id,
            "status": "processing",
            "is_paid": True,
            "needs_reconciliation": False,
        }
        assert second.json() == first.json()
        history = client.get(f"/orders/{order_id}", headers=customer_headers).json()["status_history"]
        assert [entry["status"] for entry in history] == ["pending", "processing"]

    def test_webhook_without_signature(self, client, placed_order, customer_headers):
        """Test the webhook refuses unsigned captures"""
        order_id = placed_order["id"]
        self._open_intent(client, order_id, customer_headers)
        body = {"order_id": order_id, "gateway_reference": "order_RZP777", "amount": 10300}
        response = client.post("/payments/webhook", json=body)
        assert response.status_code == 400

    def test_payment_status(self, client, placed_order, customer_headers, auth_headers):
        """Test the owner reads payment status and vendors are refused"""
        order_id = placed_order["id"]
        self._open_intent(client, order_id, customer_headers)

        response = client.get(f"/payments/{order_id}/status", headers=customer_headers)
        assert response.status_code == 200
        assert response.json()["payment_status"] == "created"
        assert response.json()["gateway_reference"] == "order_RZP777"
        assert response.json()["is_paid"] is False

        assert client.get(f"/payments/{order_id}/status", headers=auth_headers(VENDOR)).status_code == 403
        assert client.get(f"/payments/{order_id}/status", headers=auth_headers(OTHER_CUSTOMER)).status_code == 404
