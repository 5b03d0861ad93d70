"""
Order API tests.

Verifies:
- Missing identity returns 401, wrong role returns 403
- Checkout, status changes, cancellation, refunds through HTTP
- Domain errors map to 404 / 409 / 422 with a machine-readable code
"""

import pytest

from bookstore.extensions import db
from bookstore.models import CatalogEvent, Order

from conftest import STANDARD_PINCODE, actor_headers


@pytest.fixture
def admin_headers(admin):
    return actor_headers(admin)


@pytest.fixture
def customer_headers(customer):
    return actor_headers(customer)


# =============================================================================
# IDENTITY
# =============================================================================


class TestIdentity:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/orders/"),
            ("POST", "/api/orders/"),
            ("GET", "/api/orders/1"),
            ("PATCH", "/api/orders/1/status"),
            ("PATCH", "/api/orders/1/cancel"),
            ("POST", "/api/orders/1/refund"),
            ("GET", "/api/seller/payments"),
            ("GET", "/api/admin/payouts"),
            ("POST", "/api/admin/orders/1/settle"),
        ],
    )
    def test_requires_identity(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_unknown_role_rejected(self, client, db_session):
        resp = client.get("/api/orders/", headers={"X-Actor-Id": "5", "X-Actor-Role": "courier"})
        assert resp.status_code == 401

    def test_customer_cannot_change_status(self, client, make_order, seller_x, customer_headers):
        order = make_order([(seller_x.id, 45000, 1)])
        resp = client.patch(f"/api/orders/{order.id}/status", json={"orderStatus": "confirmed"},
                            headers=customer_headers)
        assert resp.status_code == 403

    def test_customer_cannot_refund(self, client, make_order, seller_x, customer_headers):
        order = make_order([(seller_x.id, 45000, 1)])
        resp = client.post(f"/api/orders/{order.id}/refund", json={"refundAmount": 10, "reason": "x"},
                           headers=customer_headers)
        assert resp.status_code == 403


# =============================================================================
# CHECKOUT + QUERIES
# =============================================================================


class TestCheckoutApi:

    def test_place_order(self, client, seller_x, customer_headers):
        resp = client.post("/api/orders/", json={
            "items": [
                {"bookId": 11, "sellerId": seller_x.id, "title": "Pather Panchali", "price": 450, "quantity": 2},
            ],
            "shippingAddress": {"zipCode": STANDARD_PINCODE},
            "paymentStatus": "paid",
            "paymentReference": "pay_001",
        }, headers=customer_headers)

        assert resp.status_code == 201
        order = resp.json["order"]
        assert order["status"] == "pending"
        assert order["subtotal_cents"] == 90000
        assert order["shipping_cost_cents"] == 10000
        assert order["total_cents"] == 100000
        assert order["items"][0]["title"] == "Pather Panchali"

    @pytest.mark.parametrize("path", ["/api/orders", "/api/orders/"])
    def test_collection_answers_with_and_without_trailing_slash(self, client, seller_x, customer_headers, path):
        created = client.post(path, json={
            "items": [{"bookId": 3, "sellerId": seller_x.id, "title": "Aranyak", "price": 300, "quantity": 1}],
            "pincode": STANDARD_PINCODE,
        }, headers=customer_headers)
        listed = client.get(path, headers=customer_headers)

        assert created.status_code == 201
        assert listed.status_code == 200
        assert [o["id"] for o in listed.json["orders"]] == [created.json["order"]["id"]]

    @pytest.mark.parametrize("body", [
        {"items": [], "pincode": STANDARD_PINCODE},
        {"items": [{"bookId": 1, "price": 10, "quantity": 0}], "pincode": STANDARD_PINCODE},
        {"items": [{"bookId": 1, "price": "1e3", "quantity": 1}], "pincode": STANDARD_PINCODE},
        {"items": [{"bookId": 1, "price": 10, "quantity": 1}], "pincode": "12"},
    ])
    def test_invalid_checkout(self, client, customer_headers, body):
        resp = client.post("/api/orders/", json=body, headers=customer_headers)
        assert resp.status_code == 400
        assert "error" in resp.json

    def test_customer_lists_only_own_orders(self, client, make_order, seller_x, other_customer, customer_headers):
        mine = make_order([(seller_x.id, 1000, 1)])
        make_order([(seller_x.id, 1000, 1)], actor=other_customer)

        resp = client.get("/api/orders/", headers=customer_headers)

        assert resp.status_code == 200
        assert [o["id"] for o in resp.json["orders"]] == [mine.id]

    def test_admin_lists_by_status(self, client, make_order, seller_x, advance, admin_headers):
        first = make_order([(seller_x.id, 1000, 1)])
        make_order([(seller_x.id, 1000, 1)])
        advance(first.id, "confirmed")

        resp = client.get("/api/orders/?status=confirmed", headers=admin_headers)

        assert resp.status_code == 200
        assert [o["id"] for o in resp.json["orders"]] == [first.id]
        assert resp.json["pagination"]["total"] == 1

    def test_get_order_reports_cancellability(self, client, make_order, seller_x, advance, customer_headers):
        order = make_order([(seller_x.id, 1000, 1)])
        before = client.get(f"/api/orders/{order.id}", headers=customer_headers)
        advance(order.id, "shipped")
        after = client.get(f"/api/orders/{order.id}", headers=customer_headers)

        assert before.status_code == 200
        assert before.json["can_cancel"] is True
        assert after.json["can_cancel"] is False
        assert after.json["order"]["tracking_number"] == "DTDC-0001"

    def test_other_customers_order_is_not_found(self, client, make_order, seller_x, other_customer):
        order = make_order([(seller_x.id, 1000, 1)])
        resp = client.get(f"/api/orders/{order.id}", headers=actor_headers(other_customer))
        assert resp.status_code == 404

    def test_history_endpoint(self, client, make_order, seller_x, advance, customer_headers):
        order = make_order([(seller_x.id, 1000, 1)])
        advance(order.id, "confirmed", "processing")

        resp = client.get(f"/api/orders/{order.id}/history", headers=customer_headers)

        assert resp.status_code == 200
        entries = resp.json["status_history"]
        assert [e["status"] for e in entries] == ["pending", "confirmed", "processing"]
        assert all(e["timestamp"].endswith("Z") for e in entries)

    def test_history_entry_by_sequence(self, client, make_order, seller_x, advance, customer_headers, other_customer):
        order = make_order([(seller_x.id, 1000, 1)])
        advance(order.id, "confirmed")

        found = client.get(f"/api/orders/{order.id}/history/2", headers=customer_headers)
        missing = client.get(f"/api/orders/{order.id}/history/3", headers=customer_headers)
        foreign = client.get(f"/api/orders/{order.id}/history/1", headers=actor_headers(other_customer))

        assert found.status_code == 200
        assert (found.json["entry"]["from_status"], found.json["entry"]["status"]) == ("pending", "confirmed")
        assert missing.status_code == 404
        assert foreign.status_code == 404


# =============================================================================
# STATUS CHANGES
# =============================================================================


class TestStatusApi:

    def test_admin_moves_order_forward(self, client, make_order, seller_x, admin_headers):
        order = make_order([(seller_x.id, 45000, 1)])

        resp = client.patch(f"/api/orders/{order.id}/status", json={
            "orderStatus": "shipped",
            "trackingNumber": "DTDC-9",
            "notes": "Handed to courier",
        }, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["changed"] is True
        assert resp.json["order"]["status"] == "shipped"
        assert resp.json["order"]["tracking_number"] == "DTDC-9"
        assert resp.json["history_entry"]["notes"] == "Handed to courier"

    def test_missing_tracking_is_422(self, client, make_order, seller_x, admin_headers):
        order = make_order([(seller_x.id, 45000, 1)])
        resp = client.patch(f"/api/orders/{order.id}/status", json={"orderStatus": "shipped"},
                            headers=admin_headers)
        assert resp.status_code == 422
        assert resp.json["code"] == "MISSING_TRACKING_NUMBER"

    def test_backward_move_is_409(self, client, make_order, seller_x, advance, admin_headers):
        order = make_order([(seller_x.id, 45000, 1)])
        advance(order.id, "shipped", "delivered")

        resp = client.patch(f"/api/orders/{order.id}/status", json={"orderStatus": "processing"},
                            headers=admin_headers)

        assert resp.status_code == 409
        assert resp.json["code"] == "INVALID_TRANSITION"

    def test_stale_version_is_409(self, client, make_order, seller_x, admin_headers):
        order = make_order([(seller_x.id, 45000, 1)])
        resp = client.patch(f"/api/orders/{order.id}/status",
                            json={"orderStatus": "confirmed", "version": order.version_id + 5},
                            headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json["code"] == "STALE_ORDER_VERSION"

    def test_unknown_order_is_404(self, client, db_session, admin_headers):
        resp = client.patch("/api/orders/999/status", json={"orderStatus": "confirmed"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_missing_status_is_400(self, client, make_order, seller_x, admin_headers):
        order = make_order([(seller_x.id, 45000, 1)])
        resp = client.patch(f"/api/orders/{order.id}/status", json={}, headers=admin_headers)
        assert resp.status_code == 400

    def test_delivery_returns_payouts(self, client, make_order, seller_x, seller_y, advance, admin_headers):
        order = make_order([(seller_x.id, 40000, 2), (seller_y.id, 20000, 1)])
        advance(order.id, "shipped")

        resp = client.patch(f"/api/orders/{order.id}/status", json={"orderStatus": "delivered"},
                            headers=admin_headers)

        assert resp.status_code == 200
        nets = sorted(p["net_amount_cents"] for p in resp.json["payouts"])
        assert nets == [17500, 70000]


# =============================================================================
# CANCELLATION + REFUNDS
# =============================================================================


class TestCancelApi:

    def test_customer_cancels_pending_order(self, client, make_order, seller_x, customer_headers):
        order = make_order([(seller_x.id, 45000, 2)])

        resp = client.patch(f"/api/orders/{order.id}/cancel", json={"reason": "Changed my mind"},
                            headers=customer_headers)

        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "cancelled"
        assert resp.json["order"]["payment_status"] == "refunded"
        assert resp.json["refund"]["amount_cents"] == 100000
        assert len(resp.json["catalog_events"]) == 1
        assert db.session.query(CatalogEvent).filter_by(order_id=order.id).count() == 1

    def test_customer_cannot_cancel_shipped_order(self, client, make_order, seller_x, advance, customer_headers):
        order = make_order([(seller_x.id, 45000, 1)])
        advance(order.id, "shipped")

        resp = client.patch(f"/api/orders/{order.id}/cancel", json={}, headers=customer_headers)

        assert resp.status_code == 409
        assert db.session.get(Order, order.id).status == "shipped"

    def test_cancel_without_body(self, client, make_order, seller_x, customer_headers):
        order = make_order([(seller_x.id, 45000, 1)])
        resp = client.patch(f"/api/orders/{order.id}/cancel", headers=customer_headers)
        assert resp.status_code == 200


class TestRefundApi:

    def test_refund_over_balance_is_422(self, client, make_order, seller_x, admin_headers):
        order = make_order([(seller_x.id, 90000, 1)])

        resp = client.post(f"/api/orders/{order.id}/refund",
                           json={"refundAmount": 1200, "reason": "Damaged"}, headers=admin_headers)

        assert resp.status_code == 422
        assert resp.json["code"] == "REFUND_EXCEEDS_BALANCE"

    def test_partial_then_full_refund(self, client, make_order, seller_x, admin_headers):
        order = make_order([(seller_x.id, 90000, 1)])

        first = client.post(f"/api/orders/{order.id}/refund",
                            json={"refundAmount": "250.50", "reason": "Torn cover"}, headers=admin_headers)
        second = client.post(f"/api/orders/{order.id}/refund",
                             json={"refundAmount": 749.50, "reason": "Returned"}, headers=admin_headers)

        assert first.status_code == 201
        assert first.json["refund"]["amount_cents"] == 25050
        assert first.json["summary"]["payment_status"] == "paid"
        assert second.status_code == 201
        assert second.json["summary"]["refunded_amount_cents"] == 100000
        assert second.json["summary"]["payment_status"] == "refunded"

    @pytest.mark.parametrize("flag", [False, "false", "0", "no", 0])
    def test_false_mark_refunded_keeps_partial_refund_open(self, client, make_order, seller_x, admin_headers, flag):
        order = make_order([(seller_x.id, 90000, 1)])

        resp = client.post(f"/api/orders/{order.id}/refund",
                           json={"refundAmount": 100, "reason": "Dented spine", "markRefunded": flag},
                           headers=admin_headers)

        assert resp.status_code == 201
        assert resp.json["summary"]["payment_status"] == "paid"
        assert resp.json["summary"]["refundable_balance_cents"] == 90000

    @pytest.mark.parametrize("flag", [True, "true", "yes", 1])
    def test_mark_refunded_closes_partial_refund(self, client, make_order, seller_x, admin_headers, flag):
        order = make_order([(seller_x.id, 90000, 1)])

        resp = client.post(f"/api/orders/{order.id}/refund",
                           json={"refundAmount": 100, "reason": "Goodwill", "markRefunded": flag},
                           headers=admin_headers)

        assert resp.status_code == 201
        assert resp.json["summary"]["payment_status"] == "refunded"

    @pytest.mark.parametrize("flag", ["maybe", 2, [], {"x": 1}])
    def test_unreadable_mark_refunded_is_400(self, client, make_order, seller_x, admin_headers, flag):
        order = make_order([(seller_x.id, 90000, 1)])

        resp = client.post(f"/api/orders/{order.id}/refund",
                           json={"refundAmount": 100, "reason": "Late", "markRefunded": flag},
                           headers=admin_headers)

        assert resp.status_code == 400
        assert db.session.get(Order, order.id).refunded_amount_cents == 0

    def test_refund_requires_reason(self, client, make_order, seller_x, admin_headers):
        order = make_order([(seller_x.id, 90000, 1)])
        resp = client.post(f"/api/orders/{order.id}/refund", json={"refundAmount": 10}, headers=admin_headers)
        assert resp.status_code == 400

    def test_refund_listing(self, client, make_order, seller_x, admin_headers, customer_headers):
        order = make_order([(seller_x.id, 90000, 1)])
        client.post(f"/api/orders/{order.id}/refund",
                    json={"refundAmount": 100, "reason": "Late"}, headers=admin_headers)

        resp = client.get(f"/api/orders/{order.id}/refunds", headers=customer_headers)

        assert resp.status_code == 200
        assert resp.json["refundable_balance_cents"] == 90000


class TestPaymentApi:

    def test_gateway_capture(self, client, make_order, seller_x, admin_headers):
        order = make_order([(seller_x.id, 1000, 1)], payment_status="pending")

        resp = client.post(f"/api/orders/{order.id}/payment",
                           json={"paymentStatus": "paid", "reference": "pay_XYZ"}, headers=admin_headers)
        repeat = client.post(f"/api/orders/{order.id}/payment",
                             json={"paymentStatus": "paid"}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["changed"] is True
        assert resp.json["order"]["payment_reference"] == "pay_XYZ"
        assert repeat.json["changed"] is False

    def test_paid_order_cannot_fail(self, client, make_order, seller_x, admin_headers):
        order = make_order([(seller_x.id, 1000, 1)])
        resp = client.post(f"/api/orders/{order.id}/payment", json={"paymentStatus": "failed"},
                           headers=admin_headers)
        assert resp.status_code == 409

    def test_refunded_is_not_a_gateway_outcome(self, client, make_order, seller_x, admin_headers):
        order = make_order([(seller_x.id, 1000, 1)])
        resp = client.post(f"/api/orders/{order.id}/payment", json={"paymentStatus": "refunded"},
                           headers=admin_headers)
        assert resp.status_code == 400
