"""
Checkout tests: cart pricing, shipping rule, order numbering.
"""

import pytest

from bookstore.extensions import db
from bookstore.actors import Actor
from bookstore.models import Customer, OrderStatusHistory
from bookstore.services import checkout_service
from bookstore.services.checkout_service import CartLine
from bookstore.validation import ValidationError

from conftest import LOCAL_PINCODE, STANDARD_PINCODE


def _line(price, qty=1, seller_id=1, book_id=1):
    return CartLine(book_id=book_id, seller_id=seller_id, unit_price_cents=price, quantity=qty)


class TestPricing:

    def test_standard_shipping(self, db_session):
        amounts = checkout_service.price_cart([_line(45000, 2)], pincode=STANDARD_PINCODE)
        assert amounts == {
            "subtotal_cents": 90000,
            "shipping_cost_cents": 10000,
            "tax_cents": 0,
            "coupon_discount_cents": 0,
            "total_cents": 100000,
        }

    def test_local_shipping(self, db_session):
        amounts = checkout_service.price_cart([_line(45000)], pincode=LOCAL_PINCODE)
        assert amounts["shipping_cost_cents"] == 7000

    def test_free_shipping_at_threshold(self, db_session):
        amounts = checkout_service.price_cart([_line(100000, 2)], pincode=STANDARD_PINCODE)
        assert amounts["shipping_cost_cents"] == 0
        assert amounts["total_cents"] == 200000

    def test_coupon_can_drop_order_below_free_shipping(self, db_session):
        amounts = checkout_service.price_cart(
            [_line(100000, 2)], pincode=STANDARD_PINCODE, coupon_discount_cents=20000
        )
        assert amounts["shipping_cost_cents"] == 10000
        assert amounts["total_cents"] == 200000 + 10000 - 20000

    def test_discount_larger_than_subtotal_rejected(self, db_session):
        with pytest.raises(ValidationError):
            checkout_service.price_cart([_line(1000)], pincode=STANDARD_PINCODE, coupon_discount_cents=1001)

    def test_empty_cart_rejected(self, db_session):
        with pytest.raises(ValidationError):
            checkout_service.price_cart([], pincode=STANDARD_PINCODE)

    def test_tax_rate_applies_to_discounted_subtotal(self, app, db_session):
        app.config["TAX_RATE_BPS"] = 500
        try:
            amounts = checkout_service.price_cart(
                [_line(10000)], pincode=STANDARD_PINCODE, coupon_discount_cents=2000
            )
        finally:
            app.config["TAX_RATE_BPS"] = 0
        assert amounts["tax_cents"] == 400


class TestPincode:

    @pytest.mark.parametrize("raw,expected", [
        ("700019", "700019"),
        ("700 019", "700019"),
        (" 560-001 ", "560001"),
    ])
    def test_normalized(self, raw, expected):
        assert checkout_service.validate_pincode(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "12345", "1234567", "012345"])
    def test_invalid(self, raw):
        with pytest.raises(ValidationError):
            checkout_service.validate_pincode(raw)

    @pytest.mark.parametrize("pincode,local", [
        ("700001", True),
        ("743999", True),
        ("744000", False),
        ("110001", False),
    ])
    def test_local_range(self, app, pincode, local):
        with app.app_context():
            assert checkout_service.is_local_pincode(pincode) is local


class TestPlaceOrder:

    def test_order_is_pending_with_numbered_history(self, make_order, seller_x):
        order = make_order([(seller_x.id, 45000, 2)], payment_status="pending")

        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert order.refunded_amount_cents == 0
        assert order.order_number == "BK-000001"
        assert [i.line_total_cents for i in order.items] == [90000]

        (entry,) = db.session.query(OrderStatusHistory).filter_by(order_id=order.id).all()
        assert entry.sequence == 1
        assert entry.from_status is None
        assert entry.status == "pending"
        assert entry.notes == "Order placed"

    def test_order_numbers_increase(self, make_order, seller_x):
        numbers = [make_order([(seller_x.id, 1000, 1)]).order_number for _ in range(3)]
        assert numbers == ["BK-000001", "BK-000002", "BK-000003"]

    def test_customer_is_mirrored_on_first_order(self, db_session, seller_x):
        newcomer = Actor(id=555, role="customer")
        checkout_service.place_order(
            newcomer,
            [_line(1000, seller_id=seller_x.id)],
            pincode=STANDARD_PINCODE,
            customer_name="Mita Roy",
            customer_email="mita@example.com",
        )
        customer = db.session.get(Customer, 555)
        assert customer.name == "Mita Roy"

    def test_only_customers_place_orders(self, db_session, admin):
        with pytest.raises(ValidationError):
            checkout_service.place_order(admin, [_line(1000)], pincode=STANDARD_PINCODE)

    def test_new_order_cannot_start_refunded(self, db_session, customer):
        with pytest.raises(ValidationError):
            checkout_service.place_order(customer, [_line(1000)], pincode=STANDARD_PINCODE, payment_status="refunded")
