"""
Checkout Service - order placement

WHY: An order freezes the cart at the moment of purchase. Prices, quantities
and every amount derived from them are computed once here and never change
afterwards; refunds and settlements work off these frozen numbers.

TOTAL:
    total = subtotal + shipping + tax - coupon_discount

SHIPPING (storefront rule):
- Free when the discounted subtotal reaches FREE_SHIPPING_THRESHOLD_CENTS
- LOCAL_SHIPPING_CENTS for PIN codes inside LOCAL_PINCODE_RANGES
- STANDARD_SHIPPING_CENTS everywhere else

Coupon codes are validated by the coupon service; only the resulting
discount amount is applied here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Customer, Order, OrderItem
from ..actors import Actor
from ..statuses import OrderStatus, PaymentStatus
from ..validation import ValidationError, MAX_AMOUNT_CENTS
from . import history_service
from .concurrency import run_in_transaction
from .document_service import next_document_number


@dataclass(frozen=True)
class CartLine:
    book_id: int
    seller_id: int | None
    unit_price_cents: int
    quantity: int
    title: str | None = None


def normalize_pincode(pincode: str | None) -> str | None:
    if not pincode:
        return None
    digits = re.sub(r"\D", "", str(pincode))
    return digits or None


def validate_pincode(pincode: str | None) -> str:
    clean = normalize_pincode(pincode)
    if not clean:
        raise ValidationError("PIN code is required")
    if len(clean) != 6:
        raise ValidationError("PIN code must be 6 digits")
    if clean.startswith("0"):
        raise ValidationError("PIN code cannot start with 0")
    return clean


def is_local_pincode(pincode: str | None) -> bool:
    clean = normalize_pincode(pincode)
    if not clean or len(clean) != 6:
        return False
    number = int(clean)
    return any(start <= number <= end for start, end in current_app.config["LOCAL_PINCODE_RANGES"])


def calculate_shipping_cents(pincode: str | None, discounted_subtotal_cents: int) -> int:
    config = current_app.config
    if discounted_subtotal_cents >= config["FREE_SHIPPING_THRESHOLD_CENTS"]:
        return 0
    if is_local_pincode(pincode):
        return config["LOCAL_SHIPPING_CENTS"]
    return config["STANDARD_SHIPPING_CENTS"]


def calculate_tax_cents(taxable_cents: int) -> int:
    rate_bps = current_app.config.get("TAX_RATE_BPS", 0)
    return (taxable_cents * rate_bps + 5_000) // 10_000


def price_cart(lines: list[CartLine], *, pincode: str | None, coupon_discount_cents: int = 0) -> dict:
    """
    Compute order amounts for a cart without persisting anything.

    Returns subtotal, shipping, tax, coupon discount and total in paise.
    """
    if not lines:
        raise ValidationError("Order must contain at least one item")

    subtotal = 0
    for line in lines:
        if line.quantity <= 0:
            raise ValidationError(f"Quantity for book {line.book_id} must be positive")
        if line.unit_price_cents < 0:
            raise ValidationError(f"Price for book {line.book_id} cannot be negative")
        subtotal += line.unit_price_cents * line.quantity

    if subtotal > MAX_AMOUNT_CENTS:
        raise ValidationError("Order subtotal exceeds the maximum allowed amount")
    if coupon_discount_cents < 0:
        raise ValidationError("Coupon discount cannot be negative")
    if coupon_discount_cents > subtotal:
        raise ValidationError("Coupon discount cannot exceed the order subtotal")

    discounted = subtotal - coupon_discount_cents
    shipping = calculate_shipping_cents(pincode, discounted)
    tax = calculate_tax_cents(discounted)

    return {
        "subtotal_cents": subtotal,
        "shipping_cost_cents": shipping,
        "tax_cents": tax,
        "coupon_discount_cents": coupon_discount_cents,
        "total_cents": subtotal + shipping + tax - coupon_discount_cents,
    }


def _ensure_customer(customer_id: int, name: str | None, email: str | None) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        customer = Customer(id=customer_id, name=name, email=email)
        db.session.add(customer)
        db.session.flush()
    return customer


def place_order(
    actor: Actor,
    lines: list[CartLine],
    *,
    pincode: str,
    coupon_code: str | None = None,
    coupon_discount_cents: int = 0,
    customer_name: str | None = None,
    customer_email: str | None = None,
    payment_status: str = PaymentStatus.PENDING.value,
    payment_reference: str | None = None,
) -> Order:
    """
    Create an order (status: pending) from a cart snapshot.

    Raises:
        ValidationError: Empty cart, bad quantities/prices, bad PIN code,
            discount larger than the subtotal
    """
    if not actor.is_customer:
        raise ValidationError("Only customers can place orders")
    if payment_status not in (PaymentStatus.PENDING.value, PaymentStatus.PAID.value):
        raise ValidationError("A new order's payment status must be pending or paid")

    clean_pincode = validate_pincode(pincode)
    amounts = price_cart(lines, pincode=clean_pincode, coupon_discount_cents=coupon_discount_cents)

    def _op():
        customer = _ensure_customer(actor.id, customer_name, customer_email)
        order_number = next_document_number(
            document_type="ORDER",
            prefix=current_app.config["ORDER_NUMBER_PREFIX"],
        )

        order = Order(
            order_number=order_number,
            customer_id=customer.id,
            coupon_code=coupon_code,
            status=OrderStatus.PENDING.value,
            payment_status=payment_status,
            payment_reference=payment_reference,
            refunded_amount_cents=0,
            shipping_pincode=clean_pincode,
            **amounts,
        )
        db.session.add(order)
        db.session.flush()  # Get order ID

        for position, line in enumerate(lines, start=1):
            db.session.add(OrderItem(
                order_id=order.id,
                position=position,
                book_id=line.book_id,
                seller_id=line.seller_id,
                title=line.title,
                unit_price_cents=line.unit_price_cents,
                quantity=line.quantity,
                line_total_cents=line.unit_price_cents * line.quantity,
            ))

        history_service.append_status_entry(
            order=order,
            from_status=None,
            status=OrderStatus.PENDING.value,
            actor=actor,
            notes="Order placed",
        )

        db.session.commit()
        current_app.logger.info(
            "Order %s placed by customer %s: total %s", order.order_number, customer.id, order.total_cents
        )
        return order

    return run_in_transaction(_op)
