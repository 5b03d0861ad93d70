# Overview: Bookkeeping for payment gateway outcomes on orders.

"""
Order Payment Service

WHY: The payment gateway is external. Its outcome events (captured or
failed) only move Order.payment_status; refunds are handled by the refund
ledger, never here.

PAYMENT STATUS MOVES:
    pending -> paid | failed
    failed  -> paid        (customer retried the payment)
    paid    -> (refund ledger only)
    refunded: final
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Order
from ..actors import Actor
from ..errors import InvalidTransition, OrderNotFound
from ..statuses import PaymentStatus
from ..validation import ValidationError
from .concurrency import check_expected_version, lock_for_update, run_in_transaction


GATEWAY_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PAID},
    PaymentStatus.PAID: set(),
    PaymentStatus.REFUNDED: set(),
}


def record_payment_event(
    order_id: int,
    payment_status: str,
    *,
    actor: Actor,
    reference: str | None = None,
    expected_version: int | None = None,
) -> tuple[Order, bool]:
    """
    Apply a gateway outcome to an order.

    Returns:
        (order, changed); a repeated event for the current status is a no-op

    Raises:
        OrderNotFound, InvalidTransition, ValidationError, StaleOrderVersion
    """
    try:
        target = PaymentStatus(str(payment_status).strip().lower())
    except ValueError:
        raise ValidationError("paymentStatus must be 'paid' or 'failed'")
    if target not in (PaymentStatus.PAID, PaymentStatus.FAILED):
        raise ValidationError("paymentStatus must be 'paid' or 'failed'")

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise OrderNotFound(f"Order {order_id} not found")
        check_expected_version(order, expected_version)

        current = PaymentStatus(order.payment_status)
        if current == target:
            return order, False
        if target not in GATEWAY_TRANSITIONS[current]:
            raise InvalidTransition(
                f"Payment status of order {order.order_number} cannot move from "
                f"'{current.value}' to '{target.value}'"
            )

        order.payment_status = target.value
        if reference:
            order.payment_reference = reference.strip()[:128]
        db.session.commit()

        current_app.logger.info(
            "Order %s payment %s -> %s (actor %s)", order.order_number, current.value, target.value, actor.id
        )
        return order, True

    return run_in_transaction(_op)
