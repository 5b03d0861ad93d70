"""
Refund Ledger Service

WHY: Money returned to a buyer must never exceed what they paid, and every
rupee refunded must be traceable to a reasoned, attributed record.

DESIGN PRINCIPLES:
- Append-only: a RefundRecord is never reversed, edited or deleted
- Order.refunded_amount_cents == sum of the order's RefundRecords
- Each refund satisfies 0 < amount <= total - refunded (non-negative balance)
- payment_status flips to "refunded" only once the full total is refunded,
  or when the caller explicitly marks a partial refund as final
- Used standalone (admin refund) and inside the cancellation transaction
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Order, RefundRecord
from ..actors import Actor
from ..errors import OrderNotFound, RefundExceedsBalance
from ..statuses import PaymentStatus
from ..validation import ValidationError
from bookstore.time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction, check_expected_version


def _record_refund_locked(
    order: Order,
    *,
    amount_cents: int,
    reason: str,
    actor: Actor | None,
    mark_refunded: bool = False,
) -> RefundRecord:
    """
    Append a refund to an already locked order. Flushes, does not commit.

    The caller owns the transaction so a cancellation can record its status
    change and its refund atomically.
    """
    balance = order.total_cents - order.refunded_amount_cents
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("Refund amount must be an integer number of paise")
    if amount_cents <= 0 or amount_cents > balance:
        raise RefundExceedsBalance(
            f"Refund of {amount_cents} exceeds refundable balance of {balance} on order {order.order_number}"
            if amount_cents > 0 else "Refund amount must be positive",
            details={
                "requested_cents": amount_cents,
                "refundable_balance_cents": balance,
                "total_cents": order.total_cents,
                "refunded_amount_cents": order.refunded_amount_cents,
            },
        )

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Refund reason is required")

    order.refunded_amount_cents = order.refunded_amount_cents + amount_cents

    record = RefundRecord(
        order_id=order.id,
        amount_cents=amount_cents,
        reason=reason[:255],
        refunded_total_after_cents=order.refunded_amount_cents,
        processed_by=actor.id if actor else None,
        processed_by_role=actor.role if actor else None,
        processed_at=utcnow(),
    )
    db.session.add(record)

    if order.refunded_amount_cents == order.total_cents or mark_refunded:
        order.payment_status = PaymentStatus.REFUNDED.value

    db.session.flush()

    current_app.logger.info(
        "Refund %s of %s recorded on order %s (refunded %s/%s)",
        record.id, amount_cents, order.order_number,
        order.refunded_amount_cents, order.total_cents,
    )
    return record


def record_refund(
    order_id: int,
    *,
    amount_cents: int,
    reason: str,
    actor: Actor,
    mark_refunded: bool = False,
    expected_version: int | None = None,
) -> RefundRecord:
    """
    Record a refund against an order.

    Args:
        order_id: Order being refunded
        amount_cents: Amount to refund (paise), must not exceed the balance
        reason: Why the refund is issued (required; corrections need their own reason)
        actor: Who processed the refund
        mark_refunded: Treat a partial refund as final for payment_status
        expected_version: Optional optimistic concurrency check

    Raises:
        OrderNotFound, RefundExceedsBalance, StaleOrderVersion, ValidationError
    """
    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise OrderNotFound(f"Order {order_id} not found")
        check_expected_version(order, expected_version)

        record = _record_refund_locked(
            order,
            amount_cents=amount_cents,
            reason=reason,
            actor=actor,
            mark_refunded=mark_refunded,
        )
        db.session.commit()
        return record

    return run_in_transaction(_op)


def get_order_refunds(order_id: int) -> list[RefundRecord]:
    """Get all refunds for an order, oldest first."""
    if db.session.get(Order, order_id) is None:
        raise OrderNotFound(f"Order {order_id} not found")
    return (
        db.session.query(RefundRecord)
        .filter_by(order_id=order_id)
        .order_by(RefundRecord.id.asc())
        .all()
    )


def get_refund_summary(order_id: int) -> dict:
    """Refund position of an order: total, refunded, balance and records."""
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found")
    refunds = get_order_refunds(order_id)
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "total_cents": order.total_cents,
        "refunded_amount_cents": order.refunded_amount_cents,
        "refundable_balance_cents": order.refundable_balance_cents,
        "payment_status": order.payment_status,
        "refunds": [r.to_dict() for r in refunds],
    }
