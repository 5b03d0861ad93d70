# Overview: Order state machine; validates and applies order status transitions.

"""
Bookstore Order Lifecycle Service

================================================================================
PURPOSE: Enforce the order status state machine and its side effects
================================================================================

STATE MACHINE:
    pending -> confirmed -> processing -> shipped -> delivered
    cancelled  (from pending/confirmed/processing; from shipped by admin only)
    returned   (from shipped)

    delivered, cancelled, returned are terminal.

RULES (NON-NEGOTIABLE):
1. No backward transitions (delivered -> processing is forbidden)
2. Forward moves along the happy path may skip steps
3. Customers may only cancel, only their own order, only before shipping
4. shipped/delivered require a tracking number on the order or in the request
5. Re-issuing a transition to the current status is a no-op success
6. Every applied transition appends exactly one status history entry

SIDE EFFECTS (same DB transaction as the status change):
- cancelled before shipping: full refund of the remaining balance and one
  stock-restoration notice per line for the catalog
- delivered: seller settlement for every seller in the order
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..models import Order, OrderStatusHistory, RefundRecord, PayoutRecord, CatalogEvent
from ..actors import Actor
from ..errors import AlreadySettled, InvalidTransition, MissingTrackingNumber, OrderNotFound
from ..statuses import (
    CUSTOMER_CANCELLABLE,
    FULFILMENT_SEQUENCE,
    REQUIRES_TRACKING,
    TERMINAL_STATUSES,
    OrderStatus,
)
from ..validation import ValidationError
from bookstore.time_utils import utcnow
from . import catalog_service, history_service, payout_service
from .concurrency import check_expected_version, lock_for_update, run_in_transaction
from .refund_service import _record_refund_locked


def _build_transition_table() -> dict[OrderStatus, frozenset[OrderStatus]]:
    table: dict[OrderStatus, frozenset[OrderStatus]] = {}
    for idx, status in enumerate(FULFILMENT_SEQUENCE):
        if status in TERMINAL_STATUSES:
            table[status] = frozenset()
            continue
        forward = set(FULFILMENT_SEQUENCE[idx + 1:])
        forward.add(OrderStatus.CANCELLED)
        if status == OrderStatus.SHIPPED:
            forward.add(OrderStatus.RETURNED)
        table[status] = frozenset(forward)
    table[OrderStatus.CANCELLED] = frozenset()
    table[OrderStatus.RETURNED] = frozenset()
    return table


ALLOWED_TRANSITIONS = _build_transition_table()


@dataclass
class TransitionResult:
    order: Order
    changed: bool
    history_entry: OrderStatusHistory | None = None
    refund: RefundRecord | None = None
    payouts: list[PayoutRecord] = field(default_factory=list)
    catalog_events: list[CatalogEvent] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(),
            "changed": self.changed,
            "history_entry": self.history_entry.to_dict() if self.history_entry else None,
            "refund": self.refund.to_dict() if self.refund else None,
            "payouts": [p.to_dict() for p in self.payouts],
            "catalog_events": [e.to_dict() for e in self.catalog_events],
        }


def can_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    """
    Check a move against the transition table.

    A transition to the same state is allowed here (treated as a no-op by
    transition()).
    """
    if from_status == to_status:
        return True
    return to_status in ALLOWED_TRANSITIONS[from_status]


def can_customer_cancel(order: Order) -> bool:
    return OrderStatus(order.status) in CUSTOMER_CANCELLABLE


def _check_actor(order: Order, current: OrderStatus, target: OrderStatus, actor: Actor) -> None:
    if actor.is_admin:
        return

    if actor.is_customer:
        if target != OrderStatus.CANCELLED:
            raise InvalidTransition("Customers can only cancel orders")
        if current not in CUSTOMER_CANCELLABLE:
            raise InvalidTransition(
                f"Order {order.order_number} can no longer be cancelled (status: {current.value}); "
                "orders can be cancelled until they are shipped",
                details={"status": current.value},
            )
        return

    raise InvalidTransition(f"Role '{actor.role}' cannot change order status")


def _load_order_for(order_id: int, actor: Actor) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    # Customers only see their own orders; do not reveal that others exist.
    if not order or (actor.is_customer and order.customer_id != actor.id):
        raise OrderNotFound(f"Order {order_id} not found")
    return order


def transition(
    order_id: int,
    target_status: str | OrderStatus,
    actor: Actor,
    *,
    tracking_number: str | None = None,
    notes: str | None = None,
    reason: str | None = None,
    expected_version: int | None = None,
) -> TransitionResult:
    """
    Validate and apply an order status transition.

    Args:
        order_id: Order to move
        target_status: Requested status
        actor: Admin (any transition) or customer (cancel only)
        tracking_number: Sets/overrides the order's tracking number
        notes: Free text stored on the history entry
        reason: Cancellation reason
        expected_version: Optional optimistic concurrency check

    Returns:
        TransitionResult; changed=False when target equals the current status

    Raises:
        OrderNotFound, InvalidTransition, MissingTrackingNumber, StaleOrderVersion
    """
    try:
        target = target_status if isinstance(target_status, OrderStatus) else OrderStatus.parse(target_status)
    except ValueError as exc:
        raise ValidationError(str(exc))

    def _op():
        order = _load_order_for(order_id, actor)
        check_expected_version(order, expected_version)
        current = OrderStatus(order.status)

        _check_actor(order, current, target, actor)

        if current == target:
            return TransitionResult(order=order, changed=False)

        if not can_transition(current, target):
            raise InvalidTransition(
                f"Cannot move order {order.order_number} from '{current.value}' to '{target.value}'",
                details={"from": current.value, "to": target.value},
            )

        tracking = (tracking_number or "").strip() or None
        if target in REQUIRES_TRACKING:
            if tracking:
                order.tracking_number = tracking
            if not (order.tracking_number or "").strip():
                raise MissingTrackingNumber(
                    f"A tracking number is required before order {order.order_number} can be {target.value}"
                )
        elif tracking:
            order.tracking_number = tracking

        order.status = target.value
        result = TransitionResult(order=order, changed=True)

        if target == OrderStatus.CANCELLED:
            _apply_cancellation(order, current, actor, reason, result)
        elif target == OrderStatus.DELIVERED:
            _apply_delivery(order, result)

        result.history_entry = history_service.append_status_entry(
            order=order,
            from_status=current.value,
            status=target.value,
            actor=actor,
            notes=notes or reason,
        )

        db.session.commit()
        current_app.logger.info(
            "Order %s moved %s -> %s by %s %s",
            order.order_number, current.value, target.value, actor.role, actor.id,
        )
        return result

    return run_in_transaction(_op)


def _apply_cancellation(
    order: Order,
    previous: OrderStatus,
    actor: Actor,
    reason: str | None,
    result: TransitionResult,
) -> None:
    order.cancelled_at = utcnow()
    order.cancellation_reason = (reason or "").strip()[:255] or None

    if previous not in CUSTOMER_CANCELLABLE:
        # Parcel already left; refunds go through the ledger explicitly.
        return

    balance = order.refundable_balance_cents
    if balance > 0:
        result.refund = _record_refund_locked(
            order,
            amount_cents=balance,
            reason=f"Order cancelled: {order.cancellation_reason or 'no reason given'}",
            actor=actor,
        )
    result.catalog_events = catalog_service.emit_stock_restore(order)


def _apply_delivery(order: Order, result: TransitionResult) -> None:
    order.delivered_at = utcnow()
    try:
        result.payouts = payout_service._settle_locked(order, payout_service.current_policy())
    except AlreadySettled as exc:
        current_app.logger.info("%s; keeping existing payouts", exc)
        result.payouts = exc.payouts


def cancel_order(
    order_id: int,
    actor: Actor,
    *,
    reason: str | None = None,
    expected_version: int | None = None,
) -> TransitionResult:
    """Cancellation path (customer or admin); see transition()."""
    return transition(
        order_id,
        OrderStatus.CANCELLED,
        actor,
        reason=reason or ("Cancelled by user" if actor.is_customer else None),
        expected_version=expected_version,
    )


def get_orders_by_status(status: str, *, limit: int = 200) -> list[Order]:
    """
    Query orders by lifecycle status, newest first.

    USAGE EXAMPLES:
    - Orders to pack: get_orders_by_status("processing")
    - Orders awaiting delivery confirmation: get_orders_by_status("shipped")
    """
    target = OrderStatus.parse(status)
    return (
        db.session.query(Order)
        .filter_by(status=target.value)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )
