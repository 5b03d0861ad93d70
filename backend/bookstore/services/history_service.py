# Overview: Append-only status history for orders.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Order, OrderStatusHistory
from ..actors import Actor
from ..errors import OrderNotFound
from bookstore.time_utils import utcnow

"""
Status history invariants

- Append-only: entries are added, never updated or deleted.
- Entries are written inside the same DB transaction as the status change
  they record; there is no commit here.
- `sequence` runs 1..n per order without gaps, so entry k of an order is
  addressable directly.
"""


def append_status_entry(
    *,
    order: Order,
    from_status: str | None,
    status: str,
    actor: Actor | None,
    notes: str | None = None,
) -> OrderStatusHistory:
    last_sequence = (
        db.session.query(func.max(OrderStatusHistory.sequence))
        .filter(OrderStatusHistory.order_id == order.id)
        .scalar()
    )

    entry = OrderStatusHistory(
        order_id=order.id,
        sequence=(last_sequence or 0) + 1,
        from_status=from_status,
        status=status,
        actor_id=actor.id if actor else None,
        actor_role=actor.role if actor else None,
        notes=notes,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def get_status_history(order_id: int) -> list[OrderStatusHistory]:
    """Full status history of an order, oldest first."""
    if db.session.get(Order, order_id) is None:
        raise OrderNotFound(f"Order {order_id} not found")
    return (
        db.session.query(OrderStatusHistory)
        .filter_by(order_id=order_id)
        .order_by(OrderStatusHistory.sequence.asc())
        .all()
    )


def get_status_entry(order_id: int, sequence: int) -> OrderStatusHistory | None:
    return (
        db.session.query(OrderStatusHistory)
        .filter_by(order_id=order_id, sequence=sequence)
        .first()
    )
