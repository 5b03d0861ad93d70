# Overview: Outbox of stock notifications for the catalog collaborator.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import CatalogEvent, Order
from bookstore.time_utils import utcnow
from .concurrency import run_in_transaction


EVENT_STOCK_RESTORE = "STOCK_RESTORE"


class CatalogEventError(Exception):
    """Raised when an outbox event cannot be found or acknowledged."""
    pass


def emit_stock_restore(order: Order) -> list[CatalogEvent]:
    """
    Queue one STOCK_RESTORE event per order line.

    Called inside the cancellation transaction (flush, no commit) so the
    notice exists if and only if the cancellation does.
    """
    events = [
        CatalogEvent(
            event_type=EVENT_STOCK_RESTORE,
            order_id=order.id,
            book_id=item.book_id,
            quantity=item.quantity,
            created_at=utcnow(),
        )
        for item in order.items
    ]
    db.session.add_all(events)
    db.session.flush()
    current_app.logger.info(
        "Queued %d stock restoration event(s) for order %s", len(events), order.order_number
    )
    return events


def list_events(*, pending_only: bool = True, order_id: int | None = None, limit: int = 100) -> list[CatalogEvent]:
    q = db.session.query(CatalogEvent)
    if pending_only:
        q = q.filter(CatalogEvent.acknowledged_at.is_(None))
    if order_id is not None:
        q = q.filter(CatalogEvent.order_id == order_id)
    return q.order_by(CatalogEvent.id.asc()).limit(limit).all()


def acknowledge_event(event_id: int) -> CatalogEvent:
    """Mark an event as applied by the catalog. Acknowledging twice is a no-op."""
    def _op():
        event = db.session.get(CatalogEvent, event_id)
        if event is None:
            raise CatalogEventError(f"Catalog event {event_id} not found")
        if event.acknowledged_at is None:
            event.acknowledged_at = utcnow()
        db.session.commit()
        return event

    return run_in_transaction(_op)
