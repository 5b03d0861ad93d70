# Overview: Flask API routes for the catalog stock-event outbox.

# backend/bookstore/routes/catalog.py
"""
Catalog event routes.

The catalog service polls pending events and acknowledges each one once
the stock change is applied on its side.
"""

from flask import Blueprint, request, jsonify

from ..services import catalog_service
from ..services.catalog_service import CatalogEventError
from ..decorators import require_actor, require_role

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.get("/events")
@require_actor
@require_role("admin")
def list_events():
    """
    Query params:
    - pending: 1 (default) for unacknowledged events only, 0 for all
    - order_id: Filter by order
    - limit: Max rows (default 100)
    """
    pending_only = request.args.get("pending", "1").lower() not in ("0", "false", "no")
    events = catalog_service.list_events(
        pending_only=pending_only,
        order_id=request.args.get("order_id", type=int),
        limit=min(request.args.get("limit", 100, type=int), 500),
    )
    return jsonify({"events": [e.to_dict() for e in events], "count": len(events)}), 200


@catalog_bp.post("/events/<int:event_id>/ack")
@require_actor
@require_role("admin")
def acknowledge_event(event_id: int):
    try:
        event = catalog_service.acknowledge_event(event_id)
        return jsonify({"event": event.to_dict()}), 200
    except CatalogEventError as e:
        return jsonify({"error": str(e)}), 404
