# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/bookstore/routes/orders.py
"""
Order API Routes

DESIGN:
- Checkout creates an order from the cart snapshot (customer)
- Status changes go through the order state machine (admin)
- Cancellation is open to the buying customer until the order ships
- Refunds are appended to the refund ledger (admin)
- Gateway outcomes update the payment status (admin)

Request bodies use the storefront's field names (orderStatus,
trackingNumber, refundAmount in rupees); responses report money in paise.

STATUS CODES:
    200/201 success, 400 malformed input, 404 unknown order,
    409 invalid transition or stale version, 422 business rule violation
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Order
from ..extensions import db
from ..errors import OrderError, OrderNotFound
from ..statuses import OrderStatus
from ..services import (
    checkout_service,
    history_service,
    lifecycle_service,
    payment_service,
    payout_service,
    refund_service,
)
from ..services.checkout_service import CartLine
from ..validation import (
    ValidationError,
    clean_text,
    parse_bool,
    parse_amount_cents,
    parse_optional_int,
    parse_positive_int,
    require_json_object,
)
from ..decorators import require_actor, require_role


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _visible_order(order_id: int) -> Order:
    """Admins see every order; customers only their own."""
    order = db.session.get(Order, order_id)
    if order is None or (g.actor.is_customer and order.customer_id != g.actor.id):
        raise OrderNotFound(f"Order {order_id} not found")
    return order


def _parse_cart_lines(raw_items) -> list[CartLine]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        lines.append(CartLine(
            book_id=parse_positive_int(raw.get("bookId"), f"items[{idx}].bookId"),
            seller_id=parse_optional_int(raw.get("sellerId"), f"items[{idx}].sellerId"),
            unit_price_cents=parse_amount_cents(raw.get("price"), f"items[{idx}].price", allow_zero=True),
            quantity=parse_positive_int(raw.get("quantity"), f"items[{idx}].quantity"),
            title=clean_text(raw.get("title"), f"items[{idx}].title"),
        ))
    return lines


# =============================================================================
# CHECKOUT
# =============================================================================

@orders_bp.post("")
@orders_bp.post("/")
@require_actor
@require_role("customer")
def place_order_route():
    """
    Place an order (status: pending).

    Request body:
    {
        "items": [{"bookId": 7, "sellerId": 3, "title": "...", "price": 450, "quantity": 2}],
        "shippingAddress": {"zipCode": "700019", ...},
        "couponCode": "WELCOME10",  (optional)
        "couponDiscount": 90,  (optional, rupees, already validated upstream)
        "customer": {"name": "...", "email": "..."},  (optional)
        "paymentStatus": "paid",  (optional, default: pending)
        "paymentReference": "pay_abc"  (optional)
    }

    Returns:
        201: Order created
        400: Invalid input
    """
    try:
        data = require_json_object(request.get_json(silent=True))

        lines = _parse_cart_lines(data.get("items"))
        address = data.get("shippingAddress") or {}
        pincode = data.get("pincode") or (address.get("zipCode") if isinstance(address, dict) else None)

        coupon_discount_cents = 0
        if data.get("couponDiscount") not in (None, "", 0):
            coupon_discount_cents = parse_amount_cents(data.get("couponDiscount"), "couponDiscount", allow_zero=True)

        customer = data.get("customer") or {}
        if not isinstance(customer, dict):
            raise ValidationError("customer must be an object")

        order = checkout_service.place_order(
            g.actor,
            lines,
            pincode=pincode,
            coupon_code=clean_text(data.get("couponCode"), "couponCode", max_length=64),
            coupon_discount_cents=coupon_discount_cents,
            customer_name=clean_text(customer.get("name"), "customer.name"),
            customer_email=clean_text(customer.get("email"), "customer.email"),
            payment_status=(data.get("paymentStatus") or "pending"),
            payment_reference=clean_text(data.get("paymentReference"), "paymentReference", max_length=128),
        )
        return jsonify({"order": order.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to place order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@orders_bp.get("")
@orders_bp.get("/")
@require_actor
@require_role("admin", "customer")
def list_orders_route():
    """
    List orders, newest first.

    Query params:
    - status: Filter by order status
    - page, per_page: Pagination (default 1, 20)

    Customers only get their own orders.
    """
    try:
        status = request.args.get("status")
        page = request.args.get("page", 1, type=int)
        per_page = request.args.get("per_page", 20, type=int)

        stmt = db.select(Order)
        if g.actor.is_customer:
            stmt = stmt.filter(Order.customer_id == g.actor.id)
        if status:
            try:
                stmt = stmt.filter(Order.status == OrderStatus.parse(status).value)
            except ValueError as exc:
                raise ValidationError(str(exc))
        stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc())

        pagination = db.paginate(stmt, page=page, per_page=per_page, max_per_page=100, error_out=False)
        return jsonify({
            "orders": [o.to_dict(include_items=False) for o in pagination.items],
            "pagination": {
                "page": pagination.page,
                "per_page": pagination.per_page,
                "total": pagination.total,
                "pages": pagination.pages,
            },
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@orders_bp.get("/<int:order_id>")
@require_actor
@require_role("admin", "customer")
def get_order_route(order_id: int):
    try:
        order = _visible_order(order_id)
        return jsonify({
            "order": order.to_dict(),
            "can_cancel": lifecycle_service.can_customer_cancel(order),
        }), 200
    except OrderError as e:
        return jsonify(e.to_dict()), e.http_status


@orders_bp.get("/<int:order_id>/history")
@require_actor
@require_role("admin", "customer")
def get_order_history_route(order_id: int):
    """Status history of an order, oldest first."""
    try:
        order = _visible_order(order_id)
        entries = history_service.get_status_history(order.id)
        return jsonify({
            "order_id": order.id,
            "status_history": [e.to_dict() for e in entries],
        }), 200
    except OrderError as e:
        return jsonify(e.to_dict()), e.http_status


@orders_bp.get("/<int:order_id>/history/<int:sequence>")
@require_actor
@require_role("admin", "customer")
def get_order_history_entry_route(order_id: int, sequence: int):
    """A single status history entry by its per-order sequence number."""
    try:
        order = _visible_order(order_id)
        entry = history_service.get_status_entry(order.id, sequence)
        if entry is None:
            return jsonify({"error": f"History entry {sequence} not found"}), 404
        return jsonify({"entry": entry.to_dict()}), 200
    except OrderError as e:
        return jsonify(e.to_dict()), e.http_status


@orders_bp.get("/<int:order_id>/refunds")
@require_actor
@require_role("admin", "customer")
def get_order_refunds_route(order_id: int):
    try:
        order = _visible_order(order_id)
        return jsonify(refund_service.get_refund_summary(order.id)), 200
    except OrderError as e:
        return jsonify(e.to_dict()), e.http_status


@orders_bp.get("/<int:order_id>/payouts")
@require_actor
@require_role("admin")
def get_order_payouts_route(order_id: int):
    try:
        payouts = payout_service.get_order_payouts(order_id)
        return jsonify({
            "order_id": order_id,
            "payouts": [p.to_dict() for p in payouts],
        }), 200
    except OrderError as e:
        return jsonify(e.to_dict()), e.http_status


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

@orders_bp.patch("/<int:order_id>/status")
@require_actor
@require_role("admin")
def update_order_status_route(order_id: int):
    """
    Move an order to a new status.

    Request body:
    {
        "orderStatus": "shipped",
        "trackingNumber": "DTDC123",  (required for shipped/delivered unless on file)
        "notes": "Handed to courier",  (optional)
        "version": 3  (optional optimistic concurrency check)
    }

    Returns:
        200: Updated order (changed=false if already in that status)
        404: Unknown order
        409: Invalid transition or stale version
        422: Missing tracking number
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        target = data.get("orderStatus")
        if not target:
            return jsonify({"error": "orderStatus required"}), 400

        result = lifecycle_service.transition(
            order_id,
            target,
            g.actor,
            tracking_number=clean_text(data.get("trackingNumber"), "trackingNumber", max_length=128),
            notes=clean_text(data.get("notes"), "notes", max_length=500),
            reason=clean_text(data.get("reason"), "reason"),
            expected_version=parse_optional_int(data.get("version"), "version"),
        )
        return jsonify(result.to_dict()), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/cancel")
@require_actor
@require_role("admin", "customer")
def cancel_order_route(order_id: int):
    """
    Cancel an order.

    Request body:
    {
        "reason": "Ordered by mistake",  (optional)
        "version": 3  (optional)
    }

    Cancelling before shipment refunds the remaining balance and restores
    stock in the same transaction.

    Returns:
        200: Order cancelled, with the refund and catalog events created
        409: Order can no longer be cancelled
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        result = lifecycle_service.cancel_order(
            order_id,
            g.actor,
            reason=clean_text(data.get("reason"), "reason"),
            expected_version=parse_optional_int(data.get("version"), "version"),
        )
        return jsonify(result.to_dict()), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# REFUNDS + PAYMENT EVENTS
# =============================================================================

@orders_bp.post("/<int:order_id>/refund")
@require_actor
@require_role("admin")
def refund_order_route(order_id: int):
    """
    Record a refund against an order.

    Request body:
    {
        "refundAmount": 250.50,  (rupees)
        "reason": "Damaged copy",
        "markRefunded": false,  (optional: treat a partial refund as final)
        "version": 3  (optional)
    }

    Returns:
        201: RefundRecord created
        422: Amount exceeds the refundable balance
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        reason = clean_text(data.get("reason"), "reason")
        if not reason:
            return jsonify({"error": "reason required"}), 400

        amount_cents = parse_amount_cents(data.get("refundAmount"), "refundAmount", allow_zero=True)

        record = refund_service.record_refund(
            order_id,
            amount_cents=amount_cents,
            reason=reason,
            actor=g.actor,
            mark_refunded=parse_bool(data.get("markRefunded"), "markRefunded"),
            expected_version=parse_optional_int(data.get("version"), "version"),
        )
        summary = refund_service.get_refund_summary(order_id)
        return jsonify({"refund": record.to_dict(), "summary": summary}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record refund")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/payment")
@require_actor
@require_role("admin")
def payment_event_route(order_id: int):
    """
    Apply a payment gateway outcome.

    Request body:
    {
        "paymentStatus": "paid" | "failed",
        "reference": "pay_abc"  (optional)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        order, changed = payment_service.record_payment_event(
            order_id,
            data.get("paymentStatus") or "",
            actor=g.actor,
            reference=clean_text(data.get("reference"), "reference", max_length=128),
            expected_version=parse_optional_int(data.get("version"), "version"),
        )
        return jsonify({"order": order.to_dict(), "changed": changed}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record payment event")
        return jsonify({"error": "Internal server error"}), 500
