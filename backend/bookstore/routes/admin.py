# Overview: Flask API routes for admin settlement operations; parses input and returns JSON responses.

# backend/bookstore/routes/admin.py
"""
Admin routes for settlement.

Provides endpoints for:
- Settling a delivered order (retry path when settlement at delivery failed)
- Listing payouts across sellers and marking them paid
- Reading and changing the platform commission rate

All endpoints require the admin role.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import OrderError
from ..services import payout_service, reporting_service, settings_service
from ..services.settings_service import COMMISSION_RATE_KEY
from ..validation import (
    ValidationError,
    clean_text,
    parse_optional_int,
    parse_percent_to_bps,
    require_json_object,
)
from ..decorators import require_actor, require_role

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# SETTLEMENT
# =============================================================================

@admin_bp.post("/orders/<int:order_id>/settle")
@require_actor
@require_role("admin")
def settle_order(order_id: int):
    """
    Compute seller payouts for a delivered order.

    Returns:
        201: Payouts created
        200: Order was already settled (existing payouts returned)
        404: Unknown order
        409: Order is not delivered
    """
    try:
        result = payout_service.settle_delivery(order_id)
        return jsonify(result.to_dict()), (200 if result.already_settled else 201)
    except OrderError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to settle order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYOUTS
# =============================================================================

@admin_bp.get("/payouts")
@require_actor
@require_role("admin")
def list_payouts():
    """
    List payouts.

    Query params:
    - seller_id: Filter by seller
    - status: pending | due | paid | all
    - page, per_page: Pagination
    """
    try:
        result = reporting_service.list_payouts(
            seller_id=request.args.get("seller_id", type=int),
            status=request.args.get("status"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@admin_bp.patch("/payouts/<int:payout_id>/paid")
@require_actor
@require_role("admin")
def mark_payout_paid(payout_id: int):
    """
    Mark a payout as paid.

    Request body:
    {
        "notes": "NEFT ref 1234",  (optional)
        "version": 1  (optional)
    }

    Returns:
        200: Payout updated
        404: Unknown payout
        409: Already paid, or stale version
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        payout = reporting_service.mark_paid(
            payout_id,
            g.actor,
            notes=clean_text(data.get("notes"), "notes", max_length=500),
            expected_version=parse_optional_int(data.get("version"), "version"),
        )
        return jsonify({"payout": payout.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to mark payout paid")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# COMMISSION
# =============================================================================

def _commission_payload() -> dict:
    rate_bps = settings_service.get_commission_rate_bps()
    return {
        "commission_rate_bps": rate_bps,
        "commission_rate_percent": rate_bps / 100,
    }


@admin_bp.get("/settings/commission")
@require_actor
@require_role("admin")
def get_commission():
    payload = _commission_payload()
    payload["history"] = [a.to_dict() for a in settings_service.get_setting_audit(COMMISSION_RATE_KEY)]
    return jsonify(payload), 200


@admin_bp.patch("/settings/commission")
@require_actor
@require_role("admin")
def update_commission():
    """
    Change the commission rate used for future settlements.

    Request body:
    {
        "commissionRate": 2.5  (percent)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        rate_bps = parse_percent_to_bps(data.get("commissionRate"), "commissionRate")
        settings_service.set_commission_rate_bps(rate_bps, actor=g.actor)
        return jsonify(_commission_payload()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
