# Overview: Flask API routes for seller payout reports; returns JSON responses.

# backend/bookstore/routes/seller.py
"""
Seller payment report routes.

A seller only ever sees their own payouts: the seller id is the
authenticated actor id, never a query parameter.
"""

from flask import Blueprint, request, jsonify, g

from ..services import reporting_service
from ..services.reporting_service import ReportError
from ..validation import ValidationError
from ..decorators import require_actor, require_role

seller_bp = Blueprint("seller", __name__, url_prefix="/api/seller")


@seller_bp.get("/payments")
@require_actor
@require_role("seller")
def list_my_payments():
    """
    List the seller's payouts, newest first.

    Query params:
    - status: pending | due | paid | all (default: all)
    - page, per_page: Pagination
    """
    try:
        page = request.args.get("page", 1, type=int)
        per_page = request.args.get("per_page", type=int)
        result = reporting_service.list_payouts(
            seller_id=g.actor.id,
            status=request.args.get("status"),
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@seller_bp.get("/payments/summary")
@require_actor
@require_role("seller")
def my_payments_summary():
    """
    Monthly roll-up of the seller's payouts.

    Query params:
    - year: Restrict to one calendar year (optional)
    """
    year = request.args.get("year", type=int)
    try:
        return jsonify(reporting_service.monthly_summary(g.actor.id, year=year)), 200
    except ReportError as e:
        return jsonify({"error": str(e)}), 404
