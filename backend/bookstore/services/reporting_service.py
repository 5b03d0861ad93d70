# Overview: Settlement reporting over seller payouts, plus the mark-paid operation.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import PayoutRecord, Seller
from ..actors import Actor
from ..errors import AlreadyPaid, PayoutNotFound
from ..statuses import PayoutStatus
from ..validation import ValidationError
from bookstore.time_utils import to_utc_z, utcnow
from .concurrency import check_expected_version, lock_for_update, run_in_transaction


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


PAYABLE_STATUSES = (PayoutStatus.PENDING.value, PayoutStatus.DUE.value)


def _parse_status(status: str | None) -> str | None:
    if status in (None, "", "all"):
        return None
    try:
        return PayoutStatus(status).value
    except ValueError:
        raise ValidationError("status must be one of: pending, due, paid")


def _empty_breakdown() -> dict:
    return {s.value: {"count": 0, "net_amount_cents": 0} for s in PayoutStatus}


def monthly_summary(seller_id: int, *, year: int | None = None) -> dict:
    """
    Roll a seller's payouts up by calendar month of settlement.

    Each row carries the order count, gross/commission/shipping/net sums and
    a pending/due/paid breakdown. Totals cover the whole selection.
    """
    if db.session.get(Seller, seller_id) is None:
        raise ReportError(f"Seller {seller_id} not found")

    period_expr = func.strftime("%Y-%m", PayoutRecord.created_at)

    query = db.session.query(
        period_expr.label("period"),
        PayoutRecord.payment_status.label("payment_status"),
        func.count(PayoutRecord.id).label("orders_count"),
        func.coalesce(func.sum(PayoutRecord.items_total_cents), 0).label("items_total_cents"),
        func.coalesce(func.sum(PayoutRecord.admin_commission_cents), 0).label("admin_commission_cents"),
        func.coalesce(func.sum(PayoutRecord.shipping_charge_cents), 0).label("shipping_charge_cents"),
        func.coalesce(func.sum(PayoutRecord.net_amount_cents), 0).label("net_amount_cents"),
    ).filter(PayoutRecord.seller_id == seller_id)

    if year is not None:
        query = query.filter(func.strftime("%Y", PayoutRecord.created_at) == f"{int(year):04d}")

    rows = query.group_by("period", PayoutRecord.payment_status).order_by("period").all()

    months: dict[str, dict] = {}
    totals = {
        "orders_count": 0,
        "items_total_cents": 0,
        "admin_commission_cents": 0,
        "shipping_charge_cents": 0,
        "net_amount_cents": 0,
        "by_status": _empty_breakdown(),
    }
    for row in rows:
        month = months.setdefault(row.period, {
            "period": row.period,
            "orders_count": 0,
            "items_total_cents": 0,
            "admin_commission_cents": 0,
            "shipping_charge_cents": 0,
            "net_amount_cents": 0,
            "by_status": _empty_breakdown(),
        })
        for bucket in (month, totals):
            bucket["orders_count"] += int(row.orders_count or 0)
            bucket["items_total_cents"] += int(row.items_total_cents or 0)
            bucket["admin_commission_cents"] += int(row.admin_commission_cents or 0)
            bucket["shipping_charge_cents"] += int(row.shipping_charge_cents or 0)
            bucket["net_amount_cents"] += int(row.net_amount_cents or 0)
            status_bucket = bucket["by_status"].setdefault(row.payment_status, {"count": 0, "net_amount_cents": 0})
            status_bucket["count"] += int(row.orders_count or 0)
            status_bucket["net_amount_cents"] += int(row.net_amount_cents or 0)

    return {
        "seller_id": seller_id,
        "year": year,
        "rows": list(months.values()),
        "totals": totals,
    }


def payout_listing_row(payout: PayoutRecord) -> dict:
    """Seller-facing view of one payout, with order and buyer context."""
    order = payout.order
    customer = order.customer
    return {
        "id": payout.id,
        "order_id": order.id,
        "order_number": order.order_number,
        "order_date": to_utc_z(order.created_at),
        "delivered_at": to_utc_z(order.delivered_at) if order.delivered_at else None,
        "customer": {
            "id": customer.id,
            "name": customer.name,
            "email": customer.email,
        } if customer else None,
        "seller_id": payout.seller_id,
        "items_total_cents": payout.items_total_cents,
        "commission_rate_bps": payout.commission_rate_bps,
        "admin_commission_cents": payout.admin_commission_cents,
        "shipping_charge_cents": payout.shipping_charge_cents,
        "net_amount_cents": payout.net_amount_cents,
        "payment_status": payout.payment_status,
        "paid_at": to_utc_z(payout.paid_at) if payout.paid_at else None,
        "notes": payout.notes,
    }


def list_payouts(
    *,
    seller_id: int | None = None,
    status: str | None = None,
    page: int = 1,
    per_page: int | None = None,
) -> dict:
    """Paginated payouts, newest first, optionally for one seller and status."""
    status_value = _parse_status(status)
    per_page = per_page or current_app.config["PAYOUTS_PER_PAGE"]

    stmt = db.select(PayoutRecord)
    if seller_id is not None:
        stmt = stmt.filter(PayoutRecord.seller_id == seller_id)
    if status_value:
        stmt = stmt.filter(PayoutRecord.payment_status == status_value)
    stmt = stmt.order_by(PayoutRecord.created_at.desc(), PayoutRecord.id.desc())

    pagination = db.paginate(stmt, page=page, per_page=per_page, max_per_page=100, error_out=False)
    return {
        "payments": [payout_listing_row(p) for p in pagination.items],
        "pagination": {
            "page": pagination.page,
            "per_page": pagination.per_page,
            "total": pagination.total,
            "pages": pagination.pages,
        },
    }


def mark_paid(
    payout_id: int,
    actor: Actor,
    *,
    notes: str | None = None,
    expected_version: int | None = None,
) -> PayoutRecord:
    """
    Record that a seller has been paid (pending/due -> paid).

    Raises:
        PayoutNotFound, AlreadyPaid, StaleOrderVersion
    """
    def _op():
        payout = lock_for_update(db.session.query(PayoutRecord).filter_by(id=payout_id)).first()
        if not payout:
            raise PayoutNotFound(f"Payout {payout_id} not found")
        check_expected_version(payout, expected_version)

        if payout.payment_status == PayoutStatus.PAID.value:
            raise AlreadyPaid(
                f"Payout {payout_id} was already paid",
                details={"paid_at": to_utc_z(payout.paid_at)},
            )

        payout.payment_status = PayoutStatus.PAID.value
        payout.paid_at = utcnow()
        payout.paid_by = actor.id
        if notes:
            payout.notes = notes.strip()[:500]

        db.session.commit()
        current_app.logger.info(
            "Payout %s for seller %s marked paid (%s) by %s",
            payout.id, payout.seller_id, payout.net_amount_cents, actor.id,
        )
        return payout

    return run_in_transaction(_op)
