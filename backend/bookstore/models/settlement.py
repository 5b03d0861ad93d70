from __future__ import annotations

from ..extensions import db
from bookstore.time_utils import to_utc_z


class PayoutRecord(db.Model):
    """
    Seller settlement for one delivered order.

    WHY: Sellers are paid their share of an order minus the platform's
    commission and their share of shipping. The figures are computed once
    on delivery and frozen; only payment_status/paid_at move afterwards
    (pending/due -> paid).

    net_amount_cents = items_total_cents - admin_commission_cents - shipping_charge_cents,
    clamped at zero.
    """
    __tablename__ = "seller_payouts"
    __table_args__ = (
        db.UniqueConstraint("order_id", "seller_id", name="uq_seller_payouts_order_seller"),
        db.Index("ix_seller_payouts_seller_status", "seller_id", "payment_status"),
        db.Index("ix_seller_payouts_seller_created", "seller_id", "created_at"),
        db.CheckConstraint("net_amount_cents >= 0", name="ck_seller_payouts_net_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)

    items_total_cents = db.Column(db.Integer, nullable=False)
    commission_rate_bps = db.Column(db.Integer, nullable=False)
    admin_commission_cents = db.Column(db.Integer, nullable=False)
    shipping_charge_cents = db.Column(db.Integer, nullable=False)
    net_amount_cents = db.Column(db.Integer, nullable=False)

    payment_status = db.Column(db.String(16), nullable=False, default="due", index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_by = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", backref=db.backref("payouts", lazy=True, order_by="PayoutRecord.id"))
    seller = db.relationship("Seller", backref=db.backref("payouts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "seller_id": self.seller_id,
            "items_total_cents": self.items_total_cents,
            "commission_rate_bps": self.commission_rate_bps,
            "admin_commission_cents": self.admin_commission_cents,
            "shipping_charge_cents": self.shipping_charge_cents,
            "net_amount_cents": self.net_amount_cents,
            "payment_status": self.payment_status,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "paid_by": self.paid_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "version": self.version_id,
        }
