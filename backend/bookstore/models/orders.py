from __future__ import annotations

from ..extensions import db
from bookstore.time_utils import to_utc_z


class Order(db.Model):
    """
    Customer order placed at checkout.

    WHY: The order is the unit of fulfilment, refund and settlement.
    Items and amounts are frozen at placement; afterwards only the status
    (through the state machine), payment status and refund total change.

    Orders are never deleted. version_id is the optimistic concurrency
    revision: every UPDATE bumps it and a conflicting writer gets a
    StaleDataError on flush.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_customer_created", "customer_id", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.CheckConstraint("refunded_amount_cents >= 0", name="ck_orders_refund_non_negative"),
        db.CheckConstraint("refunded_amount_cents <= total_cents", name="ck_orders_refund_within_total"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable order number (e.g., "BK-000042")
    order_number = db.Column(db.String(64), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # Amounts fixed at placement (all in paise)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    shipping_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    coupon_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    coupon_code = db.Column(db.String(64), nullable=True)
    total_cents = db.Column(db.Integer, nullable=False)

    # Lifecycle
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_reference = db.Column(db.String(128), nullable=True)
    refunded_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    tracking_number = db.Column(db.String(128), nullable=True)
    shipping_pincode = db.Column(db.String(16), nullable=True)

    cancellation_reason = db.Column(db.String(255), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.position",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def refundable_balance_cents(self) -> int:
        return self.total_cents - self.refunded_amount_cents

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "subtotal_cents": self.subtotal_cents,
            "shipping_cost_cents": self.shipping_cost_cents,
            "tax_cents": self.tax_cents,
            "coupon_discount_cents": self.coupon_discount_cents,
            "coupon_code": self.coupon_code,
            "total_cents": self.total_cents,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_reference": self.payment_reference,
            "refunded_amount_cents": self.refunded_amount_cents,
            "refundable_balance_cents": self.refundable_balance_cents,
            "tracking_number": self.tracking_number,
            "shipping_pincode": self.shipping_pincode,
            "cancellation_reason": self.cancellation_reason,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Line item on an order. Immutable once the order is placed."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "position", name="uq_order_items_order_position"),
        db.Index("ix_order_items_seller", "seller_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    # Catalog references (books and sellers are owned elsewhere)
    book_id = db.Column(db.Integer, nullable=False, index=True)
    seller_id = db.Column(db.Integer, nullable=True)
    title = db.Column(db.String(255), nullable=True)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "position": self.position,
            "book_id": self.book_id,
            "seller_id": self.seller_id,
            "title": self.title,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
        }


class OrderStatusHistory(db.Model):
    """
    Append-only audit trail of order status changes.

    IMMUTABLE: Rows are never updated or deleted. `sequence` numbers the
    entries of one order 1..n so the log is index-addressable.
    """
    __tablename__ = "order_status_history"
    __table_args__ = (
        db.UniqueConstraint("order_id", "sequence", name="uq_order_status_history_seq"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    from_status = db.Column(db.String(16), nullable=True)
    status = db.Column(db.String(16), nullable=False)

    actor_id = db.Column(db.Integer, nullable=True)
    actor_role = db.Column(db.String(16), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    order = db.relationship(
        "Order",
        backref=db.backref("status_history", lazy=True, order_by="OrderStatusHistory.sequence"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "sequence": self.sequence,
            "from_status": self.from_status,
            "status": self.status,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "notes": self.notes,
            "timestamp": to_utc_z(self.created_at),
        }


class RefundRecord(db.Model):
    """
    Append-only ledger of refunds issued against an order.

    Sum of amount_cents per order always equals Order.refunded_amount_cents.
    A wrong refund is corrected by a new, separately reasoned record; rows
    are never reversed, updated or deleted.
    """
    __tablename__ = "order_refunds"
    __table_args__ = (
        db.Index("ix_order_refunds_order_processed", "order_id", "processed_at"),
        db.CheckConstraint("amount_cents > 0", name="ck_order_refunds_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    # Running total after this refund, for audit readability
    refunded_total_after_cents = db.Column(db.Integer, nullable=False)

    processed_by = db.Column(db.Integer, nullable=True)
    processed_by_role = db.Column(db.String(16), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("refunds", lazy=True, order_by="RefundRecord.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "refunded_total_after_cents": self.refunded_total_after_cents,
            "processed_by": self.processed_by,
            "processed_by_role": self.processed_by_role,
            "processed_at": to_utc_z(self.processed_at),
        }
