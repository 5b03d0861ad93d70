from __future__ import annotations

from ..extensions import db
from bookstore.time_utils import to_utc_z


class Customer(db.Model):
    """
    Buyer record mirrored from the identity provider.

    The id is the upstream user id, so orders can be attributed without
    owning authentication here.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "created_at": to_utc_z(self.created_at),
        }


class Seller(db.Model):
    """
    Payee for settlements.

    Sellers are soft deleted (deleted_at) so historical payouts keep their
    reference. Exactly one row carries is_platform=True: the platform payee
    that receives settlements for items whose seller no longer exists.
    """
    __tablename__ = "sellers"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_sellers_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    is_platform = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "email": self.email,
            "is_platform": self.is_platform,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
        }
