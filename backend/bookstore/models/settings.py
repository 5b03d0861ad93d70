from __future__ import annotations

from ..extensions import db
from bookstore.time_utils import to_utc_z


class PlatformSetting(db.Model):
    """Platform-wide setting overriding the static configuration default."""
    __tablename__ = "platform_settings"
    __table_args__ = (
        db.UniqueConstraint("key", name="uq_platform_settings_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(255), nullable=False)
    value_json = db.Column(db.JSON, nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "value_json": self.value_json,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PlatformSettingAudit(db.Model):
    """
    Immutable audit log for setting changes.
    """
    __tablename__ = "platform_settings_audit"
    __table_args__ = (
        db.Index("ix_platform_settings_audit_key", "key"),
        db.Index("ix_platform_settings_audit_changed_at", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(255), nullable=False)
    old_value_json = db.Column(db.JSON, nullable=True)
    new_value_json = db.Column(db.JSON, nullable=True)
    changed_by = db.Column(db.Integer, nullable=True)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "old_value_json": self.old_value_json,
            "new_value_json": self.new_value_json,
            "changed_by": self.changed_by,
            "changed_at": to_utc_z(self.changed_at),
        }
