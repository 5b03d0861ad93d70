# Overview: Persisted platform settings with an audit trail of changes.

from __future__ import annotations

from typing import Any

from flask import current_app

from ..extensions import db
from ..models import PlatformSetting, PlatformSettingAudit
from ..actors import Actor
from ..validation import ValidationError
from .concurrency import run_in_transaction


COMMISSION_RATE_KEY = "settlement.commission_rate_bps"

MAX_COMMISSION_RATE_BPS = 10_000


def get_setting(key: str, default: Any = None) -> Any:
    row = db.session.query(PlatformSetting).filter_by(key=key).first()
    if row is None or row.value_json is None:
        return default
    return row.value_json


def set_setting(key: str, value: Any, *, actor: Actor | None = None) -> PlatformSetting:
    """Upsert a setting and append the change to the audit log."""
    def _op():
        row = db.session.query(PlatformSetting).filter_by(key=key).first()
        old_value = row.value_json if row else None
        if row is None:
            row = PlatformSetting(key=key)
            db.session.add(row)
        row.value_json = value
        row.updated_by = actor.id if actor else None

        db.session.add(PlatformSettingAudit(
            key=key,
            old_value_json=old_value,
            new_value_json=value,
            changed_by=actor.id if actor else None,
        ))
        db.session.commit()
        current_app.logger.info("Setting %s changed from %r to %r", key, old_value, value)
        return row

    return run_in_transaction(_op)


def get_setting_audit(key: str, limit: int = 50) -> list[PlatformSettingAudit]:
    return (
        db.session.query(PlatformSettingAudit)
        .filter_by(key=key)
        .order_by(PlatformSettingAudit.id.desc())
        .limit(limit)
        .all()
    )


def get_commission_rate_bps() -> int:
    """Commission applied to new settlements: saved setting, else config default."""
    value = get_setting(COMMISSION_RATE_KEY)
    if value is None:
        return int(current_app.config["COMMISSION_RATE_BPS"])
    return int(value)


def set_commission_rate_bps(rate_bps: int, *, actor: Actor | None = None) -> int:
    """
    Change the platform commission rate.

    Only settlements computed afterwards use the new rate; existing payout
    records keep the rate they were computed with.
    """
    if isinstance(rate_bps, bool) or not isinstance(rate_bps, int):
        raise ValidationError("Commission rate must be an integer number of basis points")
    if rate_bps < 0 or rate_bps > MAX_COMMISSION_RATE_BPS:
        raise ValidationError("Commission rate must be between 0% and 100%")
    set_setting(COMMISSION_RATE_KEY, rate_bps, actor=actor)
    return rate_bps
