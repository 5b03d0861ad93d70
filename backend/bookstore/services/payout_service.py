"""
Seller Payout Service

WHY: When an order is delivered, each seller whose books were in it is owed
their gross sales minus the platform commission and their share of the
order's shipping cost. These figures are computed exactly once per
(order, seller) and frozen for settlement.

ARITHMETIC (all integer paise):
- items_total      = sum(unit_price * quantity) over the seller's lines
- admin_commission = items_total * commission_rate, rounded half up to the paisa
- shipping_charge  = seller's share of order.shipping_cost (allocation policy)
- net_amount       = max(0, items_total - admin_commission - shipping_charge)

SHIPPING ALLOCATION:
Pluggable. The default apportions shipping by each seller's share of the
subtotal, using largest remainders so the shares sum exactly to the
order's shipping cost.

IDEMPOTENCE:
Settling an order that already has payout records writes nothing and
reports AlreadySettled. Duplicate "delivered" events therefore never pay
twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from flask import current_app

from ..extensions import db
from ..models import Order, PayoutRecord, Seller
from ..errors import AlreadySettled, InvalidTransition, OrderNotFound, SellerMissing
from ..statuses import OrderStatus, PayoutStatus
from . import settings_service
from .concurrency import lock_for_update, run_in_transaction


ShippingAllocator = Callable[[int, list[tuple[int, int]]], dict[int, int]]


# =============================================================================
# SHIPPING ALLOCATION POLICIES
# =============================================================================

def allocate_equal(shipping_cents: int, seller_totals: list[tuple[int, int]]) -> dict[int, int]:
    """Split shipping evenly; leftover paise go to the earliest sellers."""
    if not seller_totals:
        return {}
    base, extra = divmod(shipping_cents, len(seller_totals))
    return {
        seller_id: base + (1 if idx < extra else 0)
        for idx, (seller_id, _) in enumerate(seller_totals)
    }


def allocate_proportional(shipping_cents: int, seller_totals: list[tuple[int, int]]) -> dict[int, int]:
    """
    Split shipping in proportion to each seller's items total.

    Floors every share, then hands the leftover paise to the largest
    fractional remainders (earliest seller wins ties). Falls back to an
    even split when the subtotal is zero.
    """
    if not seller_totals:
        return {}
    subtotal = sum(total for _, total in seller_totals)
    if subtotal <= 0:
        return allocate_equal(shipping_cents, seller_totals)

    shares: dict[int, int] = {}
    remainders = []
    for idx, (seller_id, total) in enumerate(seller_totals):
        share, remainder = divmod(shipping_cents * total, subtotal)
        shares[seller_id] = share
        remainders.append((-remainder, idx, seller_id))

    leftover = shipping_cents - sum(shares.values())
    for _, _, seller_id in sorted(remainders)[:leftover]:
        shares[seller_id] += 1
    return shares


SHIPPING_ALLOCATION_POLICIES: dict[str, ShippingAllocator] = {
    "proportional": allocate_proportional,
    "equal": allocate_equal,
}


def register_allocation_policy(name: str, allocator: ShippingAllocator) -> None:
    """Make a custom allocator selectable through SHIPPING_ALLOCATION_POLICY."""
    SHIPPING_ALLOCATION_POLICIES[name] = allocator


# =============================================================================
# POLICY + PURE CALCULATION
# =============================================================================

@dataclass(frozen=True)
class PayoutPolicy:
    commission_rate_bps: int
    allocate_shipping: ShippingAllocator = allocate_proportional
    platform_payee_code: str = "admin"


@dataclass(frozen=True)
class PayoutLine:
    seller_id: int
    items_total_cents: int
    commission_rate_bps: int
    admin_commission_cents: int
    shipping_charge_cents: int
    net_amount_cents: int


@dataclass
class SettlementResult:
    order_id: int
    payouts: list[PayoutRecord] = field(default_factory=list)
    already_settled: bool = False

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "already_settled": self.already_settled,
            "outcome": AlreadySettled.code if self.already_settled else "SETTLED",
            "payouts": [p.to_dict() for p in self.payouts],
        }


def commission_cents(items_total_cents: int, rate_bps: int) -> int:
    """items_total * rate, rounded half up to the paisa."""
    return (items_total_cents * rate_bps + 5_000) // 10_000


def calculate_payouts(
    seller_totals: list[tuple[int, int]],
    shipping_cost_cents: int,
    policy: PayoutPolicy,
) -> list[PayoutLine]:
    """
    Compute payout lines for (seller_id, items_total_cents) pairs.

    Pure function: no database access, deterministic for a given policy.
    """
    shipping_shares = policy.allocate_shipping(shipping_cost_cents, seller_totals)

    lines = []
    for seller_id, items_total in seller_totals:
        commission = commission_cents(items_total, policy.commission_rate_bps)
        shipping_charge = shipping_shares.get(seller_id, 0)
        net = max(0, items_total - commission - shipping_charge)
        lines.append(PayoutLine(
            seller_id=seller_id,
            items_total_cents=items_total,
            commission_rate_bps=policy.commission_rate_bps,
            admin_commission_cents=commission,
            shipping_charge_cents=shipping_charge,
            net_amount_cents=net,
        ))
    return lines


def current_policy() -> PayoutPolicy:
    """Build the settlement policy from configuration and saved settings."""
    config = current_app.config
    name = config.get("SHIPPING_ALLOCATION_POLICY", "proportional")
    allocator = SHIPPING_ALLOCATION_POLICIES.get(name)
    if allocator is None:
        raise ValueError(f"Unknown shipping allocation policy '{name}'")
    return PayoutPolicy(
        commission_rate_bps=settings_service.get_commission_rate_bps(),
        allocate_shipping=allocator,
        platform_payee_code=config.get("PLATFORM_PAYEE_CODE", "admin"),
    )


# =============================================================================
# PAYEES
# =============================================================================

def ensure_platform_payee(code: str = "admin") -> Seller:
    """
    Ensure the platform payee exists.

    Safe to call repeatedly (idempotent).
    """
    payee = db.session.query(Seller).filter_by(code=code).first()
    if payee:
        return payee

    payee = Seller(code=code, name="Platform", is_platform=True)
    db.session.add(payee)
    db.session.flush()
    return payee


def _resolve_payee(seller_id: int | None) -> Seller:
    if seller_id is None:
        raise SellerMissing("Order item has no seller", seller_id=None)
    seller = db.session.get(Seller, seller_id)
    if seller is None or not seller.is_active:
        raise SellerMissing(f"Seller {seller_id} no longer exists", seller_id=seller_id)
    return seller


# =============================================================================
# SETTLEMENT
# =============================================================================

def _settle_locked(order: Order, policy: PayoutPolicy) -> list[PayoutRecord]:
    """
    Write one due PayoutRecord per seller of a locked order. Flushes only.

    Raises AlreadySettled (carrying the existing records) if the order was
    settled before.
    """
    existing = (
        db.session.query(PayoutRecord)
        .filter_by(order_id=order.id)
        .order_by(PayoutRecord.id.asc())
        .all()
    )
    if existing:
        raise AlreadySettled(f"Order {order.order_number} is already settled", payouts=existing)

    totals: dict[int, int] = {}
    for item in order.items:
        try:
            payee = _resolve_payee(item.seller_id)
        except SellerMissing as exc:
            current_app.logger.warning(
                "%s; attributing item %s of order %s to platform payee",
                exc, item.id, order.order_number,
            )
            payee = ensure_platform_payee(policy.platform_payee_code)
        totals[payee.id] = totals.get(payee.id, 0) + item.line_total_cents

    lines = calculate_payouts(list(totals.items()), order.shipping_cost_cents, policy)

    records = [
        PayoutRecord(
            order_id=order.id,
            seller_id=line.seller_id,
            items_total_cents=line.items_total_cents,
            commission_rate_bps=line.commission_rate_bps,
            admin_commission_cents=line.admin_commission_cents,
            shipping_charge_cents=line.shipping_charge_cents,
            net_amount_cents=line.net_amount_cents,
            payment_status=PayoutStatus.DUE.value,
        )
        for line in lines
    ]
    db.session.add_all(records)
    db.session.flush()

    current_app.logger.info(
        "Settled order %s for %d seller(s) at %s bps",
        order.order_number, len(records), policy.commission_rate_bps,
    )
    return records


def settle_delivery(order_id: int, *, policy: PayoutPolicy | None = None) -> SettlementResult:
    """
    Compute and persist seller payouts for a delivered order.

    All per-seller records are committed together or not at all. Calling it
    again for a settled order returns the existing records with
    already_settled=True.

    Raises:
        OrderNotFound, InvalidTransition (order not delivered), StaleOrderVersion
    """
    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise OrderNotFound(f"Order {order_id} not found")
        if order.status != OrderStatus.DELIVERED.value:
            raise InvalidTransition(
                f"Order {order.order_number} must be delivered before settlement (status: {order.status})"
            )

        records = _settle_locked(order, policy or current_policy())
        db.session.commit()
        return SettlementResult(order_id=order.id, payouts=records)

    try:
        return run_in_transaction(_op)
    except AlreadySettled as exc:
        current_app.logger.info("%s; no payouts written", exc)
        return SettlementResult(order_id=order_id, payouts=exc.payouts, already_settled=True)


def get_order_payouts(order_id: int) -> list[PayoutRecord]:
    if db.session.get(Order, order_id) is None:
        raise OrderNotFound(f"Order {order_id} not found")
    return (
        db.session.query(PayoutRecord)
        .filter_by(order_id=order_id)
        .order_by(PayoutRecord.id.asc())
        .all()
    )
