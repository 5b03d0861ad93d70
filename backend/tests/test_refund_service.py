"""
Refund ledger tests: the refunded amount only ever grows, never past the
order total, and every rupee is backed by a reasoned record.
"""

import pytest

from bookstore.extensions import db
from bookstore.models import Order, RefundRecord
from bookstore.errors import OrderNotFound, RefundExceedsBalance, StaleOrderVersion
from bookstore.services import refund_service
from bookstore.validation import ValidationError


@pytest.fixture
def thousand_rupee_order(make_order, seller_x):
    """₹900 of books + ₹100 standard shipping = ₹1000."""
    order = make_order([(seller_x.id, 90000, 1)])
    assert order.total_cents == 100000
    return order


class TestScenarioA:

    def test_refund_above_total_fails_then_full_refund_succeeds(self, thousand_rupee_order, admin):
        order_id = thousand_rupee_order.id

        with pytest.raises(RefundExceedsBalance) as exc:
            refund_service.record_refund(order_id, amount_cents=120000, reason="Damaged", actor=admin)
        assert exc.value.details["refundable_balance_cents"] == 100000
        assert db.session.query(RefundRecord).filter_by(order_id=order_id).count() == 0

        record = refund_service.record_refund(order_id, amount_cents=100000, reason="Damaged", actor=admin)

        order = db.session.get(Order, order_id)
        assert record.amount_cents == 100000
        assert record.refunded_total_after_cents == 100000
        assert order.refunded_amount_cents == 100000
        assert order.payment_status == "refunded"


class TestRefundLedger:

    def test_partial_refunds_accumulate(self, thousand_rupee_order, admin):
        order_id = thousand_rupee_order.id
        seen = []
        for amount in (25000, 25000, 50000):
            refund_service.record_refund(order_id, amount_cents=amount, reason="Partial", actor=admin)
            seen.append(db.session.get(Order, order_id).refunded_amount_cents)

        assert seen == [25000, 50000, 100000]
        assert sum(r.amount_cents for r in refund_service.get_order_refunds(order_id)) == 100000

    def test_partial_refund_keeps_payment_status(self, thousand_rupee_order, admin):
        refund_service.record_refund(thousand_rupee_order.id, amount_cents=30000, reason="Late", actor=admin)
        assert db.session.get(Order, thousand_rupee_order.id).payment_status == "paid"

    def test_partial_refund_can_be_marked_final(self, thousand_rupee_order, admin):
        refund_service.record_refund(
            thousand_rupee_order.id, amount_cents=30000, reason="Settled with buyer", actor=admin, mark_refunded=True
        )
        order = db.session.get(Order, thousand_rupee_order.id)
        assert order.payment_status == "refunded"
        assert order.refunded_amount_cents == 30000

    def test_refund_after_balance_exhausted_fails(self, thousand_rupee_order, admin):
        refund_service.record_refund(thousand_rupee_order.id, amount_cents=100000, reason="Full", actor=admin)
        with pytest.raises(RefundExceedsBalance):
            refund_service.record_refund(thousand_rupee_order.id, amount_cents=1, reason="Extra", actor=admin)
        assert db.session.get(Order, thousand_rupee_order.id).refunded_amount_cents == 100000

    @pytest.mark.parametrize("amount", [0, -500])
    def test_non_positive_amount_rejected(self, thousand_rupee_order, admin, amount):
        with pytest.raises(RefundExceedsBalance):
            refund_service.record_refund(thousand_rupee_order.id, amount_cents=amount, reason="x", actor=admin)

    def test_reason_is_required(self, thousand_rupee_order, admin):
        with pytest.raises(ValidationError):
            refund_service.record_refund(thousand_rupee_order.id, amount_cents=1000, reason="  ", actor=admin)
        assert db.session.get(Order, thousand_rupee_order.id).refunded_amount_cents == 0

    def test_record_is_attributed(self, thousand_rupee_order, admin):
        record = refund_service.record_refund(
            thousand_rupee_order.id, amount_cents=1000, reason="Goodwill", actor=admin
        )
        assert record.processed_by == admin.id
        assert record.processed_by_role == "admin"
        assert record.processed_at is not None

    def test_stale_version(self, thousand_rupee_order, admin):
        with pytest.raises(StaleOrderVersion):
            refund_service.record_refund(
                thousand_rupee_order.id, amount_cents=1000, reason="x", actor=admin, expected_version=99
            )

    def test_unknown_order(self, db_session, admin):
        with pytest.raises(OrderNotFound):
            refund_service.record_refund(4242, amount_cents=1000, reason="x", actor=admin)


def test_refund_summary(thousand_rupee_order, admin):
    refund_service.record_refund(thousand_rupee_order.id, amount_cents=40000, reason="Missing volume", actor=admin)

    summary = refund_service.get_refund_summary(thousand_rupee_order.id)

    assert summary["total_cents"] == 100000
    assert summary["refunded_amount_cents"] == 40000
    assert summary["refundable_balance_cents"] == 60000
    assert [r["amount_cents"] for r in summary["refunds"]] == [40000]
