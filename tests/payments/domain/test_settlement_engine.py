"""Tests for the pure settlement calculation."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from payments.settlement.engine import (
    OrderSnapshot,
    ReportingWindow,
    SettlementStatus,
    admin_summary,
    brand_payments,
    payment_status_for,
    settle_brand,
    settlement_figures,
)
from payments.settlement.policy import SettlementPolicy
from protean.exceptions import ValidationError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _order(order_id, total, brand_id="brand-001", **kwargs):
    kwargs.setdefault("payment_status", "Paid")
    kwargs.setdefault("delivery_status", "Delivered")
    kwargs.setdefault("lifecycle_status", "completed")
    kwargs.setdefault("created_at", NOW - timedelta(days=10))
    return OrderSnapshot(order_id=order_id, brand_id=brand_id, total_amount=Decimal(str(total)), **kwargs)


class TestSettlementFigures:
    def test_reference_example(self):
        figures = settlement_figures(Decimal("100000"), 50, SettlementPolicy())
        assert figures.delivery_charge == Decimal("5000")
        assert figures.gateway_fee == Decimal("2000")
        assert figures.platform_fee == Decimal("15000")
        assert figures.payable == Decimal("78000.00")

    def test_higher_commission(self):
        figures = settlement_figures(Decimal("100000"), 50, SettlementPolicy(commission_rate=Decimal("0.20")))
        assert figures.payable == Decimal("73000.00")

    def test_payable_never_negative(self):
        figures = settlement_figures(Decimal("150"), 3, SettlementPolicy())
        assert figures.payable == Decimal("0.00")

    @pytest.mark.parametrize(
        "low, high",
        [(Decimal("0.15"), Decimal("0.16")), (Decimal("0.16"), Decimal("0.18")), (Decimal("0.18"), Decimal("0.20"))],
    )
    def test_payable_falls_as_commission_rises(self, low, high):
        cheap = settlement_figures(Decimal("25000"), 4, SettlementPolicy(commission_rate=low))
        dear = settlement_figures(Decimal("25000"), 4, SettlementPolicy(commission_rate=high))
        assert dear.payable < cheap.payable

    def test_rounds_half_up_to_paise(self):
        figures = settlement_figures(Decimal("1000.05"), 0, SettlementPolicy())
        # 1000.05 * 0.83 = 830.0415
        assert figures.payable == Decimal("830.04")


class TestSettlementPolicy:
    @pytest.mark.parametrize("rate", ["0.149", "0.21", "0", "1"])
    def test_commission_outside_bounds(self, rate):
        with pytest.raises(ValidationError) as exc:
            SettlementPolicy(commission_rate=Decimal(rate))
        assert "commission_rate" in exc.value.messages

    @pytest.mark.parametrize("rate", ["0.15", "0.175", "0.20"])
    def test_commission_within_bounds(self, rate):
        assert SettlementPolicy(commission_rate=Decimal(rate)).commission_rate == Decimal(rate)

    def test_floats_are_normalised(self):
        policy = SettlementPolicy(commission_rate=0.18, gateway_fee_rate=0.02, delivery_charge_per_order=100)
        assert policy.commission_rate == Decimal("0.18")
        assert policy.delivery_charge_per_order == Decimal("100")

    def test_with_commission_keeps_other_terms(self):
        policy = SettlementPolicy(hold_days=7).with_commission("0.19")
        assert policy.commission_rate == Decimal("0.19")
        assert policy.hold_days == 7

    def test_negative_hold(self):
        with pytest.raises(ValidationError):
            SettlementPolicy(hold_days=-1)

    def test_from_config(self):
        policy = SettlementPolicy.from_config(
            {"custom": {"commission_rate": 0.17, "delivery_charge_per_order": 80, "payout_hold_days": 3}}
        )
        assert policy.commission_rate == Decimal("0.17")
        assert policy.delivery_charge_per_order == Decimal("80")
        assert policy.gateway_fee_rate == Decimal("0.02")
        assert policy.hold_days == 3

    def test_from_domain_config(self):
        policy = SettlementPolicy.from_config()
        assert policy.commission_rate == Decimal("0.15")
        assert policy.hold_days == 7
        assert policy.currency == "INR"


class TestOrderSnapshot:
    def test_unpaid_orders_do_not_count(self):
        assert not _order("o1", 1000, payment_status="Pending").counts_toward_revenue

    @pytest.mark.parametrize("lifecycle", ["cancelled", "refunded"])
    def test_cancelled_and_refunded_do_not_count(self, lifecycle):
        assert not _order("o1", 1000, lifecycle_status=lifecycle).counts_toward_revenue

    def test_undelivered_orders_count_as_revenue_only(self):
        order = _order("o1", 1000, delivery_status="Shipped", lifecycle_status="pending")
        assert order.counts_toward_revenue
        assert not order.counts_toward_payout

    def test_net_of_partial_refund(self):
        assert _order("o1", 1000, refunded_amount=Decimal("250")).net_amount == Decimal("750")

    def test_net_of_cancelled_line_not_yet_refunded(self):
        assert _order("o1", 1000, cancelled_amount=Decimal("400")).net_amount == Decimal("600")

    def test_refund_of_cancelled_line_is_not_deducted_twice(self):
        order = _order("o1", 1000, cancelled_amount=Decimal("400"), refunded_amount=Decimal("400"))
        assert order.net_amount == Decimal("600")


class TestSettleBrand:
    def _orders(self):
        return [
            _order("o1", 40000),
            _order("o2", 60000, delivery_status="Shipped", lifecycle_status="pending"),
            _order("o3", 9000, payment_status="Pending", lifecycle_status="pending", delivery_status="Pending"),
            _order("o4", 5000, lifecycle_status="cancelled", delivery_status="Cancelled"),
            _order("o5", 7000, brand_id="brand-002"),
        ]

    def test_revenue_breakdown(self):
        row = settle_brand("brand-001", self._orders(), as_of=NOW)
        assert row.total_orders == 4
        assert row.total_revenue == Decimal("100000")
        assert row.confirmed_revenue == Decimal("40000")
        assert row.non_confirmed_revenue == Decimal("60000")
        assert row.eligible_orders == 1
        assert row.payable == Decimal("40000") * Decimal("0.83") - 100
        assert row.order_ids == ["o1"]

    def test_pending_when_nothing_paid(self):
        row = settle_brand("brand-001", self._orders(), as_of=NOW, destination_issue=None)
        assert row.payment_status == SettlementStatus.PENDING.value
        assert row.pending_amount == row.payable
        assert row.can_pay is True
        assert row.pay_disabled_reason is None

    def test_partial_payment(self):
        row = settle_brand("brand-001", self._orders(), completed_payments=Decimal("10000"), as_of=NOW)
        assert row.payment_status == SettlementStatus.PARTIAL.value
        assert row.pending_amount == row.payable - Decimal("10000")

    def test_completed_payment(self):
        payable = settle_brand("brand-001", self._orders(), as_of=NOW).payable
        row = settle_brand("brand-001", self._orders(), completed_payments=payable, as_of=NOW)
        assert row.payment_status == SettlementStatus.COMPLETED.value
        assert row.pending_amount == Decimal("0")
        assert row.can_pay is False
        assert row.pay_disabled_reason == "Payable amount already paid out"

    def test_missing_destination_blocks_payment(self):
        issue = "Missing payout destination details"
        row = settle_brand("brand-001", self._orders(), as_of=NOW, destination_issue=issue)
        assert row.can_pay is False
        assert row.pay_disabled_reason == "Missing payout destination details"

    def test_no_orders(self):
        row = settle_brand("brand-009", [], as_of=NOW)
        assert row.payable == Decimal("0")
        assert row.can_pay is False
        assert row.pay_disabled_reason == "No payable amount"
        assert row.payment_status == SettlementStatus.COMPLETED.value

    def test_paid_but_undelivered_order_is_not_payable(self):
        orders = [_order("o1", 10000, delivery_status="Processing", lifecycle_status="pending")]
        row = settle_brand("brand-001", orders, as_of=NOW)
        assert row.total_revenue == Decimal("10000")
        assert row.eligible_orders == 0
        assert row.payable == Decimal("0")
        assert row.can_pay is False

    def test_hold_period_defers_recent_orders(self):
        orders = [_order("old", 10000), _order("new", 10000, created_at=NOW - timedelta(days=1))]
        row = settle_brand("brand-001", orders, policy=SettlementPolicy(hold_days=7), as_of=NOW)
        assert row.total_revenue == Decimal("20000")
        assert row.eligible_orders == 1
        assert row.order_ids == ["old"]

    def test_reporting_window(self):
        orders = [_order("in", 10000), _order("out", 10000, created_at=NOW - timedelta(days=60))]
        window = ReportingWindow(start=NOW - timedelta(days=30), end=NOW)
        row = settle_brand("brand-001", orders, window=window, as_of=NOW)
        assert row.total_orders == 1
        assert row.order_ids == ["in"]

    def test_as_dict_uses_floats(self):
        data = settle_brand("brand-001", self._orders(), as_of=NOW).as_dict()
        assert isinstance(data["payable"], float)
        assert data["payable"] == 33100.0


class TestPaymentStatus:
    def test_statuses(self):
        assert payment_status_for(Decimal("10"), Decimal("0")) == SettlementStatus.PENDING
        assert payment_status_for(Decimal("10"), Decimal("5")) == SettlementStatus.PARTIAL
        assert payment_status_for(Decimal("0"), Decimal("5")) == SettlementStatus.COMPLETED


class TestBrandPayments:
    def test_one_row_per_brand(self):
        orders = [_order("o1", 10000), _order("o2", 5000, brand_id="brand-002")]
        rows = brand_payments(orders, {"brand-003": Decimal("100")}, as_of=NOW)
        assert [r.brand_id for r in rows] == ["brand-001", "brand-002", "brand-003"]

    def test_filter_by_status(self):
        orders = [_order("o1", 10000), _order("o2", 5000, brand_id="brand-002")]
        rows = brand_payments(orders, {"brand-002": Decimal("4050")}, as_of=NOW, status="Completed")
        assert [r.brand_id for r in rows] == ["brand-002"]

    def test_filter_by_brand(self):
        orders = [_order("o1", 10000), _order("o2", 5000, brand_id="brand-002")]
        rows = brand_payments(orders, {}, as_of=NOW, brand_id="brand-002")
        assert [r.brand_id for r in rows] == ["brand-002"]

    def test_brands_settle_independently(self):
        orders = [_order("o1", 10000), _order("o2", 5000, brand_id="brand-002")]
        together = {r.brand_id: r.payable for r in brand_payments(orders, {}, as_of=NOW)}
        alone = settle_brand("brand-002", [orders[1]], as_of=NOW).payable
        assert together["brand-002"] == alone


class TestAdminSummary:
    def test_counts_and_revenue(self):
        orders = [
            _order("o1", 1000, refunded_amount=Decimal("200")),
            _order("o2", 500, lifecycle_status="cancelled", delivery_status="Cancelled", payment_status="Pending"),
            _order("o3", 800, lifecycle_status="refunded", refunded_amount=Decimal("800")),
        ]
        summary = admin_summary(orders, total_paid_out=Decimal("300"))
        assert summary["total_orders"] == 3
        assert summary["cancelled_orders"] == 1
        assert summary["refunded_orders"] == 1
        assert summary["total_revenue"] == 800.0
        assert summary["total_refunded"] == 1000.0
        assert summary["total_paid_out"] == 300.0
