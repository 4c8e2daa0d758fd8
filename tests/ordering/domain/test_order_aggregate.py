"""Tests for Order creation, payment capture and derived values."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from ordering.order.events import OrderPlaced, PaymentCaptured
from ordering.order.order import (
    DeliveryStatus,
    LifecycleStatus,
    Order,
    PaymentStatus,
    RefundStatus,
)
from protean.exceptions import ValidationError
from shared.errors import Conflict, InvalidTransition


def _lines():
    return [
        {"product_id": "p1", "name": "Linen Shirt", "size": "M", "quantity": 2, "unit_price": 1499.0},
        {"product_id": "p2", "name": "Chino Shorts", "size": "32", "quantity": 1, "unit_price": 999.5},
    ]


def _make_order(**kwargs):
    return Order.create(customer_id="cust-001", brand_id="brand-001", items_data=_lines(), **kwargs)


class TestOrderCreation:
    def test_defaults(self):
        order = _make_order()
        assert order.delivery_status == DeliveryStatus.PENDING.value
        assert order.lifecycle_status == LifecycleStatus.PENDING.value
        assert order.payment_status == PaymentStatus.PENDING.value
        assert order.refund_status == RefundStatus.NOT_INITIATED.value
        assert order.refunded_amount == 0.0
        assert order.revision == 0
        assert order.currency == "INR"

    def test_lines_get_stable_indexes(self):
        order = _make_order()
        assert sorted(item.line_index for item in order.items) == [0, 1]

    def test_total_defaults_to_sum_of_lines(self):
        order = _make_order()
        assert order.total_amount == 3997.5

    def test_explicit_total_is_kept(self):
        order = _make_order(total_amount=3500.0)
        assert order.total_amount == 3500.0

    def test_line_total_is_exact(self):
        order = _make_order()
        shirt = next(i for i in order.items if i.line_index == 0)
        assert shirt.line_total == Decimal("2998.0")

    def test_order_needs_products(self):
        with pytest.raises(ValidationError) as exc:
            Order.create(customer_id="cust-001", brand_id="brand-001", items_data=[])
        assert "items" in exc.value.messages

    def test_order_total_must_be_positive(self):
        with pytest.raises(ValidationError) as exc:
            Order.create(
                customer_id="cust-001",
                brand_id="brand-001",
                items_data=[{"product_id": "p1", "name": "Gift", "quantity": 1, "unit_price": 0.0}],
            )
        assert "total_amount" in exc.value.messages

    def test_raises_order_placed(self):
        order = _make_order()
        assert len(order._events) == 1
        event = order._events[0]
        assert isinstance(event, OrderPlaced)
        assert event.order_id == str(order.id)
        assert event.brand_id == "brand-001"
        assert event.total_amount == 3997.5


class TestPaymentCapture:
    def test_record_payment(self):
        order = _make_order()
        order._events.clear()
        assert order.record_payment("pay_001") is True
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.gateway_payment_id == "pay_001"
        assert order.revision == 1
        assert isinstance(order._events[0], PaymentCaptured)

    def test_same_payment_is_a_noop(self):
        order = _make_order()
        order.record_payment("pay_001")
        order._events.clear()
        assert order.record_payment("pay_001") is False
        assert order.revision == 1
        assert order._events == []

    def test_different_payment_is_rejected(self):
        order = _make_order()
        order.record_payment("pay_001")
        with pytest.raises(InvalidTransition):
            order.record_payment("pay_002")


class TestRevisionGuard:
    def test_matching_revision_passes(self):
        order = _make_order()
        order.check_revision(0)
        order.check_revision(None)

    def test_stale_revision_conflicts(self):
        order = _make_order()
        order.record_payment("pay_001")
        with pytest.raises(Conflict) as exc:
            order.check_revision(0)
        assert "revision" in exc.value.messages


class TestDelay:
    def test_without_estimate_never_delayed(self):
        order = _make_order()
        assert order.is_delayed() is False

    def test_undelivered_past_estimate_is_delayed(self):
        order = _make_order(estimated_delivery=datetime.now(UTC) - timedelta(days=1))
        assert order.is_delayed() is True

    def test_undelivered_before_estimate_is_not_delayed(self):
        order = _make_order(estimated_delivery=datetime.now(UTC) + timedelta(days=3))
        assert order.is_delayed() is False

    def test_delivered_late_is_delayed(self):
        order = _make_order(estimated_delivery=datetime.now(UTC) - timedelta(days=2))
        order.update_delivery_status("Delivered")
        assert order.is_delayed() is True

    def test_delivered_on_time_is_not_delayed(self):
        order = _make_order(estimated_delivery=datetime.now(UTC) + timedelta(days=2))
        order.update_delivery_status("Delivered")
        later = datetime.now(UTC) + timedelta(days=10)
        assert order.is_delayed(later) is False

    def test_naive_estimate_is_treated_as_utc(self):
        naive = (datetime.now(UTC) - timedelta(hours=1)).replace(tzinfo=None)
        order = _make_order(estimated_delivery=naive)
        assert order.is_delayed() is True

    def test_refund_prompt_for_late_delivery(self):
        order = _make_order(estimated_delivery=datetime.now(UTC) - timedelta(days=2))
        order.update_delivery_status("Delivered")
        assert order.refund_prompt_eligible() is True

    def test_no_refund_prompt_before_delivery(self):
        order = _make_order(estimated_delivery=datetime.now(UTC) - timedelta(days=2))
        assert order.refund_prompt_eligible() is False

    def test_no_refund_prompt_once_requested(self):
        order = _make_order(estimated_delivery=datetime.now(UTC) - timedelta(days=2))
        order.update_delivery_status("Delivered")
        order.request_refund()
        assert order.refund_prompt_eligible() is False
