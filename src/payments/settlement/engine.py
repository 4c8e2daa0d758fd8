"""Settlement engine — what each brand is owed, as a pure function of orders.

Nothing here touches a repository. Callers pass in order snapshots and prior
payout totals and get back read models, so every figure can be recomputed
from the order store at any time and brands can be settled in parallel.

    revenue         = Σ net order amount (total minus refunds/cancelled lines)
                      for paid orders not cancelled or refunded
    delivery_charge = 100 × orders
    gateway_fee     = 2% × revenue
    platform_fee    = commission_rate × revenue
    payable         = max(revenue − gateway_fee − delivery_charge − platform_fee, 0)

All terms are exact decimals; only ``payable`` is rounded (2 places, half away
from zero).
"""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import Enum

from shared.money import ZERO, quantize, to_decimal, to_float

from payments.settlement.policy import SettlementPolicy

_EXCLUDED_LIFECYCLES = {"cancelled", "refunded"}


class SettlementStatus(Enum):
    PENDING = "Pending"
    PARTIAL = "Partial"
    COMPLETED = "Completed"


def _aware(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass(frozen=True)
class OrderSnapshot:
    """The settlement-relevant facts of one order, detached from the store."""

    order_id: str
    brand_id: str
    total_amount: Decimal
    refunded_amount: Decimal = ZERO
    cancelled_amount: Decimal = ZERO
    lifecycle_status: str = "pending"
    delivery_status: str = "Pending"
    payment_status: str = "Pending"
    created_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderSnapshot":
        return cls(
            order_id=str(order.id),
            brand_id=str(order.brand_id),
            total_amount=to_decimal(order.total_amount),
            refunded_amount=to_decimal(order.refunded_amount),
            cancelled_amount=order.cancelled_lines_value,
            lifecycle_status=order.lifecycle_status,
            delivery_status=order.delivery_status,
            payment_status=order.payment_status,
            created_at=_aware(order.created_at),
        )

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "Paid"

    @property
    def is_delivered(self) -> bool:
        return self.delivery_status == "Delivered"

    @property
    def counts_toward_revenue(self) -> bool:
        return self.is_paid and self.lifecycle_status not in _EXCLUDED_LIFECYCLES

    @property
    def counts_toward_payout(self) -> bool:
        """Only delivered orders are settled; anything earlier can still be cancelled and refunded."""
        return self.counts_toward_revenue and self.is_delivered

    @property
    def net_amount(self) -> Decimal:
        """Order total minus whatever went, or is owed, back to the customer."""
        returned = max(self.refunded_amount, self.cancelled_amount)
        return max(self.total_amount - returned, ZERO)


@dataclass(frozen=True)
class ReportingWindow:
    start: datetime | None = None
    end: datetime | None = None

    def contains(self, moment: datetime | None) -> bool:
        if moment is None:
            return self.start is None and self.end is None
        moment = _aware(moment)
        if self.start is not None and moment < _aware(self.start):
            return False
        if self.end is not None and moment > _aware(self.end):
            return False
        return True


@dataclass(frozen=True)
class SettlementFigures:
    revenue: Decimal
    orders: int
    delivery_charge: Decimal
    gateway_fee: Decimal
    platform_fee: Decimal
    payable: Decimal


def settlement_figures(revenue, order_count: int, policy: SettlementPolicy) -> SettlementFigures:
    """Apply the fee formula to an eligible revenue and order count."""
    revenue = to_decimal(revenue)
    delivery_charge = policy.delivery_charge_per_order * order_count
    gateway_fee = policy.gateway_fee_rate * revenue
    platform_fee = policy.commission_rate * revenue
    payable = quantize(max(revenue - gateway_fee - delivery_charge - platform_fee, ZERO))
    return SettlementFigures(
        revenue=revenue,
        orders=order_count,
        delivery_charge=delivery_charge,
        gateway_fee=gateway_fee,
        platform_fee=platform_fee,
        payable=payable,
    )


@dataclass(frozen=True)
class BrandSettlementRow:
    brand_id: str
    brand_name: str | None
    total_orders: int
    total_revenue: Decimal
    confirmed_revenue: Decimal
    non_confirmed_revenue: Decimal
    eligible_orders: int
    eligible_revenue: Decimal
    delivery_charge: Decimal
    gateway_fee: Decimal
    platform_fee: Decimal
    payable: Decimal
    completed_payments: Decimal
    pending_amount: Decimal
    payment_status: str
    can_pay: bool
    pay_disabled_reason: str | None = None
    order_ids: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Decimal):
                data[key] = to_float(value)
        return data


def payment_status_for(pending_amount: Decimal, completed_payments: Decimal) -> SettlementStatus:
    if pending_amount <= ZERO:
        return SettlementStatus.COMPLETED
    if completed_payments > ZERO:
        return SettlementStatus.PARTIAL
    return SettlementStatus.PENDING


def settle_brand(
    brand_id,
    orders,
    completed_payments=ZERO,
    policy: SettlementPolicy | None = None,
    window: ReportingWindow | None = None,
    as_of: datetime | None = None,
    destination_issue: str | None = None,
    brand_name: str | None = None,
) -> BrandSettlementRow:
    """Build one brand's settlement row from its orders.

    ``destination_issue`` is a data-integrity problem with the brand's payout
    destination; when set, the row cannot be paid.
    """
    policy = policy or SettlementPolicy()
    window = window or ReportingWindow()
    as_of = _aware(as_of or datetime.now(UTC))
    hold_cutoff = as_of - timedelta(days=policy.hold_days)
    completed_payments = to_decimal(completed_payments)

    in_window = [o for o in orders if str(o.brand_id) == str(brand_id) and window.contains(o.created_at)]
    revenue_orders = [o for o in in_window if o.counts_toward_revenue]
    delivered = [o for o in revenue_orders if o.counts_toward_payout]
    eligible = [o for o in delivered if o.created_at is None or _aware(o.created_at) <= hold_cutoff]

    total_revenue = sum((o.net_amount for o in revenue_orders), ZERO)
    confirmed_revenue = sum((o.net_amount for o in revenue_orders if o.is_delivered), ZERO)
    figures = settlement_figures(sum((o.net_amount for o in eligible), ZERO), len(eligible), policy)

    pending_amount = max(figures.payable - completed_payments, ZERO)
    status = payment_status_for(pending_amount, completed_payments)

    reason = None
    if figures.payable <= ZERO:
        reason = "No payable amount"
    elif pending_amount <= ZERO:
        reason = "Payable amount already paid out"
    elif destination_issue:
        reason = destination_issue

    return BrandSettlementRow(
        brand_id=str(brand_id),
        brand_name=brand_name,
        total_orders=len(in_window),
        total_revenue=total_revenue,
        confirmed_revenue=confirmed_revenue,
        non_confirmed_revenue=total_revenue - confirmed_revenue,
        eligible_orders=figures.orders,
        eligible_revenue=figures.revenue,
        delivery_charge=figures.delivery_charge,
        gateway_fee=figures.gateway_fee,
        platform_fee=figures.platform_fee,
        payable=figures.payable,
        completed_payments=completed_payments,
        pending_amount=pending_amount,
        payment_status=status.value,
        can_pay=reason is None,
        pay_disabled_reason=reason,
        order_ids=[o.order_id for o in eligible],
    )


def brand_payments(
    orders,
    completed_by_brand: dict,
    policy: SettlementPolicy | None = None,
    window: ReportingWindow | None = None,
    as_of: datetime | None = None,
    destination_issues: dict | None = None,
    brand_names: dict | None = None,
    brand_id=None,
    status: str | None = None,
) -> list[BrandSettlementRow]:
    """Settlement rows for every brand with orders or payouts, optionally filtered."""
    destination_issues = destination_issues or {}
    brand_names = brand_names or {}
    brands = {str(o.brand_id) for o in orders} | {str(b) for b in completed_by_brand}
    if brand_id is not None:
        brands &= {str(brand_id)}

    rows = [
        settle_brand(
            brand,
            orders,
            completed_payments=completed_by_brand.get(brand, ZERO),
            policy=policy,
            window=window,
            as_of=as_of,
            destination_issue=destination_issues.get(brand),
            brand_name=brand_names.get(brand),
        )
        for brand in sorted(brands)
    ]
    if status is not None:
        rows = [row for row in rows if row.payment_status == status]
    return rows


def admin_summary(orders, window: ReportingWindow | None = None, total_paid_out=ZERO) -> dict:
    """Platform-wide order counts and revenue net of refunds."""
    window = window or ReportingWindow()
    in_window = [o for o in orders if window.contains(o.created_at)]
    paid = [o for o in in_window if o.is_paid]
    revenue = sum((o.total_amount - o.refunded_amount for o in paid), ZERO)
    return {
        "total_orders": len(in_window),
        "completed_orders": sum(1 for o in paid if o.is_delivered),
        "cancelled_orders": sum(1 for o in in_window if o.lifecycle_status == "cancelled"),
        "refunded_orders": sum(1 for o in in_window if o.lifecycle_status == "refunded"),
        "total_revenue": to_float(revenue),
        "total_refunded": to_float(sum((o.refunded_amount for o in in_window), ZERO)),
        "total_paid_out": to_float(total_paid_out),
    }
