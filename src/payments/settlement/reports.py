"""Settlement read models assembled from live data.

Order snapshots are read from the Ordering context's store inside its own
domain context; payouts and payout accounts come from this context. The
figures themselves are computed by the pure functions in
``payments.settlement.engine``.

These functions must run outside a unit of work: they read another
context's repositories.
"""

from datetime import datetime

from ordering.domain import ordering
from ordering.order.queries import find_orders
from shared.money import ZERO

from payments.payout.ledger import completed_payments, completed_payments_by_brand
from payments.payout_account.account import destination_issue
from payments.payout_account.registration import all_payout_accounts, payout_account_for
from payments.settlement.engine import (
    BrandSettlementRow,
    OrderSnapshot,
    ReportingWindow,
    admin_summary,
    brand_payments,
    settle_brand,
)
from payments.settlement.policy import SettlementPolicy


def order_snapshots(brand_id=None) -> list[OrderSnapshot]:
    with ordering.domain_context():
        return [OrderSnapshot.from_order(order) for order in find_orders(brand_id=brand_id)]


def brand_settlement(
    brand_id,
    policy: SettlementPolicy | None = None,
    window: ReportingWindow | None = None,
    as_of: datetime | None = None,
) -> BrandSettlementRow:
    account = payout_account_for(brand_id)
    return settle_brand(
        brand_id,
        order_snapshots(brand_id=brand_id),
        completed_payments=completed_payments(brand_id),
        policy=policy or SettlementPolicy.from_config(),
        window=window,
        as_of=as_of,
        destination_issue=destination_issue(account),
        brand_name=account.brand_name if account else None,
    )


def brand_payments_report(
    policy: SettlementPolicy | None = None,
    window: ReportingWindow | None = None,
    brand_id=None,
    status: str | None = None,
    as_of: datetime | None = None,
) -> list[BrandSettlementRow]:
    accounts = all_payout_accounts()
    completed = completed_payments_by_brand()
    orders = order_snapshots(brand_id=brand_id)
    brands = {o.brand_id for o in orders} | set(completed)
    return brand_payments(
        orders,
        completed,
        policy=policy or SettlementPolicy.from_config(),
        window=window,
        as_of=as_of,
        destination_issues={brand: destination_issue(accounts.get(brand)) for brand in brands},
        brand_names={brand: account.brand_name for brand, account in accounts.items()},
        brand_id=brand_id,
        status=status,
    )


def admin_summary_report(window: ReportingWindow | None = None) -> dict:
    paid_out = sum(completed_payments_by_brand().values(), ZERO)
    return admin_summary(order_snapshots(), window=window, total_paid_out=paid_out)
