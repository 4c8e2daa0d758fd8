import json
from datetime import UTC, datetime, timedelta

import pytest


def _reset(domain):
    with domain.domain_context():
        for _, provider in domain.providers.items():
            provider._data_reset()
        domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed, payments_bed):
    from ordering.domain import ordering
    from payments.domain import payments

    with payments_bed.domain_context():
        yield

    # Settlement tests seed orders into the Ordering store as well
    _reset(ordering)
    _reset(payments)


@pytest.fixture
def seed_order():
    """Place an order in the Ordering context and drive it to the given state.

    Returns the order id. ``delivered`` implies paid. Orders default to ten
    days old, past the payout hold period.
    """
    from ordering.domain import ordering
    from ordering.order.delivery import UpdateDeliveryStatus
    from ordering.order.order import Order
    from ordering.order.placement import PlaceOrder, RecordPayment
    from protean.utils.globals import current_domain

    def _seed(brand_id="brand-001", total=1000.0, paid=True, delivered=False, created_at=None):
        line = {"product_id": "prod-001", "name": "Linen Shirt", "size": "M", "quantity": 1, "unit_price": total}
        with ordering.domain_context():
            order_id = current_domain.process(
                PlaceOrder(customer_id="cust-001", brand_id=brand_id, items=json.dumps([line]), total_amount=total),
                asynchronous=False,
            )
            if paid or delivered:
                current_domain.process(
                    RecordPayment(order_id=order_id, gateway_payment_id=f"pay_{order_id}"),
                    asynchronous=False,
                )
            if delivered:
                current_domain.process(
                    UpdateDeliveryStatus(order_id=order_id, delivery_status="Delivered"),
                    asynchronous=False,
                )
            repo = current_domain.repository_for(Order)
            order = repo.get(order_id)
            order.created_at = created_at or datetime.now(UTC) - timedelta(days=10)
            repo.add(order)
        return order_id

    return _seed
