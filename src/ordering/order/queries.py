"""Read-side access to canonical order records.

Listings return whole records; filtering beyond brand, customer and status,
sorting and pagination belong to the caller.
"""

from protean.utils.globals import current_domain
from shared.money import ZERO, to_decimal, to_float
from shared.queries import fetch_all

from ordering.order.order import DeliveryStatus, LifecycleStatus, Order, PaymentStatus


def find_orders(**filters):
    """All orders matching the given field filters (``None`` values are ignored)."""
    query = current_domain.repository_for(Order)._dao.query
    filters = {field: value for field, value in filters.items() if value is not None}
    if filters:
        query = query.filter(**filters)

    return sorted(fetch_all(query), key=lambda o: o.created_at, reverse=True)


def orders_for_brand(brand_id, lifecycle_status=None):
    return find_orders(brand_id=brand_id, lifecycle_status=lifecycle_status)


def orders_for_customer(customer_id):
    return find_orders(customer_id=customer_id)


def orders_in_lifecycle(lifecycle_status: LifecycleStatus, brand_id=None):
    return find_orders(lifecycle_status=lifecycle_status.value, brand_id=brand_id)


def brand_order_summary(brand_id) -> dict:
    """Order counts and completed revenue (net of refunds) for one brand."""
    orders = orders_for_brand(brand_id)
    completed = [
        o
        for o in orders
        if o.delivery_status == DeliveryStatus.DELIVERED.value and o.payment_status == PaymentStatus.PAID.value
    ]
    revenue = sum(
        (to_decimal(o.total_amount) - to_decimal(o.refunded_amount) for o in completed),
        ZERO,
    )
    return {
        "brand_id": str(brand_id),
        "total_orders": len(orders),
        "completed_orders": len(completed),
        "cancelled_orders": sum(1 for o in orders if o.lifecycle_status == LifecycleStatus.CANCELLED.value),
        "completed_revenue": to_float(revenue),
    }
