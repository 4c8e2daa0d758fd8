"""Domain events for the Order aggregate.

Each event is an immutable fact about one committed transition. They feed the
cancellation queue projection and are the notification channel callers use to
reconcile their views instead of mutating local copies of an order.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A customer placed an order with a brand."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    brand_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of line dicts
    total_amount = Float(required=True)
    currency = String(default="INR")
    estimated_delivery = DateTime()
    created_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentCaptured:
    """The order's payment was captured by the gateway."""

    __version__ = 1

    order_id = Identifier(required=True)
    brand_id = Identifier(required=True)
    gateway_payment_id = String(required=True)
    amount = Float(required=True)
    captured_at = DateTime(required=True)


@ordering.event(part_of="Order")
class DeliveryStatusChanged:
    """The order moved along the fulfilment sequence."""

    __version__ = 1

    order_id = Identifier(required=True)
    brand_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    lifecycle_status = String(required=True)
    changed_by = String()
    changed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    """The whole order was cancelled, by request approval or outright by the brand."""

    __version__ = 1

    order_id = Identifier(required=True)
    brand_id = Identifier(required=True)
    cancelled_by = String()
    reason = String()
    total_amount = Float(required=True)
    payment_status = String(required=True)
    cancelled_at = DateTime(required=True)


@ordering.event(part_of="Order")
class CancellationRequested:
    """A customer asked to cancel the order or one of its lines."""

    __version__ = 1

    order_id = Identifier(required=True)
    request_id = Identifier(required=True)
    brand_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    line_index = Integer()  # None for whole-order requests
    product_name = String()
    quantity = Integer()
    size = String()
    unit_price = Float()
    order_total = Float(required=True)
    reason = String(required=True)
    details = String()
    requested_by = String()
    previous_delivery_status = String(required=True)
    requested_at = DateTime(required=True)


@ordering.event(part_of="Order")
class CancellationResolved:
    """The brand (or admin) approved or rejected a cancellation request."""

    __version__ = 1

    order_id = Identifier(required=True)
    request_id = Identifier(required=True)
    brand_id = Identifier(required=True)
    line_index = Integer()
    status = String(required=True)  # approved, rejected
    processed_by = String()
    admin_notes = String()
    delivery_status = String(required=True)
    lifecycle_status = String(required=True)
    processed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class RefundRequested:
    """A customer asked for a refund on a delivered order."""

    __version__ = 1

    order_id = Identifier(required=True)
    brand_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    reason = String(required=True)
    details = String()
    delayed = Boolean(default=False)
    requested_at = DateTime(required=True)


@ordering.event(part_of="Order")
class RefundResponded:
    """The brand approved or rejected a refund request."""

    __version__ = 1

    order_id = Identifier(required=True)
    brand_id = Identifier(required=True)
    decision = String(required=True)  # refund_approved, refund_rejected
    notes = String()
    responded_by = String()
    responded_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderRefunded:
    """The gateway confirmed a refund against the order's captured payment."""

    __version__ = 1

    order_id = Identifier(required=True)
    brand_id = Identifier(required=True)
    amount = Float(required=True)
    refunded_amount = Float(required=True)
    refund_status = String(required=True)
    lifecycle_status = String(required=True)
    gateway_refund_id = String(required=True)
    idempotency_key = String(required=True)
    initiated_by = String(required=True)
    refunded_at = DateTime(required=True)
