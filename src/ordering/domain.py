"""Ordering bounded context — order store, cancellations and refunds.

Holds the authoritative order record (delivery, lifecycle, payment and refund
status) and the customer/brand/admin workflows that move it: pre-shipment
cancellation requests and post-delivery refund requests, including refund
execution against the payment gateway.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
