"""Payments bounded context — brand settlement and payouts.

Computes what each brand is owed from the order store (a pure projection, never
persisted as a source of truth), records payouts idempotently, keeps brand
payout destinations, and owns the payment gateway port used for refunds and
payouts.
"""

import structlog
from protean.domain import Domain

payments = Domain(name="payments")

logger = structlog.get_logger(__name__)
