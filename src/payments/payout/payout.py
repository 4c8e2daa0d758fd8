"""Payout aggregate (CQRS) — an immutable record of money paid to a brand.

A payout is appended once and never changed. ``gateway_payment_id`` is the
idempotency key: the same id can only ever be recorded once, and re-recording
it with identical data is a no-op.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Float, Identifier, String
from shared.money import quantize, to_decimal

from payments.domain import payments
from payments.payout.events import PayoutRecorded


class PayoutSource(Enum):
    MANUAL = "manual"  # Paid outside the platform, recorded by an admin
    GATEWAY = "gateway"  # Executed through the payment gateway


@payments.aggregate
class Payout:
    brand_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.01)
    currency = String(max_length=3, default="INR")
    gateway_payment_id = String(required=True, max_length=255)
    idempotency_key = String(max_length=255)
    source = String(choices=PayoutSource, default=PayoutSource.MANUAL.value)
    recorded_by = String(max_length=100)
    notes = String(max_length=500)
    recorded_at = DateTime()

    @classmethod
    def record(
        cls,
        brand_id,
        amount,
        gateway_payment_id,
        currency="INR",
        source=PayoutSource.MANUAL.value,
        idempotency_key=None,
        recorded_by=None,
        notes=None,
    ):
        now = datetime.now(UTC)
        payout = cls(
            brand_id=brand_id,
            amount=float(quantize(amount)),
            currency=currency,
            gateway_payment_id=gateway_payment_id,
            idempotency_key=idempotency_key,
            source=source,
            recorded_by=recorded_by,
            notes=notes,
            recorded_at=now,
        )
        payout.raise_(
            PayoutRecorded(
                payout_id=str(payout.id),
                brand_id=str(brand_id),
                amount=payout.amount,
                currency=currency,
                gateway_payment_id=gateway_payment_id,
                source=source,
                recorded_by=recorded_by,
                recorded_at=now,
            )
        )
        return payout

    def matches(self, brand_id, amount) -> bool:
        """Whether a repeated record call describes this same payout."""
        return str(self.brand_id) == str(brand_id) and quantize(self.amount) == quantize(to_decimal(amount))
