"""Domain events for payouts and payout destinations."""

from protean.fields import Boolean, DateTime, Float, Identifier, String

from payments.domain import payments


@payments.event(part_of="Payout")
class PayoutRecorded:
    """Money was paid out to a brand; the payout is final."""

    __version__ = 1

    payout_id = Identifier(required=True)
    brand_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(default="INR")
    gateway_payment_id = String(required=True)
    source = String(required=True)  # manual, gateway
    recorded_by = String()
    recorded_at = DateTime(required=True)


@payments.event(part_of="PayoutAccount")
class PayoutAccountRegistered:
    """A brand registered or changed where its payouts go."""

    __version__ = 1

    brand_id = Identifier(required=True)
    mode = String(required=True)  # bank_account, vpa
    complete = Boolean(default=False)
    registered_at = DateTime(required=True)
