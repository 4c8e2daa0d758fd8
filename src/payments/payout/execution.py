"""Payout application services.

Both entry points hold the brand's lock for their whole duration, so payouts
for one brand are serialized while different brands proceed in parallel. The
settlement balance is recomputed under that lock right before the payout is
recorded.
"""

import structlog
from protean.utils.globals import current_domain
from shared.errors import NotEligible
from shared.locking import KeyedLocks
from shared.money import ZERO, quantize, to_float

from payments.gateway import get_gateway
from payments.gateway.executor import call_with_idempotency
from payments.payout.ledger import payouts_for_brand
from payments.payout.payout import PayoutSource
from payments.payout.recording import RecordPayout
from payments.payout_account.registration import payout_account_for
from payments.settlement.policy import SettlementPolicy
from payments.settlement.reports import brand_settlement

logger = structlog.get_logger(__name__)

brand_locks = KeyedLocks("brand")


def record_payout(brand_id, amount, gateway_payment_id, recorded_by=None, notes=None) -> str:
    """Record a payout made outside the platform. Returns the payout id."""
    with brand_locks.hold(brand_id):
        row = brand_settlement(brand_id)
        return current_domain.process(
            RecordPayout(
                brand_id=brand_id,
                amount=amount,
                gateway_payment_id=gateway_payment_id,
                pending_amount=to_float(row.pending_amount),
                source=PayoutSource.MANUAL.value,
                recorded_by=recorded_by,
                notes=notes,
            ),
            asynchronous=False,
        )


def execute_payout(brand_id, amount=None, recorded_by=None) -> str:
    """Pay a brand through the gateway and record the payout. Returns the payout id.

    ``amount`` defaults to the brand's whole pending balance. The idempotency
    key counts the brand's recorded gateway payouts, so a retry after a
    failure reuses the key of the attempt that never got recorded, even when
    manual payouts were recorded in between.
    """
    with brand_locks.hold(brand_id):
        row = brand_settlement(brand_id)
        if not row.can_pay:
            raise NotEligible({"brand_id": [row.pay_disabled_reason]})

        amount = row.pending_amount if amount is None else quantize(amount)
        if amount <= ZERO or amount > row.pending_amount:
            raise NotEligible(
                {"amount": [f"Payout amount must be between 0 and the pending amount {row.pending_amount}"]}
            )

        account = payout_account_for(brand_id)
        executed = [p for p in payouts_for_brand(brand_id) if p.source == PayoutSource.GATEWAY.value]
        idempotency_key = f"pout_{brand_id}_{len(executed) + 1}"
        gateway = get_gateway()
        currency = SettlementPolicy.from_config().currency

        result = call_with_idempotency(
            lambda: gateway.create_payout(
                destination=account.destination(),
                amount=to_float(amount),
                currency=currency,
                idempotency_key=idempotency_key,
            ),
            lambda: gateway.fetch_payout(idempotency_key),
            operation="payout",
            idempotency_key=idempotency_key,
        )
        paid = amount if result.amount is None else result.amount

        logger.info(
            "Payout executed",
            brand_id=str(brand_id),
            amount=to_float(paid),
            gateway_payout_id=result.gateway_payout_id,
            idempotency_key=idempotency_key,
        )
        return current_domain.process(
            RecordPayout(
                brand_id=brand_id,
                amount=to_float(paid),
                gateway_payment_id=result.gateway_payout_id,
                pending_amount=to_float(row.pending_amount),
                currency=currency,
                source=PayoutSource.GATEWAY.value,
                idempotency_key=idempotency_key,
                recorded_by=recorded_by,
            ),
            asynchronous=False,
        )
