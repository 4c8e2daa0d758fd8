"""Payout recording — command and handler.

``pending_amount`` is the brand's outstanding settlement balance, computed
from the order store by the caller just before dispatch (see
``payments.payout.execution``). The handler refuses to record more than that,
so the platform never overpays a brand.
"""

import structlog
from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain
from shared.errors import DuplicatePayout, NotEligible
from shared.money import ZERO, quantize

from payments.domain import payments
from payments.payout.ledger import find_payout_by_gateway_id
from payments.payout.payout import Payout, PayoutSource

logger = structlog.get_logger(__name__)


@payments.command(part_of="Payout")
class RecordPayout:
    brand_id = Identifier(required=True)
    amount = Float(required=True)
    gateway_payment_id = String(required=True, max_length=255)
    pending_amount = Float(required=True)
    currency = String(max_length=3, default="INR")
    source = String(choices=PayoutSource, default=PayoutSource.MANUAL.value)
    idempotency_key = String(max_length=255)
    recorded_by = String(max_length=100)
    notes = String(max_length=500)


@payments.command_handler(part_of=Payout)
class RecordPayoutHandler:
    @handle(RecordPayout)
    def record_payout(self, command):
        existing = find_payout_by_gateway_id(command.gateway_payment_id)
        if existing is not None:
            if existing.matches(command.brand_id, command.amount):
                logger.info(
                    "Payout already recorded",
                    payout_id=str(existing.id),
                    gateway_payment_id=command.gateway_payment_id,
                )
                return str(existing.id)
            raise DuplicatePayout(
                {
                    "gateway_payment_id": [
                        f"Payment {command.gateway_payment_id} was already recorded as a payout "
                        f"of {existing.amount} to brand {existing.brand_id}"
                    ]
                }
            )

        amount = quantize(command.amount)
        if amount <= ZERO:
            raise NotEligible({"amount": ["Payout amount must be positive"]})
        if amount > quantize(command.pending_amount):
            raise NotEligible(
                {"amount": [f"Payout of {amount} exceeds the pending amount {quantize(command.pending_amount)}"]}
            )

        payout = Payout.record(
            brand_id=command.brand_id,
            amount=amount,
            gateway_payment_id=command.gateway_payment_id,
            currency=command.currency,
            source=command.source,
            idempotency_key=command.idempotency_key,
            recorded_by=command.recorded_by,
            notes=command.notes,
        )
        current_domain.repository_for(Payout).add(payout)

        logger.info(
            "Payout recorded",
            payout_id=str(payout.id),
            brand_id=str(command.brand_id),
            amount=payout.amount,
            gateway_payment_id=command.gateway_payment_id,
            source=command.source,
        )
        return str(payout.id)
