"""Refund workflow — request, response and gateway execution.

Execution is the only step that leaves the process: the gateway refund is
created under an idempotency key derived from the order, and the order is only
updated with the amount the gateway confirms. A gateway failure propagates out
of the handler, so the unit of work discards every change.
"""

import structlog
from protean import handle
from protean.fields import Float, Identifier, Integer, String
from protean.utils.globals import current_domain
from shared.money import to_float

from ordering.domain import ordering
from ordering.order.order import Order, RefundInitiator, ResolutionAction
from payments.gateway import get_gateway
from payments.gateway.executor import call_with_idempotency

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class RequestRefund:
    order_id = Identifier(required=True)
    reason = String(max_length=100)  # Defaults to "Delayed Order Refund"
    details = String(max_length=500)
    expected_revision = Integer()


@ordering.command(part_of="Order")
class RespondToRefund:
    order_id = Identifier(required=True)
    action = String(required=True, choices=ResolutionAction)
    notes = String(max_length=500)
    responded_by = String(max_length=100)
    expected_revision = Integer()


@ordering.command(part_of="Order")
class ExecuteRefund:
    order_id = Identifier(required=True)
    amount = Float()  # Defaults to the remaining refundable balance
    initiated_by = String(choices=RefundInitiator, default=RefundInitiator.PLATFORM.value)
    notes = String(max_length=500)
    expected_revision = Integer()


@ordering.command_handler(part_of=Order)
class RefundHandler:
    @handle(RequestRefund)
    def request_refund(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.check_revision(command.expected_revision)
        order.request_refund(reason=command.reason, details=command.details)
        repo.add(order)
        logger.info(
            "Refund requested",
            order_id=str(order.id),
            reason=order.refund_reason,
            delayed=order.is_delayed(),
        )

    @handle(RespondToRefund)
    def respond_to_refund(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.check_revision(command.expected_revision)
        order.respond_to_refund(
            action=command.action,
            notes=command.notes,
            responded_by=command.responded_by,
        )
        repo.add(order)
        logger.info("Refund request answered", order_id=str(order.id), lifecycle_status=order.lifecycle_status)

    @handle(ExecuteRefund)
    def execute_refund(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.check_revision(command.expected_revision)

        plan = order.plan_refund(command.amount)
        gateway = get_gateway()
        reason = order.refund_reason or "Order cancelled"

        result = call_with_idempotency(
            lambda: gateway.create_refund(
                gateway_transaction_id=order.gateway_payment_id,
                amount=to_float(plan.amount),
                reason=reason,
                idempotency_key=plan.idempotency_key,
            ),
            lambda: gateway.fetch_refund(
                gateway_transaction_id=order.gateway_payment_id,
                idempotency_key=plan.idempotency_key,
            ),
            operation="refund",
            idempotency_key=plan.idempotency_key,
        )

        amount = plan.amount if result.amount is None else result.amount
        recorded = order.record_refund(
            amount=amount,
            gateway_refund_id=result.gateway_refund_id,
            idempotency_key=plan.idempotency_key,
            initiated_by=command.initiated_by,
            notes=command.notes,
            closes_order=plan.closes_order,
        )
        if recorded:
            repo.add(order)

        logger.info(
            "Refund executed",
            order_id=str(order.id),
            amount=to_float(amount),
            refunded_amount=order.refunded_amount,
            refund_status=order.refund_status,
            gateway_refund_id=result.gateway_refund_id,
            idempotency_key=plan.idempotency_key,
        )
        return result.gateway_refund_id
