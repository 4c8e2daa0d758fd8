"""Cancellation workflow — commands and handler.

Customers open pre-shipment cancellation requests for a whole order or for a
single product line; the brand resolves each request exactly once.
"""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order, ResolutionAction

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class RequestCancellation:
    order_id = Identifier(required=True)
    line_index = Integer(min_value=0)  # Omit to cancel the whole order
    reason = String(required=True, max_length=100)
    details = String(max_length=500)
    requested_by = String(max_length=100)
    expected_revision = Integer()


@ordering.command(part_of="Order")
class ResolveCancellation:
    order_id = Identifier(required=True)
    action = String(required=True, choices=ResolutionAction)
    request_id = Identifier()  # Or identify the request by line_index
    line_index = Integer(min_value=0)
    admin_notes = String(max_length=500)
    processed_by = String(max_length=100)
    expected_revision = Integer()


@ordering.command_handler(part_of=Order)
class CancellationHandler:
    @handle(RequestCancellation)
    def request_cancellation(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.check_revision(command.expected_revision)

        request = order.request_cancellation(
            reason=command.reason,
            line_index=command.line_index,
            details=command.details,
            requested_by=command.requested_by,
        )
        repo.add(order)

        logger.info(
            "Cancellation requested",
            order_id=str(order.id),
            request_id=str(request.id),
            line_index=command.line_index,
            previous_delivery_status=request.previous_delivery_status,
        )
        return str(request.id)

    @handle(ResolveCancellation)
    def resolve_cancellation(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.check_revision(command.expected_revision)

        request = order.resolve_cancellation(
            action=command.action,
            request_id=command.request_id,
            line_index=command.line_index,
            notes=command.admin_notes,
            processed_by=command.processed_by,
        )
        repo.add(order)

        logger.info(
            "Cancellation resolved",
            order_id=str(order.id),
            request_id=str(request.id),
            status=request.status,
            delivery_status=order.delivery_status,
            lifecycle_status=order.lifecycle_status,
            processed_by=command.processed_by,
        )
        return str(request.id)
