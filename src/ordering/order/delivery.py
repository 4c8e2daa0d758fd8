"""Delivery status updates — command and handler."""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import DeliveryStatus, Order

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class UpdateDeliveryStatus:
    order_id = Identifier(required=True)
    delivery_status = String(required=True, choices=DeliveryStatus)
    changed_by = String(max_length=100)
    expected_revision = Integer()


@ordering.command_handler(part_of=Order)
class DeliveryStatusHandler:
    @handle(UpdateDeliveryStatus)
    def update_delivery_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.check_revision(command.expected_revision)
        previous = order.delivery_status

        if not order.update_delivery_status(command.delivery_status, changed_by=command.changed_by):
            logger.debug("Delivery status unchanged", order_id=str(order.id), delivery_status=previous)
            return

        repo.add(order)
        logger.info(
            "Delivery status updated",
            order_id=str(order.id),
            brand_id=str(order.brand_id),
            previous_status=previous,
            delivery_status=order.delivery_status,
            lifecycle_status=order.lifecycle_status,
        )
