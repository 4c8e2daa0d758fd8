"""Order placement and payment capture — commands and handler."""

import json

import structlog
from protean import handle
from protean.fields import DateTime, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    brand_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of {product_id, name, size, quantity, unit_price}
    total_amount = Float()  # Defaults to the sum of the lines
    currency = String(max_length=3, default="INR")
    estimated_delivery = DateTime()


@ordering.command(part_of="Order")
class RecordPayment:
    order_id = Identifier(required=True)
    gateway_payment_id = String(required=True, max_length=255)
    expected_revision = Integer()


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        order = Order.create(
            customer_id=command.customer_id,
            brand_id=command.brand_id,
            items_data=json.loads(command.items),
            total_amount=command.total_amount,
            estimated_delivery=command.estimated_delivery,
            currency=command.currency,
        )
        current_domain.repository_for(Order).add(order)
        logger.info(
            "Order placed",
            order_id=str(order.id),
            brand_id=str(order.brand_id),
            total_amount=order.total_amount,
        )
        return str(order.id)

    @handle(RecordPayment)
    def record_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.check_revision(command.expected_revision)
        if order.record_payment(command.gateway_payment_id):
            repo.add(order)
            logger.info("Payment recorded", order_id=str(order.id), gateway_payment_id=command.gateway_payment_id)
