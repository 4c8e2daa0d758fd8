"""Cancellation queue — a brand's inbox of cancellation requests."""

from protean.core.projector import on
from protean.fields import DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain
from shared.queries import fetch_all

from ordering.domain import ordering
from ordering.order.events import CancellationRequested, CancellationResolved
from ordering.order.order import Order


@ordering.projection
class CancellationQueue:
    request_id = Identifier(identifier=True, required=True)
    order_id = Identifier(required=True)
    brand_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    line_index = Integer()
    product_name = String()
    quantity = Integer()
    size = String()
    unit_price = Float()
    order_total = Float()
    reason = String(required=True)
    details = String()
    status = String(required=True)  # pending, approved, rejected
    previous_delivery_status = String()
    requested_at = DateTime()
    processed_at = DateTime()
    processed_by = String()
    admin_notes = String()


@ordering.projector(projector_for=CancellationQueue, aggregates=[Order])
class CancellationQueueProjector:
    @on(CancellationRequested)
    def on_cancellation_requested(self, event):
        current_domain.repository_for(CancellationQueue).add(
            CancellationQueue(
                request_id=event.request_id,
                order_id=event.order_id,
                brand_id=event.brand_id,
                customer_id=event.customer_id,
                line_index=event.line_index,
                product_name=event.product_name,
                quantity=event.quantity,
                size=event.size,
                unit_price=event.unit_price,
                order_total=event.order_total,
                reason=event.reason,
                details=event.details,
                status="pending",
                previous_delivery_status=event.previous_delivery_status,
                requested_at=event.requested_at,
            )
        )

    @on(CancellationResolved)
    def on_cancellation_resolved(self, event):
        repo = current_domain.repository_for(CancellationQueue)
        entry = repo.get(event.request_id)
        entry.status = event.status
        entry.processed_at = event.processed_at
        entry.processed_by = event.processed_by
        entry.admin_notes = event.admin_notes
        repo.add(entry)


def cancellation_inbox(brand_id=None, status=None):
    """Queue entries for a brand (or all brands), newest first."""
    query = current_domain.repository_for(CancellationQueue)._dao.query
    filters = {k: v for k, v in {"brand_id": brand_id, "status": status}.items() if v is not None}
    if filters:
        query = query.filter(**filters)
    return sorted(fetch_all(query), key=lambda e: e.requested_at, reverse=True)
