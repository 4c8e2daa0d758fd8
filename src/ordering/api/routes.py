"""FastAPI routes for the Ordering domain — orders, cancellations and refunds."""

import json

from fastapi import APIRouter, Query
from protean.utils.globals import current_domain

from ordering.api.schemas import (
    BrandOrderSummaryResponse,
    BrandResponseRequest,
    CancellationQueueEntryResponse,
    CancellationRequestResponse,
    CreateCancelRequest,
    ExecuteRefundRequest,
    OrderIdResponse,
    OrderLineResponse,
    OrderResponse,
    PlaceOrderRequest,
    RecordPaymentRequest,
    RefundExecutionResponse,
    RefundRecordResponse,
    RefundRequestBody,
    RefundResponseRequest,
    StatusResponse,
    UpdateDeliveryStatusRequest,
)
from ordering.order.cancellation import RequestCancellation, ResolveCancellation
from ordering.order.delivery import UpdateDeliveryStatus
from ordering.order.order import LifecycleStatus, Order
from ordering.order.placement import PlaceOrder, RecordPayment
from ordering.order.queries import brand_order_summary, find_orders, orders_in_lifecycle
from ordering.order.refunds import ExecuteRefund, RequestRefund, RespondToRefund
from ordering.order.serialization import dispatch
from ordering.projections.cancellation_queue import cancellation_inbox


def _request_response(order, request) -> CancellationRequestResponse:
    return CancellationRequestResponse(
        request_id=str(request.id),
        order_id=str(order.id),
        product_index=request.line_index,
        reason=request.reason,
        details=request.details,
        status=request.status,
        requested_at=request.requested_at,
        processed_at=request.processed_at,
        processed_by=request.processed_by,
        admin_notes=request.admin_notes,
        previous_delivery_status=request.previous_delivery_status,
    )


def _order_response(order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        customer_id=str(order.customer_id),
        brand_id=str(order.brand_id),
        products=[
            OrderLineResponse(
                line_index=item.line_index,
                product_id=str(item.product_id),
                name=item.name,
                size=item.size,
                quantity=item.quantity,
                unit_price=item.unit_price,
                cancelled=bool(item.cancelled),
            )
            for item in sorted(order.items, key=lambda i: i.line_index)
        ],
        delivery_status=order.delivery_status,
        lifecycle_status=order.lifecycle_status,
        payment_status=order.payment_status,
        total_amount=order.total_amount,
        currency=order.currency,
        refund_status=order.refund_status,
        refunded_amount=order.refunded_amount or 0.0,
        refund_reason=order.refund_reason,
        estimated_delivery=order.estimated_delivery,
        delivered_at=order.delivered_at,
        created_at=order.created_at,
        is_delayed=order.is_delayed(),
        refund_prompt_eligible=order.refund_prompt_eligible(),
        revision=order.revision,
        cancellation_requests=[
            _request_response(order, r) for r in sorted(order.cancellation_requests, key=lambda r: r.requested_at)
        ],
        refunds=[
            RefundRecordResponse(
                amount=r.amount,
                gateway_refund_id=r.gateway_refund_id,
                initiated_by=r.initiated_by,
                notes=r.notes,
                refunded_at=r.refunded_at,
            )
            for r in sorted(order.refunds, key=lambda r: r.refunded_at)
        ],
    )


def _get_order(order_id) -> Order:
    return current_domain.repository_for(Order).get(order_id)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
# Handlers that take an order lock or call the gateway are plain functions so
# FastAPI runs them in its threadpool instead of on the event loop.
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def place_order(body: PlaceOrderRequest) -> OrderIdResponse:
    """Place a new order with a brand."""
    command = PlaceOrder(
        customer_id=body.customer_id,
        brand_id=body.brand_id,
        items=json.dumps([item.model_dump() for item in body.items]),
        total_amount=body.total_amount,
        currency=body.currency,
        estimated_delivery=body.estimated_delivery,
    )
    order_id = current_domain.process(command, asynchronous=False)
    return OrderIdResponse(order_id=order_id)


@order_router.get("", response_model=list[OrderResponse])
async def list_orders(
    brand_id: str | None = Query(default=None, alias="brandId"),
    status: str | None = Query(default=None),
    customer_id: str | None = Query(default=None, alias="customerId"),
) -> list[OrderResponse]:
    """Canonical order records for a brand and/or lifecycle status."""
    orders = find_orders(brand_id=brand_id, lifecycle_status=status, customer_id=customer_id)
    return [_order_response(order) for order in orders]


@order_router.get("/refund-requests", response_model=list[OrderResponse])
async def list_refund_requests(brand_id: str | None = Query(default=None, alias="brandId")) -> list[OrderResponse]:
    return [_order_response(o) for o in orders_in_lifecycle(LifecycleStatus.REFUND_REQUESTED, brand_id)]


@order_router.get("/refund-approved", response_model=list[OrderResponse])
async def list_refund_approved(brand_id: str | None = Query(default=None, alias="brandId")) -> list[OrderResponse]:
    return [_order_response(o) for o in orders_in_lifecycle(LifecycleStatus.REFUND_APPROVED, brand_id)]


@order_router.get("/refunded", response_model=list[OrderResponse])
async def list_refunded(brand_id: str | None = Query(default=None, alias="brandId")) -> list[OrderResponse]:
    return [_order_response(o) for o in orders_in_lifecycle(LifecycleStatus.REFUNDED, brand_id)]


@order_router.get("/cancelled", response_model=list[OrderResponse])
async def list_cancelled(brand_id: str | None = Query(default=None, alias="brandId")) -> list[OrderResponse]:
    return [_order_response(o) for o in orders_in_lifecycle(LifecycleStatus.CANCELLED, brand_id)]


@order_router.get("/brands/{brand_id}/summary", response_model=BrandOrderSummaryResponse)
async def brand_summary(brand_id: str) -> BrandOrderSummaryResponse:
    return BrandOrderSummaryResponse(**brand_order_summary(brand_id))


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return _order_response(_get_order(order_id))


@order_router.patch("/{order_id}/payment", response_model=StatusResponse)
def record_payment(order_id: str, body: RecordPaymentRequest) -> StatusResponse:
    """Record the captured gateway payment for an order."""
    dispatch(
        RecordPayment(
            order_id=order_id,
            gateway_payment_id=body.gateway_payment_id,
            expected_revision=body.expected_revision,
        )
    )
    return StatusResponse(status=_get_order(order_id).payment_status)


@order_router.patch("/{order_id}/delivery-status", response_model=OrderResponse)
def update_delivery_status(order_id: str, body: UpdateDeliveryStatusRequest) -> OrderResponse:
    """Move an order along the fulfilment sequence (or cancel it before shipping)."""
    dispatch(
        UpdateDeliveryStatus(
            order_id=order_id,
            delivery_status=body.delivery_status,
            changed_by=body.changed_by,
            expected_revision=body.expected_revision,
        )
    )
    return _order_response(_get_order(order_id))


@order_router.patch("/{order_id}/brand-response", response_model=CancellationRequestResponse)
def respond_to_cancellation(order_id: str, body: BrandResponseRequest) -> CancellationRequestResponse:
    """Approve or reject a cancellation request."""
    request_id = dispatch(
        ResolveCancellation(
            order_id=order_id,
            action=body.action,
            request_id=body.request_id,
            line_index=body.product_index,
            admin_notes=body.admin_notes,
            processed_by=body.processed_by,
            expected_revision=body.expected_revision,
        )
    )
    order = _get_order(order_id)
    return _request_response(order, order.find_cancellation_request(request_id=request_id))


@order_router.patch("/{order_id}/refund-request", response_model=OrderResponse)
def request_refund(order_id: str, body: RefundRequestBody) -> OrderResponse:
    dispatch(
        RequestRefund(
            order_id=order_id,
            reason=body.reason,
            details=body.details,
            expected_revision=body.expected_revision,
        )
    )
    return _order_response(_get_order(order_id))


@order_router.patch("/{order_id}/refund-response", response_model=OrderResponse)
def respond_to_refund(order_id: str, body: RefundResponseRequest) -> OrderResponse:
    dispatch(
        RespondToRefund(
            order_id=order_id,
            action=body.action,
            notes=body.notes,
            responded_by=body.responded_by,
            expected_revision=body.expected_revision,
        )
    )
    return _order_response(_get_order(order_id))


@order_router.patch("/{order_id}/refund", response_model=RefundExecutionResponse)
def execute_refund(order_id: str, body: ExecuteRefundRequest) -> RefundExecutionResponse:
    """Refund the customer through the payment gateway."""
    gateway_refund_id = dispatch(
        ExecuteRefund(
            order_id=order_id,
            amount=body.amount,
            initiated_by=body.initiated_by,
            notes=body.notes,
            expected_revision=body.expected_revision,
        )
    )
    order = _get_order(order_id)
    return RefundExecutionResponse(
        order_id=order_id,
        gateway_refund_id=gateway_refund_id,
        refunded_amount=order.refunded_amount,
        refund_status=order.refund_status,
        lifecycle_status=order.lifecycle_status,
    )


# ---------------------------------------------------------------------------
# Cancellation Request Router
# ---------------------------------------------------------------------------
cancel_request_router = APIRouter(prefix="/cancel-requests", tags=["cancellations"])


@cancel_request_router.post("", status_code=201, response_model=CancellationRequestResponse)
def create_cancel_request(body: CreateCancelRequest) -> CancellationRequestResponse:
    """Open a cancellation request for a whole order or one product line."""
    request_id = dispatch(
        RequestCancellation(
            order_id=body.order_id,
            line_index=body.product_index,
            reason=body.reason,
            details=body.details,
            requested_by=body.requested_by,
            expected_revision=body.expected_revision,
        )
    )
    order = _get_order(body.order_id)
    return _request_response(order, order.find_cancellation_request(request_id=request_id))


@cancel_request_router.get("", response_model=list[CancellationQueueEntryResponse])
async def list_cancel_requests(
    brand_id: str | None = Query(default=None, alias="brandId"),
    status: str | None = Query(default=None),
) -> list[CancellationQueueEntryResponse]:
    """A brand's cancellation inbox."""
    return [
        CancellationQueueEntryResponse(
            request_id=str(entry.request_id),
            order_id=str(entry.order_id),
            brand_id=str(entry.brand_id),
            customer_id=str(entry.customer_id),
            product_index=entry.line_index,
            product_name=entry.product_name,
            quantity=entry.quantity,
            size=entry.size,
            reason=entry.reason,
            details=entry.details,
            status=entry.status,
            requested_at=entry.requested_at,
            processed_at=entry.processed_at,
            processed_by=entry.processed_by,
            admin_notes=entry.admin_notes,
        )
        for entry in cancellation_inbox(brand_id=brand_id, status=status)
    ]
