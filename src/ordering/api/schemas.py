"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands. Request bodies accept camelCase keys (the
storefront's convention) as well as snake_case.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    model_config = {"alias_generator": to_camel, "populate_by_name": True}


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class OrderLineSchema(RequestModel):
    product_id: str
    name: str
    size: str | None = None
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(RequestModel):
    customer_id: str
    brand_id: str
    items: list[OrderLineSchema] = Field(min_length=1)
    total_amount: float | None = Field(default=None, gt=0)
    currency: str = "INR"
    estimated_delivery: datetime | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customerId": "cust-001",
                    "brandId": "brand-001",
                    "items": [
                        {
                            "productId": "prod-001",
                            "name": "Linen Shirt",
                            "size": "M",
                            "quantity": 2,
                            "unitPrice": 1499.0,
                        }
                    ],
                    "totalAmount": 2998.0,
                    "estimatedDelivery": "2026-03-01T18:00:00Z",
                }
            ]
        }
    }


class RecordPaymentRequest(RequestModel):
    gateway_payment_id: str
    expected_revision: int | None = None


class UpdateDeliveryStatusRequest(RequestModel):
    delivery_status: str
    changed_by: str | None = None
    expected_revision: int | None = None


# ---------------------------------------------------------------------------
# Cancellation Request Schemas
# ---------------------------------------------------------------------------
class CreateCancelRequest(RequestModel):
    order_id: str
    product_index: int | None = Field(default=None, ge=0)
    reason: str
    details: str | None = Field(default=None, max_length=500)
    requested_by: str | None = None
    expected_revision: int | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "orderId": "ord-001",
                    "productIndex": 0,
                    "reason": "Order placed by mistake",
                }
            ]
        }
    }


class BrandResponseRequest(RequestModel):
    action: Literal["approve", "reject"]
    admin_notes: str | None = Field(default=None, max_length=500)
    product_index: int | None = Field(default=None, ge=0)
    request_id: str | None = None
    processed_by: str | None = None
    expected_revision: int | None = None


# ---------------------------------------------------------------------------
# Refund Request Schemas
# ---------------------------------------------------------------------------
class RefundRequestBody(RequestModel):
    reason: str | None = None
    details: str | None = Field(default=None, max_length=500)
    expected_revision: int | None = None


class RefundResponseRequest(RequestModel):
    action: Literal["approve", "reject"]
    notes: str | None = Field(default=None, max_length=500)
    responded_by: str | None = None
    expected_revision: int | None = None


class ExecuteRefundRequest(RequestModel):
    amount: float | None = Field(default=None, gt=0)
    initiated_by: Literal["platform", "brand"] = "platform"
    notes: str | None = Field(default=None, max_length=500)
    expected_revision: int | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class OrderIdResponse(BaseModel):
    order_id: str


class StatusResponse(BaseModel):
    status: str


class OrderLineResponse(BaseModel):
    line_index: int
    product_id: str
    name: str
    size: str | None = None
    quantity: int
    unit_price: float
    cancelled: bool


class CancellationRequestResponse(BaseModel):
    request_id: str
    order_id: str
    product_index: int | None = None
    reason: str
    details: str | None = None
    status: str
    requested_at: datetime | None = None
    processed_at: datetime | None = None
    processed_by: str | None = None
    admin_notes: str | None = None
    previous_delivery_status: str


class RefundRecordResponse(BaseModel):
    amount: float
    gateway_refund_id: str
    initiated_by: str
    notes: str | None = None
    refunded_at: datetime | None = None


class OrderResponse(BaseModel):
    order_id: str
    customer_id: str
    brand_id: str
    products: list[OrderLineResponse]
    delivery_status: str
    lifecycle_status: str
    payment_status: str
    total_amount: float
    currency: str
    refund_status: str
    refunded_amount: float
    refund_reason: str | None = None
    estimated_delivery: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime | None = None
    is_delayed: bool
    refund_prompt_eligible: bool
    revision: int
    cancellation_requests: list[CancellationRequestResponse]
    refunds: list[RefundRecordResponse]


class RefundExecutionResponse(BaseModel):
    order_id: str
    gateway_refund_id: str
    refunded_amount: float
    refund_status: str
    lifecycle_status: str


class BrandOrderSummaryResponse(BaseModel):
    brand_id: str
    total_orders: int
    completed_orders: int
    cancelled_orders: int
    completed_revenue: float


class CancellationQueueEntryResponse(BaseModel):
    request_id: str
    order_id: str
    brand_id: str
    customer_id: str
    product_index: int | None = None
    product_name: str | None = None
    quantity: int | None = None
    size: str | None = None
    reason: str
    details: str | None = None
    status: str
    requested_at: datetime | None = None
    processed_at: datetime | None = None
    processed_by: str | None = None
    admin_notes: str | None = None
