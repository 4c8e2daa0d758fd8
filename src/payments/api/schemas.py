"""Pydantic request/response schemas for the Payments API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands. Request bodies accept camelCase keys as well as
snake_case.
"""

from datetime import datetime

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    model_config = {"alias_generator": to_camel, "populate_by_name": True}


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class RecordPayoutRequest(RequestModel):
    brand_id: str
    amount: float = Field(gt=0)
    gateway_payment_id: str
    recorded_by: str | None = None
    notes: str | None = Field(default=None, max_length=500)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "brandId": "brand-001",
                    "amount": 78000.0,
                    "gatewayPaymentId": "pout_Mx1y2z3",
                }
            ]
        }
    }


class ExecutePayoutRequest(RequestModel):
    brand_id: str
    amount: float | None = Field(default=None, gt=0)
    recorded_by: str | None = None


class PayoutAccountRequest(RequestModel):
    account_holder: str
    brand_name: str | None = None
    account_number: str | None = None
    ifsc_code: str | None = None
    upi_id: str | None = None


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Declined by gateway"
    faults: list[str] = []


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class AdminSummaryResponse(BaseModel):
    total_orders: int
    completed_orders: int
    cancelled_orders: int
    refunded_orders: int
    total_revenue: float
    total_refunded: float
    total_paid_out: float


class BrandPaymentRowResponse(BaseModel):
    brand_id: str
    brand_name: str | None = None
    total_orders: int
    total_revenue: float
    confirmed_revenue: float
    non_confirmed_revenue: float
    eligible_orders: int
    eligible_revenue: float
    delivery_charge: float
    gateway_fee: float
    platform_fee: float
    payable: float
    completed_payments: float
    pending_amount: float
    payment_status: str
    can_pay: bool
    pay_disabled_reason: str | None = None
    order_ids: list[str] = []


class PayoutResponse(BaseModel):
    payout_id: str
    brand_id: str
    completed_payments: float
    pending_amount: float
    payment_status: str


class PayoutRecordResponse(BaseModel):
    payout_id: str
    brand_id: str
    amount: float
    currency: str
    gateway_payment_id: str
    source: str
    recorded_by: str | None = None
    recorded_at: datetime | None = None


class PayoutAccountResponse(BaseModel):
    brand_id: str
    brand_name: str | None = None
    account_holder: str
    mode: str
    missing_details: list[str]


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
    faults: list[str]
