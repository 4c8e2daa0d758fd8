"""FastAPI routes for the Payments domain — settlement, payouts and the gateway."""

import os
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query
from protean.utils.globals import current_domain

from payments.api.schemas import (
    AdminSummaryResponse,
    BrandPaymentRowResponse,
    ConfigureGatewayRequest,
    ExecutePayoutRequest,
    GatewayConfigResponse,
    PayoutAccountRequest,
    PayoutAccountResponse,
    PayoutRecordResponse,
    PayoutResponse,
    RecordPayoutRequest,
)
from payments.gateway import get_gateway
from payments.gateway.fake_adapter import FakeGateway
from payments.payout.execution import execute_payout, record_payout
from payments.payout.ledger import payouts_for_brand
from payments.payout_account.registration import RegisterPayoutAccount, payout_account_for
from payments.settlement.engine import ReportingWindow
from payments.settlement.policy import SettlementPolicy
from payments.settlement.reports import admin_summary_report, brand_payments_report, brand_settlement


def _policy(commission_rate: float | None) -> SettlementPolicy:
    policy = SettlementPolicy.from_config()
    return policy if commission_rate is None else policy.with_commission(commission_rate)


def _payout_response(brand_id: str, payout_id: str) -> PayoutResponse:
    row = brand_settlement(brand_id)
    return PayoutResponse(
        payout_id=payout_id,
        brand_id=brand_id,
        completed_payments=float(row.completed_payments),
        pending_amount=float(row.pending_amount),
        payment_status=row.payment_status,
    )


# ---------------------------------------------------------------------------
# Admin Router
# ---------------------------------------------------------------------------
# Payout handlers wait on the brand lock and the gateway, so they are plain functions.
admin_router = APIRouter(prefix="/payments/admin", tags=["settlement"])


@admin_router.get("/summary", response_model=AdminSummaryResponse)
async def admin_summary(
    start: datetime | None = Query(default=None, alias="from"),
    end: datetime | None = Query(default=None, alias="to"),
) -> AdminSummaryResponse:
    """Platform-wide order counts and revenue net of refunds."""
    return AdminSummaryResponse(**admin_summary_report(ReportingWindow(start=start, end=end)))


@admin_router.get("/brand-payments", response_model=list[BrandPaymentRowResponse])
async def brand_payments(
    start: datetime | None = Query(default=None, alias="from"),
    end: datetime | None = Query(default=None, alias="to"),
    brand_id: str | None = Query(default=None, alias="brandId"),
    status: str | None = Query(default=None),
    commission_rate: float | None = Query(default=None, alias="commissionRate"),
) -> list[BrandPaymentRowResponse]:
    """One settlement row per brand."""
    rows = brand_payments_report(
        policy=_policy(commission_rate),
        window=ReportingWindow(start=start, end=end),
        brand_id=brand_id,
        status=status,
    )
    return [BrandPaymentRowResponse(**row.as_dict()) for row in rows]


@admin_router.post("/payout", status_code=201, response_model=PayoutResponse)
def create_payout(body: RecordPayoutRequest) -> PayoutResponse:
    """Record a payout already made to a brand (idempotent on gateway_payment_id)."""
    payout_id = record_payout(
        brand_id=body.brand_id,
        amount=body.amount,
        gateway_payment_id=body.gateway_payment_id,
        recorded_by=body.recorded_by,
        notes=body.notes,
    )
    return _payout_response(body.brand_id, payout_id)


@admin_router.post("/payout/execute", status_code=201, response_model=PayoutResponse)
def run_payout(body: ExecutePayoutRequest) -> PayoutResponse:
    """Pay a brand through the gateway and record the payout."""
    payout_id = execute_payout(brand_id=body.brand_id, amount=body.amount, recorded_by=body.recorded_by)
    return _payout_response(body.brand_id, payout_id)


# ---------------------------------------------------------------------------
# Brand Router
# ---------------------------------------------------------------------------
brand_router = APIRouter(prefix="/payments/brands", tags=["settlement"])


@brand_router.get("/{brand_id}/balance", response_model=BrandPaymentRowResponse)
async def brand_balance(brand_id: str) -> BrandPaymentRowResponse:
    return BrandPaymentRowResponse(**brand_settlement(brand_id).as_dict())


@brand_router.get("/{brand_id}/payouts", response_model=list[PayoutRecordResponse])
async def brand_payouts(brand_id: str) -> list[PayoutRecordResponse]:
    return [
        PayoutRecordResponse(
            payout_id=str(p.id),
            brand_id=str(p.brand_id),
            amount=p.amount,
            currency=p.currency,
            gateway_payment_id=p.gateway_payment_id,
            source=p.source,
            recorded_by=p.recorded_by,
            recorded_at=p.recorded_at,
        )
        for p in payouts_for_brand(brand_id)
    ]


@brand_router.put("/{brand_id}/payout-account", response_model=PayoutAccountResponse)
async def register_payout_account(brand_id: str, body: PayoutAccountRequest) -> PayoutAccountResponse:
    """Register or replace where a brand's payouts are sent."""
    current_domain.process(
        RegisterPayoutAccount(
            brand_id=brand_id,
            brand_name=body.brand_name,
            account_holder=body.account_holder,
            account_number=body.account_number,
            ifsc_code=body.ifsc_code,
            upi_id=body.upi_id,
        ),
        asynchronous=False,
    )
    account = payout_account_for(brand_id)
    return PayoutAccountResponse(
        brand_id=brand_id,
        brand_name=account.brand_name,
        account_holder=account.account_holder,
        mode=account.destination().mode,
        missing_details=account.missing_details(),
    )


# ---------------------------------------------------------------------------
# Gateway Router
# ---------------------------------------------------------------------------
gateway_router = APIRouter(prefix="/payments/gateway", tags=["gateway"])


@gateway_router.post("/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only).

    This endpoint is only available when PROTEAN_ENV is not 'production'.
    It allows scripting declines, timeouts and outages for manual API testing.
    """
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    try:
        gateway.configure(
            should_succeed=body.should_succeed,
            failure_reason=body.failure_reason,
            faults=body.faults,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        faults=gateway.faults,
    )
