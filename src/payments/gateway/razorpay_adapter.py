"""Razorpay payment gateway adapter.

Refunds go through the Razorpay payments API and payouts through RazorpayX.
Amounts are sent in paise. The idempotency key travels as the refund
``receipt`` and as the payout ``reference_id`` plus ``X-Payout-Idempotency``
header, so both can be looked up again after a lost response.
"""

import httpx
import structlog
from shared.errors import GatewayError, GatewayTimeout, GatewayUnavailable
from shared.money import from_minor_units, to_minor_units

from payments.gateway.port import PaymentGateway, PayoutDestination, PayoutResult, RefundResult

logger = structlog.get_logger(__name__)

RAZORPAY_BASE_URL = "https://api.razorpay.com"

_REFUND_OK = {"processed", "pending", "created"}
_PAYOUT_OK = {"processed", "processing", "queued", "pending"}


class RazorpayGateway(PaymentGateway):
    """Production gateway adapter over the Razorpay REST API."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        account_number: str,
        base_url: str = RAZORPAY_BASE_URL,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.account_number = account_number
        self._client = httpx.Client(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    # -------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------
    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.ConnectTimeout as exc:
            raise GatewayUnavailable({"gateway": [f"Could not connect to Razorpay: {exc}"]}) from exc
        except httpx.TimeoutException as exc:
            raise GatewayTimeout({"gateway": [f"Razorpay did not respond in time: {exc}"]}) from exc
        except httpx.ConnectError as exc:
            raise GatewayUnavailable({"gateway": [f"Could not connect to Razorpay: {exc}"]}) from exc
        except httpx.TransportError as exc:
            raise GatewayTimeout({"gateway": [f"Connection to Razorpay failed mid-request: {exc}"]}) from exc

        if response.status_code == 429:
            raise GatewayUnavailable({"gateway": ["Razorpay rate limit reached"]})
        if response.status_code >= 500:
            # The request may have been applied before the server failed
            raise GatewayTimeout({"gateway": [f"Razorpay server error {response.status_code}"]})
        return response

    @staticmethod
    def _error_description(response: httpx.Response) -> str:
        try:
            return response.json()["error"]["description"]
        except (ValueError, KeyError, TypeError):
            return f"Razorpay returned {response.status_code}"

    def _raise_for_lookup(self, response: httpx.Response) -> None:
        if response.is_error and response.status_code != 404:
            raise GatewayError({"gateway": [self._error_description(response)]})

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    @staticmethod
    def _refund_result(payload: dict) -> RefundResult:
        status = payload.get("status")
        return RefundResult(
            success=status in _REFUND_OK,
            gateway_refund_id=payload.get("id"),
            amount=float(from_minor_units(payload.get("amount", 0))),
            gateway_status=status,
            failure_reason=None if status in _REFUND_OK else f"Refund {status}",
        )

    def create_refund(
        self,
        gateway_transaction_id: str,
        amount: float,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        response = self._send(
            "POST",
            f"/v1/payments/{gateway_transaction_id}/refund",
            json={
                "amount": to_minor_units(amount),
                "speed": "normal",
                "receipt": idempotency_key,
                "notes": {"reason": reason},
            },
        )
        if response.is_error:
            reason = self._error_description(response)
            logger.warning("Razorpay rejected refund", payment_id=gateway_transaction_id, reason=reason)
            return RefundResult(success=False, gateway_status="failed", failure_reason=reason)
        return self._refund_result(response.json())

    def fetch_refund(self, gateway_transaction_id: str, idempotency_key: str) -> RefundResult | None:
        response = self._send("GET", f"/v1/payments/{gateway_transaction_id}/refunds", params={"count": 100})
        self._raise_for_lookup(response)
        if response.status_code == 404:
            return None
        for item in response.json().get("items", []):
            if item.get("receipt") == idempotency_key:
                return self._refund_result(item)
        return None

    # -------------------------------------------------------------------
    # Payouts
    # -------------------------------------------------------------------
    @staticmethod
    def _payout_result(payload: dict) -> PayoutResult:
        status = payload.get("status")
        failure = (payload.get("status_details") or {}).get("description")
        return PayoutResult(
            success=status in _PAYOUT_OK,
            gateway_payout_id=payload.get("id"),
            amount=float(from_minor_units(payload.get("amount", 0))),
            gateway_status=status,
            failure_reason=None if status in _PAYOUT_OK else failure or f"Payout {status}",
        )

    @staticmethod
    def _fund_account(destination: PayoutDestination) -> dict:
        contact = {"name": destination.account_holder, "type": "vendor"}
        if destination.mode == "bank_account":
            return {
                "account_type": "bank_account",
                "bank_account": {
                    "name": destination.account_holder,
                    "ifsc": destination.ifsc_code,
                    "account_number": destination.account_number,
                },
                "contact": contact,
            }
        return {"account_type": "vpa", "vpa": {"address": destination.upi_id}, "contact": contact}

    def create_payout(
        self,
        destination: PayoutDestination,
        amount: float,
        currency: str,
        idempotency_key: str,
    ) -> PayoutResult:
        response = self._send(
            "POST",
            "/v1/payouts",
            headers={"X-Payout-Idempotency": idempotency_key},
            json={
                "account_number": self.account_number,
                "amount": to_minor_units(amount),
                "currency": currency,
                "mode": "IMPS" if destination.mode == "bank_account" else "UPI",
                "purpose": "payout",
                "fund_account": self._fund_account(destination),
                "queue_if_low_balance": True,
                "reference_id": idempotency_key,
                "narration": "Marketplace settlement",
            },
        )
        if response.is_error:
            reason = self._error_description(response)
            logger.warning("Razorpay rejected payout", reference_id=idempotency_key, reason=reason)
            return PayoutResult(success=False, gateway_status="rejected", failure_reason=reason)
        return self._payout_result(response.json())

    def fetch_payout(self, idempotency_key: str) -> PayoutResult | None:
        response = self._send(
            "GET",
            "/v1/payouts",
            params={"account_number": self.account_number, "reference_id": idempotency_key},
        )
        self._raise_for_lookup(response)
        if response.status_code == 404:
            return None
        items = response.json().get("items", [])
        return self._payout_result(items[0]) if items else None
