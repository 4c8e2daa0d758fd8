"""Configurable fake payment gateway for development and testing.

Simulates a gateway without any external calls, including the failure modes
the idempotency protocol has to survive. Faults are scripted per call and
consumed in order:

- ``"unavailable"``: the call fails before reaching the gateway
- ``"timeout"``: the call times out and was NOT applied
- ``"timeout_applied"``: the call was applied but the response was lost

Like a real gateway, it remembers every idempotency key it has seen, so a
retried call returns the original result instead of moving money twice.
"""

from uuid import uuid4

from shared.errors import GatewayTimeout, GatewayUnavailable

from payments.gateway.port import PaymentGateway, PayoutDestination, PayoutResult, RefundResult

FAULTS = ("unavailable", "timeout", "timeout_applied")


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Declined by gateway"
        self.faults: list[str] = []
        self.calls: list[dict] = []
        self.refunds: dict[str, RefundResult] = {}
        self.payouts: dict[str, PayoutResult] = {}

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Declined by gateway",
        faults: list[str] | None = None,
    ) -> None:
        """Configure gateway behavior at runtime."""
        unknown = [f for f in faults or [] if f not in FAULTS]
        if unknown:
            raise ValueError(f"Unknown gateway faults: {', '.join(unknown)}")
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.faults = list(faults or [])

    def _next_fault(self) -> str | None:
        return self.faults.pop(0) if self.faults else None

    @staticmethod
    def _raise_before_applying(fault: str | None) -> None:
        if fault == "unavailable":
            raise GatewayUnavailable({"gateway": ["Gateway unavailable (simulated)"]})
        if fault == "timeout":
            raise GatewayTimeout({"gateway": ["Gateway timed out (simulated)"]})

    def create_refund(
        self,
        gateway_transaction_id: str,
        amount: float,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        self.calls.append(
            {
                "method": "create_refund",
                "gateway_transaction_id": gateway_transaction_id,
                "amount": amount,
                "reason": reason,
                "idempotency_key": idempotency_key,
            }
        )
        fault = self._next_fault()
        self._raise_before_applying(fault)

        result = self.refunds.get(idempotency_key)
        if result is None:
            if self.should_succeed:
                result = RefundResult(
                    success=True,
                    gateway_refund_id=f"rfnd_fake_{uuid4().hex[:14]}",
                    amount=amount,
                    gateway_status="processed",
                )
                self.refunds[idempotency_key] = result
            else:
                result = RefundResult(success=False, gateway_status="failed", failure_reason=self.failure_reason)

        if fault == "timeout_applied":
            raise GatewayTimeout({"gateway": ["Gateway response lost (simulated)"]})
        return result

    def fetch_refund(self, gateway_transaction_id: str, idempotency_key: str) -> RefundResult | None:
        self.calls.append(
            {
                "method": "fetch_refund",
                "gateway_transaction_id": gateway_transaction_id,
                "idempotency_key": idempotency_key,
            }
        )
        return self.refunds.get(idempotency_key)

    def create_payout(
        self,
        destination: PayoutDestination,
        amount: float,
        currency: str,
        idempotency_key: str,
    ) -> PayoutResult:
        self.calls.append(
            {
                "method": "create_payout",
                "destination": destination,
                "amount": amount,
                "currency": currency,
                "idempotency_key": idempotency_key,
            }
        )
        fault = self._next_fault()
        self._raise_before_applying(fault)

        result = self.payouts.get(idempotency_key)
        if result is None:
            if self.should_succeed:
                result = PayoutResult(
                    success=True,
                    gateway_payout_id=f"pout_fake_{uuid4().hex[:14]}",
                    amount=amount,
                    gateway_status="processed",
                )
                self.payouts[idempotency_key] = result
            else:
                result = PayoutResult(success=False, gateway_status="rejected", failure_reason=self.failure_reason)

        if fault == "timeout_applied":
            raise GatewayTimeout({"gateway": ["Gateway response lost (simulated)"]})
        return result

    def fetch_payout(self, idempotency_key: str) -> PayoutResult | None:
        self.calls.append({"method": "fetch_payout", "idempotency_key": idempotency_key})
        return self.payouts.get(idempotency_key)
