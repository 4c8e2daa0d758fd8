"""Payment gateway port (abstract interface).

Defines the contract every gateway adapter implements for the two money
movements this platform initiates: refunds back to customers and payouts to
brands. Both are keyed by an idempotency token generated by the caller, and
both can be looked up by that token afterwards, which is how an ambiguous
(timed out) call is resolved before anything is retried.

Adapters raise ``GatewayTimeout`` when the outcome is unknown and
``GatewayUnavailable`` when the request certainly did not reach the gateway.
A definitive decline is returned as a result with ``success=False``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    gateway_refund_id: str | None = None
    amount: float | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class PayoutResult:
    """Result of a payout attempt."""

    success: bool
    gateway_payout_id: str | None = None
    amount: float | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class PayoutDestination:
    """Where a brand's money goes: a bank account or a UPI id."""

    account_holder: str
    account_number: str | None = None
    ifsc_code: str | None = None
    upi_id: str | None = None

    @property
    def mode(self) -> str:
        return "bank_account" if self.account_number and self.ifsc_code else "vpa"


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_refund(
        self,
        gateway_transaction_id: str,
        amount: float,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        """Refund part or all of a captured payment."""
        ...

    @abstractmethod
    def fetch_refund(
        self,
        gateway_transaction_id: str,
        idempotency_key: str,
    ) -> RefundResult | None:
        """Look up a refund created with ``idempotency_key``; None if it never happened."""
        ...

    @abstractmethod
    def create_payout(
        self,
        destination: PayoutDestination,
        amount: float,
        currency: str,
        idempotency_key: str,
    ) -> PayoutResult:
        """Transfer money to a brand's payout destination."""
        ...

    @abstractmethod
    def fetch_payout(self, idempotency_key: str) -> PayoutResult | None:
        """Look up a payout created with ``idempotency_key``; None if it never happened."""
        ...
