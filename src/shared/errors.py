"""Marketplace error taxonomy shared by the Ordering and Payments contexts.

Business-rule violations (``InvalidTransition``, ``NotEligible``,
``AlreadyResolved``) are protean ``ValidationError`` subclasses so they flow
through the same handling as every other validation failure. Concurrency,
gateway and idempotency failures are not validation problems and derive from
``MarketplaceError`` instead.

Every error carries a ``messages`` dict keyed by field name and a stable
``code`` string that API clients can switch on.
"""

from protean.exceptions import ValidationError


class InvalidTransition(ValidationError):
    """A status change is not allowed from the current state."""

    code = "invalid_transition"


class NotEligible(ValidationError):
    """A business precondition for the operation is not met."""

    code = "not_eligible"


class AlreadyResolved(ValidationError):
    """A request has already been approved or rejected."""

    code = "already_resolved"


class MarketplaceError(Exception):
    code = "marketplace_error"

    def __init__(self, messages: dict | str | None = None) -> None:
        if messages is None:
            messages = {"_entity": [self.__class__.__name__]}
        elif isinstance(messages, str):
            messages = {"_entity": [messages]}
        self.messages = messages
        super().__init__(messages)


class Conflict(MarketplaceError):
    """A concurrent mutation won the race for the same order or brand."""

    code = "conflict"


class GatewayError(MarketplaceError):
    """The payment gateway failed or declined the request."""

    code = "gateway_error"


class GatewayTimeout(GatewayError):
    """The gateway did not answer in time; the call may or may not have applied."""


class GatewayUnavailable(GatewayError):
    """The gateway could not be reached; the call was definitely not applied."""


class DuplicatePayout(MarketplaceError):
    """A payout with the same gateway payment id was already recorded with different data."""

    code = "duplicate_payout"


class DuplicateRefund(MarketplaceError):
    """A refund with the same gateway refund id was already recorded with different data."""

    code = "duplicate_refund"
