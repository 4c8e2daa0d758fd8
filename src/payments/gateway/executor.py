"""Idempotent execution of gateway calls.

Retries transient failures with the same idempotency key. After an ambiguous
response (timeout) it never retries blindly: it first asks the gateway whether
the call went through and, if so, uses that outcome. This is what keeps a
refund or payout from being executed twice.
"""

import os
import time
from collections.abc import Callable

import structlog
from shared.errors import GatewayError, GatewayTimeout, GatewayUnavailable

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = int(os.environ.get("GATEWAY_MAX_ATTEMPTS", "3"))
RETRY_BACKOFF_SECONDS = float(os.environ.get("GATEWAY_RETRY_BACKOFF_SECONDS", "0.2"))


def _confirmed(result, operation, idempotency_key):
    if not result.success:
        logger.error(
            "Gateway declined request",
            operation=operation,
            idempotency_key=idempotency_key,
            failure_reason=result.failure_reason,
        )
        raise GatewayError({"gateway": [result.failure_reason or f"Gateway declined the {operation}"]})
    return result


def call_with_idempotency(
    create: Callable,
    fetch: Callable,
    operation: str,
    idempotency_key: str,
    max_attempts: int | None = None,
    backoff: float | None = None,
):
    """Run ``create`` until it yields a definitive result.

    Args:
        create: Issues the gateway call; must always send ``idempotency_key``.
        fetch: Looks up the outcome of a previous call with the same key;
            returns None when the gateway has no record of it.
        operation: Name used in logs and error messages ("refund", "payout").
        idempotency_key: The token shared by every attempt.

    Raises:
        GatewayError: The gateway declined, or attempts were exhausted.
    """
    max_attempts = max_attempts or MAX_ATTEMPTS
    backoff = RETRY_BACKOFF_SECONDS if backoff is None else backoff

    for attempt in range(1, max_attempts + 1):
        try:
            return _confirmed(create(), operation, idempotency_key)
        except GatewayTimeout as exc:
            logger.warning(
                "Gateway response ambiguous, checking outcome",
                operation=operation,
                idempotency_key=idempotency_key,
                attempt=attempt,
            )
            prior = fetch()
            if prior is not None:
                logger.info("Gateway had applied the request", operation=operation, idempotency_key=idempotency_key)
                return _confirmed(prior, operation, idempotency_key)
            last_error = exc
        except GatewayUnavailable as exc:
            logger.warning(
                "Gateway unavailable, retrying",
                operation=operation,
                idempotency_key=idempotency_key,
                attempt=attempt,
            )
            last_error = exc

        if attempt < max_attempts and backoff:
            time.sleep(backoff * attempt)

    logger.error(
        "Gateway attempts exhausted",
        operation=operation,
        idempotency_key=idempotency_key,
        attempts=max_attempts,
    )
    raise GatewayError(
        {"gateway": [f"{operation.capitalize()} could not be completed after {max_attempts} attempts: {last_error}"]}
    )
