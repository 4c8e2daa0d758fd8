"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing (the default)
- RazorpayGateway when RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET are set
"""

import os

from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import PaymentGateway

_current_gateway: PaymentGateway | None = None


def _gateway_from_environment() -> PaymentGateway:
    key_id = os.environ.get("RAZORPAY_KEY_ID")
    key_secret = os.environ.get("RAZORPAY_KEY_SECRET")
    if not (key_id and key_secret):
        return FakeGateway()

    from payments.gateway.razorpay_adapter import RazorpayGateway

    return RazorpayGateway(
        key_id=key_id,
        key_secret=key_secret,
        account_number=os.environ.get("RAZORPAYX_ACCOUNT_NUMBER", ""),
        timeout=float(os.environ.get("GATEWAY_TIMEOUT_SECONDS", "10")),
    )


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _gateway_from_environment()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
