"""Payment gateway factory.

`PAYMENT_GATEWAY=razorpay` (with RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET)
selects the real adapter; anything else gets the fake. Tests swap
implementations with `set_gateway` / `reset_gateway`.
"""

import os

from aftersales.gateway.fake_adapter import FakeGateway
from aftersales.gateway.port import PaymentGateway

DEFAULT_TIMEOUT_SECONDS = 10.0

_current_gateway: PaymentGateway | None = None


def _build_gateway() -> PaymentGateway:
    if os.environ.get("PAYMENT_GATEWAY", "fake").lower() == "razorpay":
        from aftersales.gateway.razorpay_adapter import RazorpayGateway

        return RazorpayGateway(
            key_id=os.environ["RAZORPAY_KEY_ID"],
            key_secret=os.environ["RAZORPAY_KEY_SECRET"],
        )
    return FakeGateway()


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _build_gateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None


def gateway_timeout() -> float:
    """Upper bound, in seconds, on a single gateway refund call."""
    return float(os.environ.get("REFUND_GATEWAY_TIMEOUT", DEFAULT_TIMEOUT_SECONDS))
