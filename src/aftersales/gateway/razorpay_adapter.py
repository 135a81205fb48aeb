"""Razorpay gateway adapter.

Refunds go through `client.payment.refund`; amounts are sent in paise.
Razorpay answers `processed` for instant refunds and `pending` for ones it
settles later. Each refund carries our receipt, which `find_refund` matches
against the refunds already recorded on the payment.
"""

import razorpay
import structlog
from razorpay.errors import BadRequestError, GatewayError, ServerError

from aftersales.gateway.port import PaymentGateway, RefundResult

logger = structlog.get_logger(__name__)

_REFUND_PAGE_SIZE = 100


class RazorpayGateway(PaymentGateway):
    def __init__(self, key_id: str, key_secret: str) -> None:
        self.client = razorpay.Client(auth=(key_id, key_secret))

    def create_refund(
        self,
        gateway_transaction_id: str,
        amount: float,
        reason: str,
        receipt: str | None = None,
    ) -> RefundResult:
        payload = {
            "amount": int(round(amount * 100)),
            "speed": "normal",
            "notes": {"reason": reason},
        }
        if receipt:
            payload["receipt"] = receipt
        try:
            refund = self.client.payment.refund(gateway_transaction_id, payload)
        except (BadRequestError, GatewayError, ServerError) as exc:
            logger.error(
                "Razorpay refund rejected",
                payment_id=gateway_transaction_id,
                error=str(exc),
            )
            return RefundResult(success=False, gateway_status="failed", failure_reason=str(exc))

        return _result_from(refund)

    def find_refund(self, gateway_transaction_id: str, receipt: str) -> RefundResult | None:
        response = self.client.payment.fetch_multiple_refund(
            gateway_transaction_id, {"count": _REFUND_PAGE_SIZE}
        )
        for refund in response.get("items", []):
            if refund.get("receipt") == receipt and refund.get("status") != "failed":
                logger.info(
                    "Razorpay refund found for receipt",
                    payment_id=gateway_transaction_id,
                    receipt=receipt,
                    refund_id=refund["id"],
                )
                return _result_from(refund)
        return None


def _result_from(refund: dict) -> RefundResult:
    return RefundResult(
        success=True,
        gateway_refund_id=refund["id"],
        gateway_status=refund.get("status", "pending"),
    )
