"""Configurable fake payment gateway for development and testing.

Succeeds by default. Tests can make it decline, leave refunds pending, or
stall long enough to trip the settlement timeout. A stalled refund still
goes through once the delay ends, just like a slow real gateway.
"""

import threading
import time
from uuid import uuid4

from aftersales.gateway.port import PaymentGateway, RefundResult


class FakeGateway(PaymentGateway):
    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Refund declined"
        self.refund_status: str = "processed"
        self.delay_seconds: float = 0.0
        self.calls: list[dict] = []
        self.issued: dict[tuple[str, str], RefundResult] = {}
        self._lock = threading.Lock()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Refund declined",
        refund_status: str = "processed",
        delay_seconds: float = 0.0,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.refund_status = refund_status
        self.delay_seconds = delay_seconds

    def create_refund(
        self,
        gateway_transaction_id: str,
        amount: float,
        reason: str,
        receipt: str | None = None,
    ) -> RefundResult:
        with self._lock:
            self.calls.append(
                {
                    "method": "create_refund",
                    "gateway_transaction_id": gateway_transaction_id,
                    "amount": amount,
                    "reason": reason,
                    "receipt": receipt,
                }
            )
        if self.delay_seconds:
            time.sleep(self.delay_seconds)

        if not self.should_succeed:
            return RefundResult(success=False, gateway_status="failed", failure_reason=self.failure_reason)

        result = RefundResult(
            success=True,
            gateway_refund_id=f"fake_rfnd_{uuid4().hex[:12]}",
            gateway_status=self.refund_status,
        )
        if receipt:
            with self._lock:
                self.issued[(gateway_transaction_id, receipt)] = result
        return result

    def find_refund(self, gateway_transaction_id: str, receipt: str) -> RefundResult | None:
        with self._lock:
            self.calls.append(
                {
                    "method": "find_refund",
                    "gateway_transaction_id": gateway_transaction_id,
                    "receipt": receipt,
                }
            )
            return self.issued.get((gateway_transaction_id, receipt))

    def refunds_created(self) -> list[dict]:
        with self._lock:
            return [c for c in self.calls if c["method"] == "create_refund"]
