"""Payment gateway port for reversing a captured payment."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    gateway_refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None

    def is_settled(self) -> bool:
        """True once the gateway reports the money as moved, not merely accepted."""
        return self.success and self.gateway_status in ("processed", "succeeded")


class PaymentGateway(ABC):
    @abstractmethod
    def create_refund(
        self,
        gateway_transaction_id: str,
        amount: float,
        reason: str,
        receipt: str | None = None,
    ) -> RefundResult:
        """Refund (part of) a previous charge.

        `receipt` is our reference for the refund; the gateway stores it so a
        later `find_refund` can tell whether the refund was already issued.
        """
        ...

    @abstractmethod
    def find_refund(self, gateway_transaction_id: str, receipt: str) -> RefundResult | None:
        """Look up a refund previously issued against the charge with `receipt`."""
        ...
