"""Refund settlement — moves money back to the buyer for a return request.

`process_refund` opens a ReturnRefund in PROCESSING, then either credits the
buyer's wallet or reverses the original payment through the gateway, and
closes the row as COMPLETED or FAILED. It never raises: callers always get a
`SettlementResult` and the refund row records what happened.

Routing by the order's payment method:
    wallet, or refund method "wallet"   → wallet credit
    cod                                 → wallet credit (nothing to reverse)
    razorpay / card / upi               → gateway refund, bounded by a timeout
    anything else                       → failed, manual refund required
"""

from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from aftersales.errors import ConcurrentModificationError, SettlementFailure, SettlementTimeout
from aftersales.gateway import gateway_timeout, get_gateway
from aftersales.gateway.port import RefundResult
from aftersales.order.order import Order, PaymentMethod
from aftersales.refund.refund import ReturnRefund
from aftersales.returns.repository import load_request
from aftersales.returns.return_request import RefundMethod, RefundStatus, ReturnRequest
from aftersales.utils.money import round_money
from aftersales.wallet.ledger import adjust_wallet
from aftersales.wallet.wallet import ReferenceType, TransactionType

logger = structlog.get_logger(__name__)

_GATEWAY_METHODS = {PaymentMethod.RAZORPAY.value, PaymentMethod.CARD.value, PaymentMethod.UPI.value}

_gateway_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="refund-gateway")

# Gateway calls that outlived their timeout, by receipt, until a retry collects them
_unresolved: dict[str, Future] = {}


@dataclass(frozen=True)
class SettlementResult:
    success: bool
    refund: ReturnRefund | None
    message: str

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "refund_id": str(self.refund.id) if self.refund else None,
            "status": self.refund.status if self.refund else None,
        }


@dataclass(frozen=True)
class _Outcome:
    settled: bool
    external_refund_id: str | None
    notes: str


def process_refund(return_request_id: str, amount: float, method: str = RefundMethod.ORIGINAL_METHOD.value):
    """Settle `amount` for the request. Returns a SettlementResult, never raises."""
    try:
        return _process(str(return_request_id), round_money(amount), method)
    except Exception as exc:
        logger.error(
            "Refund processing failed unexpectedly",
            return_request_id=str(return_request_id),
            error=str(exc),
        )
        return SettlementResult(success=False, refund=None, message=f"Refund processing failed: {exc}")


def confirm_refund(return_request_id: str) -> SettlementResult:
    """Close the latest PROCESSING refund as COMPLETED once the money has moved."""
    try:
        refunds = current_domain.repository_for(ReturnRefund)
        latest = refunds.latest_for(return_request_id)
        if latest is None:
            return SettlementResult(success=False, refund=None, message="No refund to confirm")
        if latest.status == RefundStatus.COMPLETED.value:
            return SettlementResult(success=True, refund=latest, message="Refund already completed")
        if latest.status == RefundStatus.FAILED.value:
            return SettlementResult(success=False, refund=latest, message="Latest refund attempt failed")

        latest.complete(notes="Confirmed as processed")
        refunds.add(latest)
        _record_on_request(return_request_id, latest, RefundStatus.COMPLETED)
        return SettlementResult(success=True, refund=latest, message="Refund completed")
    except Exception as exc:
        logger.error("Refund confirmation failed", return_request_id=str(return_request_id), error=str(exc))
        return SettlementResult(success=False, refund=None, message=f"Refund confirmation failed: {exc}")


def _process(return_request_id: str, amount: float, method: str) -> SettlementResult:
    refunds = current_domain.repository_for(ReturnRefund)

    latest = refunds.latest_for(return_request_id)
    if latest is not None and latest.status == RefundStatus.COMPLETED.value:
        logger.info("Refund already completed, not crediting again", return_request_id=return_request_id)
        return SettlementResult(success=True, refund=latest, message="Refund already completed")
    if latest is not None and latest.status == RefundStatus.PROCESSING.value:
        return SettlementResult(success=True, refund=latest, message="Refund already in progress")

    request = load_request(return_request_id)
    order = current_domain.repository_for(Order).get(str(request.order_id))

    refund = ReturnRefund.start(
        return_request_id=return_request_id,
        amount=amount,
        method=method,
        attempt=(latest.attempt + 1) if latest else 1,
    )
    refunds.add(refund)

    reconcile = latest is not None and bool(latest.timed_out)
    try:
        outcome = _settle(refund, request, order, reconcile)
    except SettlementFailure as exc:
        refund.fail(str(exc), notes=_failure_notes(order), timed_out=isinstance(exc, SettlementTimeout))
        refunds.add(refund)
        _record_on_request(return_request_id, refund, RefundStatus.FAILED)
        logger.warning(
            "Refund settlement failed",
            return_request_id=return_request_id,
            refund_id=str(refund.id),
            payment_method=order.payment_method,
            reason=str(exc),
        )
        return SettlementResult(success=False, refund=refund, message=str(exc))

    if outcome.settled:
        refund.complete(outcome.external_refund_id, outcome.notes)
        status = RefundStatus.COMPLETED
    else:
        refund.accept(outcome.external_refund_id, outcome.notes)
        status = RefundStatus.PROCESSING
    refunds.add(refund)
    _record_on_request(return_request_id, refund, status)

    logger.info(
        "Refund settled",
        return_request_id=return_request_id,
        refund_id=str(refund.id),
        amount=amount,
        status=status.value,
    )
    return SettlementResult(success=True, refund=refund, message=outcome.notes)


def _settle(refund: ReturnRefund, request: ReturnRequest, order: Order, reconcile: bool = False) -> _Outcome:
    if reconcile and order.payment_method in _GATEWAY_METHODS and order.payment_transaction_id:
        earlier = _earlier_gateway_refund(request, order)
        if earlier is not None:
            return _outcome_of(earlier)

    if refund.method == RefundMethod.WALLET.value or order.payment_method == PaymentMethod.WALLET.value:
        _credit_wallet(request, refund.amount, f"Refund for return request {request.id}")
        return _Outcome(True, f"wallet-refund-{refund.id}", "Refunded to wallet")

    if order.payment_method == PaymentMethod.COD.value:
        _credit_wallet(request, refund.amount, f"COD refund for return request {request.id}")
        return _Outcome(True, f"wallet-cod-refund-{refund.id}", "Cash on delivery order refunded to wallet")

    if order.payment_method in _GATEWAY_METHODS:
        return _refund_via_gateway(refund, request, order)

    raise SettlementFailure(f"Refund for payment method '{order.payment_method}' not supported yet")


def _credit_wallet(request: ReturnRequest, amount: float, description: str) -> None:
    try:
        adjust_wallet(
            user_id=str(request.buyer_id),
            amount=amount,
            transaction_type=TransactionType.CREDIT.value,
            reference_type=ReferenceType.RETURN_REFUND.value,
            reference_id=str(request.id),
            description=description,
        )
    except Exception as exc:
        raise SettlementFailure(f"Wallet credit failed: {exc}") from exc


def _refund_via_gateway(refund: ReturnRefund, request: ReturnRequest, order: Order) -> _Outcome:
    if not order.payment_transaction_id:
        raise SettlementFailure("Original payment transaction not found")

    receipt = refund_receipt(request.id)
    future = _gateway_pool.submit(
        get_gateway().create_refund,
        gateway_transaction_id=order.payment_transaction_id,
        amount=refund.amount,
        reason=f"Return request {request.id}",
        receipt=receipt,
    )
    result = _await_gateway(future, receipt)

    if not result.success:
        raise SettlementFailure(result.failure_reason or "Payment gateway refused the refund")
    return _outcome_of(result)


def refund_receipt(return_request_id) -> str:
    """Our reference for the gateway refund of a request, shared by every attempt."""
    return f"rr_{str(return_request_id).replace('-', '')}"


def _await_gateway(future: Future, receipt: str | None = None) -> RefundResult | None:
    timeout = gateway_timeout()
    try:
        return future.result(timeout=timeout)
    except FuturesTimeoutError:
        # The call keeps running; the next attempt collects it before refunding again
        if receipt:
            _unresolved[receipt] = future
        raise SettlementTimeout(f"Payment gateway did not respond within {timeout:g} seconds") from None
    except Exception as exc:
        raise SettlementFailure(f"Payment gateway error: {exc}") from exc


def _earlier_gateway_refund(request: ReturnRequest, order: Order) -> RefundResult | None:
    """The refund a timed-out attempt issued after all, if any.

    A call still running in this process is awaited first; otherwise the
    gateway is asked for a refund carrying the request's receipt.
    """
    receipt = refund_receipt(request.id)
    pending = _unresolved.pop(receipt, None)
    if pending is not None:
        try:
            result = _await_gateway(pending, receipt)
        except SettlementTimeout:
            raise
        except SettlementFailure:
            result = None
        if result is not None and result.success:
            logger.info(
                "Timed-out gateway refund completed late; not refunding again",
                return_request_id=str(request.id),
                gateway_refund_id=result.gateway_refund_id,
            )
            return result

    future = _gateway_pool.submit(
        get_gateway().find_refund,
        gateway_transaction_id=order.payment_transaction_id,
        receipt=receipt,
    )
    earlier = _await_gateway(future)
    if earlier is not None:
        logger.info(
            "Gateway already holds a refund for this request; not refunding again",
            return_request_id=str(request.id),
            gateway_refund_id=earlier.gateway_refund_id,
        )
    return earlier


def _outcome_of(result: RefundResult) -> _Outcome:
    notes = f"Gateway refund {result.gateway_refund_id} ({result.gateway_status})"
    return _Outcome(result.is_settled(), result.gateway_refund_id, notes)


def _failure_notes(order: Order) -> str | None:
    if order.payment_method not in _GATEWAY_METHODS | {PaymentMethod.COD.value, PaymentMethod.WALLET.value}:
        return "Manual refund required"
    return None


def _record_on_request(return_request_id: str, refund: ReturnRefund, status: RefundStatus) -> None:
    """Mirror the refund outcome onto the request. The refund row stays authoritative if this loses a race."""
    repo = current_domain.repository_for(ReturnRequest)
    request = load_request(return_request_id)
    request.record_refund(refund.amount, refund.method, status)
    try:
        repo.save(request)
    except ConcurrentModificationError:
        logger.warning(
            "Return request changed during settlement; refund status not mirrored",
            return_request_id=return_request_id,
            refund_id=str(refund.id),
            refund_status=status.value,
        )
