"""Event handler — ReturnRequest status changes that reach outside the request.

- REFUND_INITIATED runs Refund Settlement for the item's total price
- REFUND_PROCESSED closes the latest PROCESSING refund
- COMPLETED writes the outcome (returned / replaced / refunded) onto the OrderItem

Each reaction is best-effort: a failure is logged and the request keeps the
status it already committed.
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.order.order import Order, OrderStatus
from aftersales.refund.settlement import confirm_refund, process_refund
from aftersales.returns.events import ReturnStatusChanged
from aftersales.returns.repository import load_request
from aftersales.returns.return_request import RefundMethod, ReturnRequest, ReturnStatus

logger = structlog.get_logger(__name__)


@aftersales.event_handler(part_of=ReturnRequest)
class ReturnStatusReactions:
    @handle(ReturnStatusChanged)
    def on_status_changed(self, event: ReturnStatusChanged) -> None:
        target = ReturnStatus(event.new_status)
        try:
            if target == ReturnStatus.REFUND_INITIATED:
                self._start_settlement(event)
            elif target == ReturnStatus.REFUND_PROCESSED:
                self._confirm_settlement(event)
            elif target == ReturnStatus.COMPLETED:
                self._write_item_outcome(event)
        except Exception as exc:
            logger.error(
                "Return status reaction failed",
                return_request_id=str(event.return_request_id),
                new_status=event.new_status,
                error=str(exc),
            )

    def _start_settlement(self, event: ReturnStatusChanged) -> None:
        order = current_domain.repository_for(Order).get(str(event.order_id))
        item = order.item(event.order_item_id)
        result = process_refund(
            str(event.return_request_id),
            item.total_price,
            RefundMethod.ORIGINAL_METHOD.value,
        )
        logger.info(
            "Refund settlement triggered",
            return_request_id=str(event.return_request_id),
            success=result.success,
            message=result.message,
        )

    def _confirm_settlement(self, event: ReturnStatusChanged) -> None:
        result = confirm_refund(str(event.return_request_id))
        if not result.success:
            logger.warning(
                "Refund could not be confirmed",
                return_request_id=str(event.return_request_id),
                message=result.message,
            )

    def _write_item_outcome(self, event: ReturnStatusChanged) -> None:
        request = load_request(event.return_request_id)
        repo = current_domain.repository_for(Order)
        order = repo.get(str(event.order_id))
        order.update_item_status(str(event.order_item_id), OrderStatus(request.item_outcome()))
        repo.add(order)
        logger.info(
            "Order item outcome recorded",
            order_id=str(order.id),
            order_item_id=str(event.order_item_id),
            outcome=request.item_outcome(),
        )
