"""MarkOrderForReturn — the buyer flags a whole delivered order from the order page.

Every item gets its own PENDING return request where eligibility allows;
items that fail eligibility are reported back instead of failing the call.
The order itself moves to MARKED_FOR_RETURN.
"""

from datetime import UTC, datetime

import structlog
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.errors import AccessDeniedError, IneligibleError, NotFoundError
from aftersales.identity.user import load_actor
from aftersales.order.order import Order, OrderStatus, load_order
from aftersales.order.status_sync import apply_order_status
from aftersales.policy.policy import ReturnReason
from aftersales.returns.creation import open_return_request
from aftersales.returns.return_request import RequestType

logger = structlog.get_logger(__name__)

_MARKABLE_STATUSES = {OrderStatus.DELIVERED, OrderStatus.COMPLETED}


@aftersales.command(part_of=Order)
class MarkOrderForReturn:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    request_type = String(choices=RequestType, default=RequestType.RETURN.value)
    reason_id = Identifier()
    description = Text()


def _default_reason(request_type: str) -> ReturnReason:
    reasons = current_domain.repository_for(ReturnReason).active_for(request_type)
    if not reasons:
        raise NotFoundError("Return reason not found")
    return reasons[0]


@aftersales.command_handler(part_of=Order)
class MarkOrderForReturnHandler:
    @handle(MarkOrderForReturn)
    def mark_for_return(self, command):
        actor = load_actor(command.actor_id)
        order = load_order(command.order_id)

        if str(order.buyer_id) != str(actor.id):
            raise AccessDeniedError("Only the buyer of this order can mark it for return")
        if OrderStatus(order.status) not in _MARKABLE_STATUSES:
            raise ValidationError({"status": ["Only delivered orders can be marked for return"]})

        request_type = command.request_type or RequestType.RETURN.value
        reason_id = str(command.reason_id) if command.reason_id else str(_default_reason(request_type).id)
        description = command.description or "Return requested by buyer from order page."
        now = datetime.now(UTC)

        created, skipped = [], []
        for item in order.items or []:
            try:
                request = open_return_request(
                    actor=actor,
                    order=order,
                    order_item_id=str(item.id),
                    request_type=request_type,
                    reason_id=reason_id,
                    description=description,
                    media_urls=[],
                    now=now,
                )
            except (IneligibleError, NotFoundError) as exc:
                message = getattr(exc, "reason", None) or getattr(exc, "message", None) or str(exc)
                skipped.append({"order_item_id": str(item.id), "message": message})
                continue
            created.append(str(request.id))

        if apply_order_status(order, OrderStatus.MARKED_FOR_RETURN):
            current_domain.repository_for(Order).add(order)

        logger.info(
            "Order marked for return",
            order_id=str(order.id),
            created=len(created),
            skipped=len(skipped),
        )
        return {"order_id": str(order.id), "created": created, "skipped": skipped}
