"""CreateReturnRequest — a buyer asks to return, refund or replace one order item.

Eligibility is evaluated first; a request is only created in PENDING with
its creation history row when every rule passes. Notifications to buyer
and seller follow from the ReturnRequested event.
"""

import json
from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.errors import AccessDeniedError, IneligibleError, NotFoundError
from aftersales.identity.user import User, load_actor
from aftersales.order.order import Order, load_order
from aftersales.policy.policy import ReturnPolicy, ReturnReason
from aftersales.returns.eligibility import check_eligibility
from aftersales.returns.return_request import PolicySnapshot, RequestType, ReturnRequest


@aftersales.command(part_of="ReturnRequest")
class CreateReturnRequest:
    buyer_id = Identifier(required=True)
    order_id = Identifier(required=True)
    order_item_id = Identifier(required=True)
    request_type = String(required=True, choices=RequestType)
    reason_id = Identifier(required=True)
    description = Text()
    media_urls = Text()  # JSON list of URLs


def snapshot_of(policy: ReturnPolicy) -> PolicySnapshot:
    return PolicySnapshot(
        policy_id=str(policy.id),
        return_window_days=policy.return_window_days,
        replacement_window_days=policy.replacement_window_days,
        refund_window_days=policy.refund_window_days,
        shipping_paid_by=policy.shipping_paid_by,
        non_returnable_items=policy.non_returnable_items,
        policy_text=policy.policy_text,
    )


def resolve_reason(reason_id: str, request_type: str) -> ReturnReason:
    try:
        reason = current_domain.repository_for(ReturnReason).get(str(reason_id))
    except ObjectNotFoundError:
        raise NotFoundError("Return reason not found") from None
    if not reason.is_active or not reason.applies_to(request_type):
        raise NotFoundError("Return reason not found")
    return reason


def open_return_request(
    actor: User,
    order: Order,
    order_item_id: str,
    request_type: str,
    reason_id: str,
    description: str | None,
    media_urls: list[str] | None,
    now: datetime,
) -> ReturnRequest:
    """Evaluate eligibility and persist a new PENDING request for one item."""
    if str(order.buyer_id) != str(actor.id):
        raise AccessDeniedError("Only the buyer of this order can request a return")
    resolve_reason(reason_id, request_type)

    repo = current_domain.repository_for(ReturnRequest)
    result = check_eligibility(order.id, order_item_id, request_type, now=now)
    if not result.eligible:
        if result.missing:
            raise NotFoundError(result.message)
        raise IneligibleError(result.message)

    item = order.item(order_item_id)
    request = ReturnRequest.create(
        order_id=str(order.id),
        order_item_id=str(item.id),
        buyer_id=str(actor.id),
        seller_id=str(item.seller_id),
        request_type=request_type,
        reason_id=str(reason_id),
        description=description,
        media_urls=media_urls,
        policy=snapshot_of(result.policy),
    )
    repo.save(request)
    return request


@aftersales.command_handler(part_of=ReturnRequest)
class CreateReturnRequestHandler:
    @handle(CreateReturnRequest)
    def create_return_request(self, command):
        actor = load_actor(command.buyer_id)
        order = load_order(command.order_id)
        request = open_return_request(
            actor=actor,
            order=order,
            order_item_id=str(command.order_item_id),
            request_type=command.request_type,
            reason_id=str(command.reason_id),
            description=command.description,
            media_urls=json.loads(command.media_urls) if command.media_urls else [],
            now=datetime.now(UTC),
        )
        return str(request.id)
