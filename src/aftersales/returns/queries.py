"""Read side of the return lifecycle: single-request detail and role-scoped listings.

A buyer's listing mixes two kinds of entry: real ReturnRequests, and orders
the buyer marked for return that have no request yet. The second kind is a
placeholder keyed `order-{order_id}` and carries only order-level data.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from protean.utils.globals import current_domain

from aftersales.identity.user import Role, User, load_actor
from aftersales.order.order import Order, OrderStatus
from aftersales.refund.refund import ReturnRefund
from aftersales.returns.access import require_can_view
from aftersales.returns.repository import load_request
from aftersales.returns.return_request import ReturnRequest, ReturnStatus
from aftersales.returns.transitions import parse_status


@dataclass(frozen=True)
class RealRequest:
    request: ReturnRequest

    @property
    def entry_id(self) -> str:
        return str(self.request.id)

    @property
    def created_at(self) -> datetime | None:
        return self.request.created_at


@dataclass(frozen=True)
class PendingOrderMark:
    order: Order

    @property
    def entry_id(self) -> str:
        return f"order-{self.order.id}"

    @property
    def created_at(self) -> datetime | None:
        return self.order.updated_at or self.order.created_at


ReturnEntry = Union[RealRequest, PendingOrderMark]


@dataclass(frozen=True)
class ReturnDetail:
    request: ReturnRequest
    refunds: list[ReturnRefund]


def get_return_request(return_request_id: str, actor_id: str) -> ReturnDetail:
    actor = load_actor(actor_id)
    request = load_request(return_request_id)
    require_can_view(actor, request)
    refunds = current_domain.repository_for(ReturnRefund).for_request(str(request.id))
    return ReturnDetail(request=request, refunds=refunds)


def _pending_marks(buyer_id: str, requested_order_ids: set[str]) -> list[PendingOrderMark]:
    orders = current_domain.repository_for(Order).for_buyer(buyer_id)
    return [
        PendingOrderMark(order=order)
        for order in orders
        if order.status == OrderStatus.MARKED_FOR_RETURN.value and str(order.id) not in requested_order_ids
    ]


def _visible_requests(actor: User) -> list[ReturnRequest]:
    repo = current_domain.repository_for(ReturnRequest)
    if actor.is_admin():
        return repo.everything()
    if actor.role == Role.SELLER.value:
        return repo.for_seller(str(actor.id))
    return repo.for_buyer(str(actor.id))


def list_return_entries(actor_id: str, status: str | None = None) -> list[ReturnEntry]:
    """Entries visible to the actor, newest first, optionally filtered by status.

    Placeholders only appear in a buyer's unfiltered listing or when filtering
    by `pending`, since that is the state their eventual request starts in.
    """
    actor = load_actor(actor_id)
    requests = _visible_requests(actor)
    if status:
        parse_status(status)
        requests = [r for r in requests if r.status == status]

    entries: list[ReturnEntry] = [RealRequest(request=r) for r in requests]
    if not actor.is_admin() and actor.role == Role.BUYER.value and status in (None, ReturnStatus.PENDING.value):
        requested = {str(r.order_id) for r in current_domain.repository_for(ReturnRequest).for_buyer(str(actor.id))}
        entries.extend(_pending_marks(str(actor.id), requested))

    return sorted(entries, key=lambda e: e.created_at.timestamp() if e.created_at else 0, reverse=True)
