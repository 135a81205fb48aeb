"""FastAPI routes for orders: seeding, delivery, status changes and mark-for-return."""

import json

from fastapi import APIRouter, Depends
from protean.utils.globals import current_domain

from aftersales.api.auth import acting_user_id
from aftersales.api.schemas import (
    IdResponse,
    MarkDeliveredRequest,
    MarkForReturnRequest,
    MarkForReturnResponse,
    OrderStatusRequest,
    PlaceOrderRequest,
    StatusResponse,
)
from aftersales.order.placement import MarkOrderDelivered, PlaceOrder
from aftersales.order.status_sync import ChangeOrderStatus, UpdateOrderItemStatus
from aftersales.returns.marking import MarkOrderForReturn

order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=IdResponse)
async def place_order(body: PlaceOrderRequest, actor_id: str = Depends(acting_user_id)) -> IdResponse:
    command = PlaceOrder(
        order_id=body.order_id,
        buyer_id=actor_id,
        items=json.dumps([item.model_dump() for item in body.items]),
        payment_method=body.payment_method,
        payment_transaction_id=body.payment_transaction_id,
        wallet_coins_used=body.wallet_coins_used,
    )
    order_id = current_domain.process(command, asynchronous=False)
    return IdResponse(id=order_id)


@order_router.post("/{order_id}/deliver", response_model=StatusResponse)
async def mark_delivered(
    order_id: str,
    body: MarkDeliveredRequest | None = None,
    actor_id: str = Depends(acting_user_id),
) -> StatusResponse:
    command = MarkOrderDelivered(
        order_id=order_id,
        actor_id=actor_id,
        delivered_at=body.delivered_at if body else None,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status="delivered")


@order_router.post("/{order_id}/mark-for-return", response_model=MarkForReturnResponse)
async def mark_for_return(
    order_id: str,
    body: MarkForReturnRequest | None = None,
    actor_id: str = Depends(acting_user_id),
) -> MarkForReturnResponse:
    """Open a request for every eligible item of a delivered order."""
    body = body or MarkForReturnRequest()
    command = MarkOrderForReturn(
        order_id=order_id,
        actor_id=actor_id,
        request_type=body.request_type,
        reason_id=body.reason_id,
        description=body.description,
    )
    result = current_domain.process(command, asynchronous=False)
    return MarkForReturnResponse(**result)


@order_router.post("/{order_id}/status", response_model=StatusResponse)
async def change_order_status(
    order_id: str,
    body: OrderStatusRequest,
    actor_id: str = Depends(acting_user_id),
) -> StatusResponse:
    command = ChangeOrderStatus(order_id=order_id, actor_id=actor_id, status=body.status)
    status = current_domain.process(command, asynchronous=False)
    return StatusResponse(status=status)


@order_router.post("/{order_id}/items/{order_item_id}/status", response_model=StatusResponse)
async def update_item_status(
    order_id: str,
    order_item_id: str,
    body: OrderStatusRequest,
    actor_id: str = Depends(acting_user_id),
) -> StatusResponse:
    """Move one item; the returned status is the order's after promotion."""
    command = UpdateOrderItemStatus(
        order_id=order_id,
        order_item_id=order_item_id,
        actor_id=actor_id,
        status=body.status,
    )
    status = current_domain.process(command, asynchronous=False)
    return StatusResponse(status=status)
