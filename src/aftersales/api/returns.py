"""FastAPI routes for the return lifecycle.

Each route translates between Pydantic schemas (external contract) and
Protean commands (internal domain concepts). The acting user comes from the
X-User-Id header; what that user may do is decided by the domain.
"""

import json
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query
from protean.utils.globals import current_domain

from aftersales.api.auth import acting_user_id
from aftersales.api.schemas import (
    CancelRequest,
    CompleteRequest,
    CreateReturnRequestBody,
    EligibilityResponse,
    HistoryResponse,
    IdResponse,
    MarkReceivedRequest,
    MessageRequest,
    MessageResponse,
    ReasonResponse,
    RefundResponse,
    RetryRefundRequest,
    ReturnEntryResponse,
    ReturnRequestResponse,
    SettlementResponse,
    TrackingRequest,
    TrackingResponse,
    UpdateStatusRequest,
)
from aftersales.errors import AccessDeniedError
from aftersales.identity.user import load_actor
from aftersales.order.order import load_order
from aftersales.policy.policy import ReturnReason
from aftersales.returns.creation import CreateReturnRequest
from aftersales.returns.eligibility import check_eligibility
from aftersales.returns.messaging import AddReturnMessage, ReadReturnThread
from aftersales.returns.queries import RealRequest, ReturnEntry, get_return_request, list_return_entries
from aftersales.returns.refund_retry import RetryRefund
from aftersales.returns.shipping import AddReplacementTracking, AddReturnTracking, CompleteReturn, MarkReturnReceived
from aftersales.returns.transitions import CancelReturnRequest, UpdateReturnStatus

return_router = APIRouter(prefix="/returns", tags=["returns"])


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def _tracking(tracking) -> TrackingResponse | None:
    if tracking is None:
        return None
    return TrackingResponse(
        tracking_number=tracking.tracking_number,
        courier_name=tracking.courier_name,
        tracking_url=tracking.tracking_url,
        shipped_at=tracking.shipped_at,
    )


def _messages(request, reader_id: str) -> list[MessageResponse]:
    return [
        MessageResponse(
            id=str(m.id),
            sender_id=str(m.sender_id),
            sender_role=m.sender_role,
            message=m.message,
            media_urls=json.loads(m.media_urls or "[]"),
            is_read=m.is_read_by(reader_id),
            created_at=m.created_at,
        )
        for m in request.ordered_messages()
    ]


def _request_response(detail, reader_id: str) -> ReturnRequestResponse:
    request = detail.request
    return ReturnRequestResponse(
        id=str(request.id),
        version=request._version,
        order_id=str(request.order_id),
        order_item_id=str(request.order_item_id),
        buyer_id=str(request.buyer_id),
        seller_id=str(request.seller_id),
        request_type=request.request_type,
        reason_id=str(request.reason_id),
        description=request.description,
        media_urls=request.media(),
        status=request.status,
        eligible_for_refund=bool(request.eligible_for_refund),
        refund_amount=request.refund_amount,
        refund_method=request.refund_method,
        refund_status=request.refund_status,
        item_condition=request.item_condition,
        return_tracking=_tracking(request.return_tracking),
        replacement_tracking=_tracking(request.replacement_tracking),
        cancellation_reason=request.cancellation_reason,
        created_at=request.created_at,
        updated_at=request.updated_at,
        status_history=[
            HistoryResponse(
                previous_status=h.previous_status,
                new_status=h.new_status,
                changed_by=str(h.changed_by),
                notes=h.notes,
                created_at=h.created_at,
            )
            for h in request.ordered_history()
        ],
        messages=_messages(request, reader_id),
        refunds=[
            RefundResponse(
                id=str(r.id),
                amount=r.amount,
                method=r.method,
                status=r.status,
                attempt=r.attempt,
                external_refund_id=r.external_refund_id,
                notes=r.notes,
                failure_reason=r.failure_reason,
                timed_out=bool(r.timed_out),
                created_at=r.created_at,
                processed_at=r.processed_at,
            )
            for r in detail.refunds
        ],
    )


def _entry_response(entry: ReturnEntry) -> ReturnEntryResponse:
    if isinstance(entry, RealRequest):
        request = entry.request
        return ReturnEntryResponse(
            id=entry.entry_id,
            kind="request",
            order_id=str(request.order_id),
            order_item_id=str(request.order_item_id),
            request_type=request.request_type,
            status=request.status,
            created_at=entry.created_at,
        )
    return ReturnEntryResponse(
        id=entry.entry_id,
        kind="order_mark",
        order_id=str(entry.order.id),
        status=entry.order.status,
        created_at=entry.created_at,
    )


def _detail(return_request_id: str, actor_id: str) -> ReturnRequestResponse:
    return _request_response(get_return_request(return_request_id, actor_id), actor_id)


# ---------------------------------------------------------------------------
# Creation and lookups
# ---------------------------------------------------------------------------
@return_router.post("/request", status_code=201, response_model=ReturnRequestResponse)
async def create_return_request(
    body: CreateReturnRequestBody,
    actor_id: str = Depends(acting_user_id),
) -> ReturnRequestResponse:
    """Open a return, refund or replacement request for one order item."""
    command = CreateReturnRequest(
        buyer_id=actor_id,
        order_id=body.order_id,
        order_item_id=body.order_item_id,
        request_type=body.request_type,
        reason_id=body.reason_id,
        description=body.description,
        media_urls=json.dumps(body.media_urls) if body.media_urls else None,
    )
    request_id = current_domain.process(command, asynchronous=False)
    return _detail(request_id, actor_id)


@return_router.get("/check-eligibility/{order_id}/{order_item_id}", response_model=EligibilityResponse)
async def check_return_eligibility(
    order_id: str,
    order_item_id: str,
    request_type: str = Query(default="return", alias="requestType"),
    actor_id: str = Depends(acting_user_id),
) -> EligibilityResponse:
    """Evaluate eligibility without creating anything."""
    actor = load_actor(actor_id)
    order = load_order(order_id)
    if str(order.buyer_id) != str(actor.id) and not actor.is_admin():
        raise AccessDeniedError("Only the buyer of this order can check its eligibility")
    result = check_eligibility(order_id, order_item_id, request_type, now=datetime.now(UTC))
    return EligibilityResponse(**result.as_dict())


@return_router.get("/reasons", response_model=list[ReasonResponse])
async def list_reasons(request_type: str | None = Query(default=None, alias="requestType")) -> list[ReasonResponse]:
    reasons = current_domain.repository_for(ReturnReason).active_for(request_type)
    return [
        ReasonResponse(
            id=str(r.id),
            reason_text=r.reason_text,
            category=r.category,
            display_order=r.display_order or 0,
        )
        for r in reasons
    ]


@return_router.get("", response_model=list[ReturnEntryResponse])
async def list_returns(status: str | None = None, actor_id: str = Depends(acting_user_id)) -> list[ReturnEntryResponse]:
    """Requests visible to the caller, plus orders they marked for return."""
    return [_entry_response(e) for e in list_return_entries(actor_id, status)]


@return_router.get("/{return_request_id}", response_model=ReturnRequestResponse)
async def get_return(return_request_id: str, actor_id: str = Depends(acting_user_id)) -> ReturnRequestResponse:
    return _detail(return_request_id, actor_id)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
@return_router.post("/{return_request_id}/status", response_model=ReturnRequestResponse)
async def update_status(
    return_request_id: str,
    body: UpdateStatusRequest,
    actor_id: str = Depends(acting_user_id),
) -> ReturnRequestResponse:
    command = UpdateReturnStatus(
        return_request_id=return_request_id,
        actor_id=actor_id,
        status=body.status,
        notes=body.notes,
        expected_version=body.expected_version,
    )
    current_domain.process(command, asynchronous=False)
    return _detail(return_request_id, actor_id)


@return_router.post("/{return_request_id}/cancel", response_model=ReturnRequestResponse)
async def cancel_return(
    return_request_id: str,
    body: CancelRequest,
    actor_id: str = Depends(acting_user_id),
) -> ReturnRequestResponse:
    command = CancelReturnRequest(
        return_request_id=return_request_id,
        actor_id=actor_id,
        reason=body.reason or None,
        expected_version=body.expected_version,
    )
    current_domain.process(command, asynchronous=False)
    return _detail(return_request_id, actor_id)


@return_router.post("/{return_request_id}/return-tracking", response_model=ReturnRequestResponse)
async def add_return_tracking(
    return_request_id: str,
    body: TrackingRequest,
    actor_id: str = Depends(acting_user_id),
) -> ReturnRequestResponse:
    command = AddReturnTracking(
        return_request_id=return_request_id,
        actor_id=actor_id,
        tracking_number=body.tracking_number,
        courier_name=body.courier_name,
        tracking_url=body.tracking_url,
    )
    current_domain.process(command, asynchronous=False)
    return _detail(return_request_id, actor_id)


@return_router.post("/{return_request_id}/replacement-tracking", response_model=ReturnRequestResponse)
async def add_replacement_tracking(
    return_request_id: str,
    body: TrackingRequest,
    actor_id: str = Depends(acting_user_id),
) -> ReturnRequestResponse:
    command = AddReplacementTracking(
        return_request_id=return_request_id,
        actor_id=actor_id,
        tracking_number=body.tracking_number,
        courier_name=body.courier_name,
        tracking_url=body.tracking_url,
    )
    current_domain.process(command, asynchronous=False)
    return _detail(return_request_id, actor_id)


@return_router.post("/{return_request_id}/mark-received", response_model=ReturnRequestResponse)
async def mark_received(
    return_request_id: str,
    body: MarkReceivedRequest,
    actor_id: str = Depends(acting_user_id),
) -> ReturnRequestResponse:
    command = MarkReturnReceived(
        return_request_id=return_request_id,
        actor_id=actor_id,
        condition=body.condition,
        notes=body.notes,
    )
    current_domain.process(command, asynchronous=False)
    return _detail(return_request_id, actor_id)


@return_router.post("/{return_request_id}/complete", response_model=ReturnRequestResponse)
async def complete_return(
    return_request_id: str,
    body: CompleteRequest | None = None,
    actor_id: str = Depends(acting_user_id),
) -> ReturnRequestResponse:
    command = CompleteReturn(
        return_request_id=return_request_id,
        actor_id=actor_id,
        notes=body.notes if body else None,
    )
    current_domain.process(command, asynchronous=False)
    return _detail(return_request_id, actor_id)


@return_router.post("/{return_request_id}/retry-refund", response_model=SettlementResponse)
async def retry_refund(
    return_request_id: str,
    body: RetryRefundRequest | None = None,
    actor_id: str = Depends(acting_user_id),
) -> SettlementResponse:
    command = RetryRefund(
        return_request_id=return_request_id,
        actor_id=actor_id,
        method=body.method if body else None,
    )
    result = current_domain.process(command, asynchronous=False)
    return SettlementResponse(**result)


# ---------------------------------------------------------------------------
# Message thread
# ---------------------------------------------------------------------------
@return_router.get("/{return_request_id}/messages", response_model=list[MessageResponse])
async def read_messages(return_request_id: str, actor_id: str = Depends(acting_user_id)) -> list[MessageResponse]:
    """The thread, oldest first. Reading it marks other parties' messages as read."""
    current_domain.process(
        ReadReturnThread(return_request_id=return_request_id, reader_id=actor_id),
        asynchronous=False,
    )
    detail = get_return_request(return_request_id, actor_id)
    return _messages(detail.request, actor_id)


@return_router.post("/{return_request_id}/messages", status_code=201, response_model=IdResponse)
async def post_message(
    return_request_id: str,
    body: MessageRequest,
    actor_id: str = Depends(acting_user_id),
) -> IdResponse:
    command = AddReturnMessage(
        return_request_id=return_request_id,
        sender_id=actor_id,
        message=body.message or None,
        media_urls=json.dumps(body.media_urls) if body.media_urls else None,
    )
    message_id = current_domain.process(command, asynchronous=False)
    return IdResponse(id=message_id)
