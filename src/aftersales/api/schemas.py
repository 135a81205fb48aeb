"""Pydantic request/response schemas for the Aftersales API.

These are separate from Protean commands (anti-corruption pattern).
The API layer is the external contract; commands are internal domain concepts.
Field names follow the storefront clients (camelCase on the wire).
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class RegisterUserRequest(ApiModel):
    user_id: str | None = None
    name: str
    email: str
    role: str = "buyer"
    is_co_admin: bool = False


class OrderItemSchema(ApiModel):
    product_id: str | None = None
    product_name: str | None = None
    seller_id: str
    category_id: str | None = None
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)


class PlaceOrderRequest(ApiModel):
    order_id: str | None = None
    items: list[OrderItemSchema]
    payment_method: str = "cod"
    payment_transaction_id: str | None = None
    wallet_coins_used: float = 0.0


class MarkDeliveredRequest(ApiModel):
    delivered_at: datetime | None = None


class CreateReturnRequestBody(ApiModel):
    order_id: str
    order_item_id: str
    request_type: str
    reason_id: str
    description: str | None = None
    media_urls: list[str] | None = None


class UpdateStatusRequest(ApiModel):
    status: str
    notes: str | None = None
    expected_version: int | None = None


class CancelRequest(ApiModel):
    reason: str = ""
    expected_version: int | None = None


class TrackingRequest(ApiModel):
    tracking_number: str = ""
    courier_name: str = ""
    tracking_url: str | None = None


class MarkReceivedRequest(ApiModel):
    condition: str = ""
    notes: str | None = None


class CompleteRequest(ApiModel):
    notes: str | None = None


class RetryRefundRequest(ApiModel):
    method: str | None = None


class MessageRequest(ApiModel):
    message: str = ""
    media_urls: list[str] | None = None


class MarkForReturnRequest(ApiModel):
    request_type: str = "return"
    reason_id: str | None = None
    description: str | None = None


class OrderStatusRequest(ApiModel):
    status: str


class DefineReturnPolicyRequest(ApiModel):
    seller_id: str | None = None
    category_id: str | None = None
    return_window_days: int = Field(default=7, ge=0)
    replacement_window_days: int | None = Field(default=None, ge=0)
    refund_window_days: int | None = Field(default=None, ge=0)
    policy_text: str | None = None
    non_returnable_items: list[str] | None = None
    auto_approve_threshold: float | None = None
    shipping_paid_by: str = "seller"
    conditional_rules: dict | None = None


class AddReturnReasonRequest(ApiModel):
    reason_text: str
    category: str = "all"
    display_order: int = 0


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class IdResponse(ApiModel):
    id: str


class StatusResponse(ApiModel):
    status: str = "ok"


class CountResponse(ApiModel):
    updated: int


class EligibilityResponse(ApiModel):
    eligible: bool
    message: str
    remaining_days: int | None = None
    policy: dict | None = None


class ReasonResponse(ApiModel):
    id: str
    reason_text: str
    category: str
    display_order: int


class TrackingResponse(ApiModel):
    tracking_number: str
    courier_name: str
    tracking_url: str | None = None
    shipped_at: datetime | None = None


class HistoryResponse(ApiModel):
    previous_status: str | None = None
    new_status: str
    changed_by: str
    notes: str | None = None
    created_at: datetime


class MessageResponse(ApiModel):
    id: str
    sender_id: str
    sender_role: str
    message: str
    media_urls: list[str] = []
    is_read: bool = False
    created_at: datetime


class RefundResponse(ApiModel):
    id: str
    amount: float
    method: str
    status: str
    attempt: int
    external_refund_id: str | None = None
    notes: str | None = None
    failure_reason: str | None = None
    timed_out: bool = False
    created_at: datetime | None = None
    processed_at: datetime | None = None


class ReturnRequestResponse(ApiModel):
    id: str
    version: int
    order_id: str
    order_item_id: str
    buyer_id: str
    seller_id: str
    request_type: str
    reason_id: str
    description: str | None = None
    media_urls: list[str] = []
    status: str
    eligible_for_refund: bool
    refund_amount: float | None = None
    refund_method: str | None = None
    refund_status: str | None = None
    item_condition: str | None = None
    return_tracking: TrackingResponse | None = None
    replacement_tracking: TrackingResponse | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    status_history: list[HistoryResponse] = []
    messages: list[MessageResponse] = []
    refunds: list[RefundResponse] = []


class ReturnEntryResponse(ApiModel):
    """One row of a return listing: a real request or an order marked for return."""

    id: str
    kind: str  # "request" | "order_mark"
    order_id: str
    order_item_id: str | None = None
    request_type: str | None = None
    status: str
    created_at: datetime | None = None


class MarkForReturnResponse(ApiModel):
    order_id: str
    created: list[str]
    skipped: list[dict]


class SettlementResponse(ApiModel):
    success: bool
    message: str | None = None
    refund_id: str | None = None
    status: str | None = None


class NotificationResponse(ApiModel):
    id: str
    type: str
    title: str
    message: str
    read: bool
    link: str | None = None
    metadata: dict = {}
    created_at: datetime | None = None


class WalletTransactionResponse(ApiModel):
    id: str
    amount: float
    transaction_type: str
    reference_type: str | None = None
    reference_id: str | None = None
    description: str | None = None
    balance_after: float | None = None
    created_at: datetime | None = None


class WalletResponse(ApiModel):
    balance: float
    lifetime_earned: float
    lifetime_redeemed: float
    transactions: list[WalletTransactionResponse] = []
