"""Return eligibility evaluation.

`check_eligibility` decides whether an order item may enter the return
lifecycle and under which policy. It only reads, and takes `now` as an
argument so the same inputs always produce the same answer.

Rules, first failure wins:
    1. the order and item exist and the order has reached the buyer
    2. no active return request already covers the item
    3. the item's product and seller resolve
    4. a policy applies (seller+category, seller-wide, system default)
       and does not exclude the item
    5. the return window has not elapsed
"""

import math
from dataclasses import dataclass
from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from aftersales.identity.user import User
from aftersales.order.order import Order
from aftersales.policy.policy import ReturnPolicy
from aftersales.returns.return_request import RequestType, ReturnRequest

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    message: str
    remaining_days: int | None = None
    policy: ReturnPolicy | None = None
    # True when the failure is a missing record rather than a rule violation
    missing: bool = False

    def as_dict(self) -> dict:
        result = {"eligible": self.eligible, "message": self.message}
        if self.remaining_days is not None:
            result["remaining_days"] = self.remaining_days
        if self.policy is not None:
            result["policy"] = {
                "id": str(self.policy.id),
                "return_window_days": self.policy.return_window_days,
                "shipping_paid_by": self.policy.shipping_paid_by,
                "policy_text": self.policy.policy_text,
            }
        return result


def _ineligible(message: str) -> EligibilityResult:
    return EligibilityResult(eligible=False, message=message)


def _missing(message: str) -> EligibilityResult:
    return EligibilityResult(eligible=False, message=message, missing=True)


def window_days(policy: ReturnPolicy, request_type: str) -> int:
    """Days allowed for this request type; type-specific windows fall back to the return window."""
    if request_type == RequestType.REPLACEMENT.value and policy.replacement_window_days is not None:
        return policy.replacement_window_days
    if request_type == RequestType.REFUND.value and policy.refund_window_days is not None:
        return policy.refund_window_days
    return policy.return_window_days


def days_since(moment: datetime, now: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return math.floor((now - moment).total_seconds() / SECONDS_PER_DAY)


def check_eligibility(order_id: str, order_item_id: str, request_type: str, now: datetime) -> EligibilityResult:
    if request_type not in {t.value for t in RequestType}:
        return _ineligible(f"Invalid request type: {request_type}")

    try:
        order = current_domain.repository_for(Order).get(str(order_id))
    except ObjectNotFoundError:
        return _missing("Order not found")

    item = order.item(order_item_id)
    if item is None:
        return _missing("Order item not found")
    if not order.is_fulfilled():
        return _ineligible("Order is not delivered yet")

    if current_domain.repository_for(ReturnRequest).active_for_item(order_item_id):
        return _ineligible("A return request already exists for this item")

    if not item.product_id:
        return _missing("Product not found")
    try:
        current_domain.repository_for(User).get(str(item.seller_id))
    except ObjectNotFoundError:
        return _missing("Seller not found")

    policy = current_domain.repository_for(ReturnPolicy).resolve(item.seller_id, item.category_id)
    if policy is None:
        return _missing("No return policy found")
    excluded = policy.excluded_ids()
    if str(item.product_id) in excluded or (item.category_id and str(item.category_id) in excluded):
        return _ineligible("This item is not eligible for return")

    delivered_at = order.delivered_at or order.created_at
    if delivered_at is None:
        return _ineligible("Delivery date not found")

    window = window_days(policy, request_type)
    elapsed = days_since(delivered_at, now)
    if elapsed > window:
        return EligibilityResult(
            eligible=False,
            message=f"Return period of {window} days has expired",
            policy=policy,
        )

    return EligibilityResult(
        eligible=True,
        message=f"Eligible for {request_type}",
        remaining_days=window - elapsed,
        policy=policy,
    )
