"""ReturnPolicy and ReturnReason aggregates.

Policies are scoped by seller and product category; the most specific active
policy wins when a return is requested. Reasons are the catalogue of
buyer-facing explanations offered per request type.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from aftersales.domain import aftersales


class ShippingPaidBy(Enum):
    BUYER = "buyer"
    SELLER = "seller"
    PLATFORM = "platform"


class ReasonCategory(Enum):
    RETURN = "return"
    REFUND = "refund"
    REPLACEMENT = "replacement"
    ALL = "all"


@aftersales.aggregate
class ReturnPolicy:
    seller_id = Identifier()  # None means every seller
    category_id = Identifier()  # None means every category
    return_window_days = Integer(default=7, min_value=0)
    replacement_window_days = Integer(min_value=0)
    refund_window_days = Integer(min_value=0)
    policy_text = Text()
    non_returnable_items = Text()  # JSON list of product or category ids
    is_active = Boolean(default=True)
    auto_approve_threshold = Float(min_value=0.0)
    shipping_paid_by = String(max_length=20, choices=ShippingPaidBy, default=ShippingPaidBy.SELLER.value)
    conditional_rules = Text()  # JSON object, opaque to the lifecycle
    created_at = DateTime()

    @classmethod
    def define(cls, **kwargs):
        if kwargs.get("return_window_days") is None:
            kwargs.pop("return_window_days", None)
        for key in ("non_returnable_items", "conditional_rules"):
            if kwargs.get(key) is not None and not isinstance(kwargs[key], str):
                kwargs[key] = json.dumps(kwargs[key])
        return cls(created_at=datetime.now(UTC), **kwargs)

    def excluded_ids(self) -> set[str]:
        return {str(x) for x in json.loads(self.non_returnable_items or "[]")}

    def covers(self, seller_id, category_id) -> bool:
        return str(self.seller_id or "") == str(seller_id or "") and str(self.category_id or "") == str(
            category_id or ""
        )


@aftersales.repository(part_of=ReturnPolicy)
class ReturnPolicyRepository:
    def resolve(self, seller_id: str | None, category_id: str | None) -> ReturnPolicy | None:
        """Most specific active policy: seller+category, then seller-wide, then system default."""
        active = self._dao.query.filter(is_active=True).all().items
        candidates = []
        if category_id:
            candidates.append((seller_id, category_id))
        candidates.append((seller_id, None))
        candidates.append((None, None))

        for wanted_seller, wanted_category in candidates:
            match = next((p for p in active if p.covers(wanted_seller, wanted_category)), None)
            if match is not None:
                return match
        return None


@aftersales.aggregate
class ReturnReason:
    reason_text = String(max_length=255, required=True)
    category = String(max_length=20, choices=ReasonCategory, default=ReasonCategory.ALL.value)
    display_order = Integer(default=0)
    is_active = Boolean(default=True)

    def applies_to(self, request_type: str) -> bool:
        return self.category in (ReasonCategory.ALL.value, request_type)


@aftersales.repository(part_of=ReturnReason)
class ReturnReasonRepository:
    def active_for(self, request_type: str | None = None) -> list[ReturnReason]:
        reasons = self._dao.query.filter(is_active=True).all().items
        if request_type:
            reasons = [r for r in reasons if r.applies_to(request_type)]
        return sorted(reasons, key=lambda r: (r.display_order or 0, r.reason_text))
