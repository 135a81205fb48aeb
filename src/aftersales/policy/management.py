"""Admin and seller commands that maintain return policies and reasons."""

import json

from protean.fields import Boolean, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.errors import AccessDeniedError
from aftersales.identity.user import Role, load_actor
from aftersales.policy.policy import ReasonCategory, ReturnPolicy, ReturnReason, ShippingPaidBy


@aftersales.command(part_of="ReturnPolicy")
class DefineReturnPolicy:
    actor_id = Identifier(required=True)
    seller_id = Identifier()
    category_id = Identifier()
    return_window_days = Integer(default=7, min_value=0)
    replacement_window_days = Integer(min_value=0)
    refund_window_days = Integer(min_value=0)
    policy_text = Text()
    non_returnable_items = Text()  # JSON list
    auto_approve_threshold = Float(min_value=0.0)
    shipping_paid_by = String(choices=ShippingPaidBy, default=ShippingPaidBy.SELLER.value)
    conditional_rules = Text()  # JSON object


@aftersales.command_handler(part_of=ReturnPolicy)
class ReturnPolicyCommandHandler:
    @handle(DefineReturnPolicy)
    def define_policy(self, command):
        actor = load_actor(command.actor_id)
        # Sellers may only scope policies to themselves; system defaults are admin-only
        if not actor.is_admin():
            if actor.role != Role.SELLER.value or str(command.seller_id or "") != str(actor.id):
                raise AccessDeniedError("Only admins or the owning seller can define a return policy")

        policy = ReturnPolicy.define(
            seller_id=command.seller_id,
            category_id=command.category_id,
            return_window_days=command.return_window_days,
            replacement_window_days=command.replacement_window_days,
            refund_window_days=command.refund_window_days,
            policy_text=command.policy_text,
            non_returnable_items=command.non_returnable_items or json.dumps([]),
            auto_approve_threshold=command.auto_approve_threshold,
            shipping_paid_by=command.shipping_paid_by,
            conditional_rules=command.conditional_rules,
            is_active=True,
        )
        current_domain.repository_for(ReturnPolicy).add(policy)
        return str(policy.id)


@aftersales.command(part_of="ReturnReason")
class AddReturnReason:
    actor_id = Identifier(required=True)
    reason_text = String(required=True, max_length=255)
    category = String(choices=ReasonCategory, default=ReasonCategory.ALL.value)
    display_order = Integer(default=0)
    is_active = Boolean(default=True)


@aftersales.command_handler(part_of=ReturnReason)
class ReturnReasonCommandHandler:
    @handle(AddReturnReason)
    def add_reason(self, command):
        actor = load_actor(command.actor_id)
        if not actor.is_admin():
            raise AccessDeniedError("Only admins can manage return reasons")

        reason = ReturnReason(
            reason_text=command.reason_text,
            category=command.category,
            display_order=command.display_order,
            is_active=command.is_active,
        )
        current_domain.repository_for(ReturnReason).add(reason)
        return str(reason.id)
